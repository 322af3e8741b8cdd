# Idea Keeper: idea boards with an approval-gated conversational assistant
#
# Packages:
#   board/      - Board data model, SQLite store, assistant context snapshots
#   assistant/  - Mention parsing, action proposals, invocation backends,
#                 conversation controller, mutation applier, brainstorming
#   config.py   - YAML + environment configuration
#   server.py   - Flask gateway exposing the assistant over HTTP

__version__ = "0.1.0"
