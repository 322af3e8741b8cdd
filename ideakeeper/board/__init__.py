# Board system: ideas, columns, cards and comments
#
# Components:
#   schema.py   - Data model (Idea, Column, Card, Comment, DEFAULT_COLUMNS)
#   store.py    - SQLite persistence layer (row-based repository)
#   context.py  - Bounded board snapshots handed to the assistant
