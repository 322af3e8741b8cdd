# Assistant action-proposal pipeline
#
# Components:
#   schema.py       - Proposals, invocation context/result, messages, error kinds
#   mentions.py     - @mention trigger detection and directive extraction
#   actions.py      - Fenced ```actions block parser (fail-closed)
#   prompts.py      - System prompt assembly
#   cli_backend.py  - Direct subprocess invocation of the assistant CLI
#   gateway.py      - HTTP client for the gateway server
#   router.py       - Backend selection and the uniform async call contract
#   conversation.py - Message history and pending-proposal queue
#   applier.py      - Applies approved proposals to the board
#   brainstorm.py   - One-shot Gemini brainstorming
