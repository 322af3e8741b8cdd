"""
Action block parser.

The assistant proposes board mutations by embedding fenced blocks in its
reply:

    ```actions
    [{"type": "create_card", "params": {"text": "...", "columnId": "todo"}}]
    ```

Parsing is fail-closed: one malformed block (bad JSON or an invalid
action) voids every block, and the reply is shown verbatim with no
proposals. A broken directive must never apply a mutation.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from .schema import Proposal, ProposalError

logger = logging.getLogger(__name__)

ACTIONS_BLOCK_RE = re.compile(r"```actions\n(.*?)\n```", re.DOTALL)


@dataclass
class ParsedReply:
    message: str
    actions: List[Proposal] = field(default_factory=list)


def parse_actions(message: str, default_card_id: Optional[str] = None) -> ParsedReply:
    """Split a raw reply into display text and typed proposals."""
    matches = list(ACTIONS_BLOCK_RE.finditer(message or ""))
    if not matches:
        return ParsedReply(message=message)

    actions: List[Proposal] = []
    try:
        for match in matches:
            payload = json.loads(match.group(1))
            items = payload if isinstance(payload, list) else [payload]
            actions.extend(Proposal.from_dict(item, default_card_id) for item in items)
    except (json.JSONDecodeError, ProposalError) as e:
        logger.warning(f"Ignoring action blocks, failed to parse: {e}")
        return ParsedReply(message=message)

    clean = ACTIONS_BLOCK_RE.sub("", message).strip()
    return ParsedReply(message=clean, actions=actions)
