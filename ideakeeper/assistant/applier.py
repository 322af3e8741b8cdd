"""
Mutation applier: turns an approved proposal into a board operation.

Board errors propagate; the caller decides what happens to the queue.
"""
import logging
from typing import Optional, Protocol

from .schema import CreateCardProposal, ModifyCardProposal, MoveCardProposal, Proposal

logger = logging.getLogger(__name__)


class ApplyError(Exception):
    """Raised when a proposal cannot be applied in the current context."""
    pass


class BoardOperations(Protocol):
    """The slice of the board store the assistant may touch."""

    def add_card(self, idea_id: str, column_id: str, text: str): ...

    def move_card(self, card_id: str, source_column_id: str, dest_column_id: str,
                  idea_id: Optional[str] = None): ...

    def edit_card_text(self, card_id: str, text: str, idea_id: Optional[str] = None): ...


class MutationApplier:
    """Applies proposals against one idea's board."""

    def __init__(self, board: BoardOperations, idea_id: Optional[str] = None):
        self.board = board
        self.idea_id = idea_id

    def apply(self, proposal: Proposal) -> str:
        """Run the board operation and return the confirmation text."""
        if isinstance(proposal, CreateCardProposal):
            if not self.idea_id:
                raise ApplyError("Select an idea before creating cards")
            self.board.add_card(self.idea_id, proposal.column_id, proposal.text)
            confirmation = f'Created card: "{proposal.text}" in {proposal.column_id}'

        elif isinstance(proposal, MoveCardProposal):
            self.board.move_card(
                proposal.card_id,
                proposal.source_column_id,
                proposal.column_id,
                self.idea_id,
            )
            confirmation = f"Moved card to {proposal.column_id}"

        elif isinstance(proposal, ModifyCardProposal):
            self.board.edit_card_text(proposal.card_id, proposal.text, self.idea_id)
            confirmation = f'Updated card: "{proposal.text}"'

        else:
            raise ApplyError(f"Unsupported proposal: {type(proposal).__name__}")

        logger.info(f"Applied {proposal.type} ({proposal.proposal_id})")
        return confirmation
