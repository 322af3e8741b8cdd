"""
Conversation controller: message history, thinking state, and the
pending-proposal queue for one chat session.

State machine:
    Idle → Thinking → Idle            (reply appended)
    Idle → Thinking → Idle(error)     (error stored, no assistant message)

Proposals are addressed by proposal_id, so an approve that finishes after
a newer reply has replaced the queue cannot remove the wrong entry.
A proposal being applied is in flight: a second approve or a dismiss of
the same id is refused until the first apply finishes.
Only one reply's proposals are held at a time.
"""
import asyncio
import logging
from typing import List, Optional, Set

from .applier import MutationApplier
from .router import AssistantRouter
from .schema import (
    ConversationMessage,
    InvocationContext,
    InvocationResult,
    MessageRole,
    Proposal,
)

logger = logging.getLogger(__name__)


class ConversationController:
    """Owns the messages and pending proposals of one session."""

    def __init__(self, router: AssistantRouter, applier: Optional[MutationApplier] = None):
        self.router = router
        self.applier = applier
        self.messages: List[ConversationMessage] = []
        self.pending: List[Proposal] = []
        self._in_flight: Set[str] = set()
        self.is_thinking = False
        self.error: Optional[str] = None

    # ──────────────────────────────────────────
    # Sending
    # ──────────────────────────────────────────

    async def send_message(self, text: str, context: InvocationContext) -> Optional[InvocationResult]:
        """
        Send one user message. Returns the result, or None when the call
        was not made (blank text, already thinking) or raised unexpectedly.
        """
        if not text or not text.strip() or self.is_thinking:
            return None

        prompt = text.strip()
        self.messages.append(ConversationMessage(role=MessageRole.USER, content=prompt))
        self.is_thinking = True
        try:
            result = await self.router.send_message(prompt, context)
        except Exception as e:
            logger.error(f"Assistant call raised: {e}", exc_info=True)
            self.error = str(e) or "Failed to reach the assistant"
            return None
        finally:
            self.is_thinking = False

        if result.error:
            logger.warning(f"Assistant error ({result.error_kind}): {result.error}")
            self.error = result.error
            return result

        self.error = None
        self.messages.append(ConversationMessage(
            role=MessageRole.ASSISTANT,
            content=result.message,
            actions=list(result.actions),
        ))
        if result.actions:
            self.pending = list(result.actions)
        return result

    # ──────────────────────────────────────────
    # Proposal queue
    # ──────────────────────────────────────────

    def get_pending(self, proposal_id: str) -> Optional[Proposal]:
        for proposal in self.pending:
            if proposal.proposal_id == proposal_id:
                return proposal
        return None

    def _id_at(self, index: int) -> Optional[str]:
        if 0 <= index < len(self.pending):
            return self.pending[index].proposal_id
        return None

    def _remove(self, proposal_id: str):
        self.pending = [p for p in self.pending if p.proposal_id != proposal_id]

    async def approve(self, proposal_id: str) -> bool:
        """
        Apply one pending proposal, then drop it from the queue.

        A failed apply leaves the proposal queued and stores the error.
        """
        proposal = self.get_pending(proposal_id)
        if proposal is None:
            return False
        if proposal_id in self._in_flight:
            self.error = "That change is already being applied"
            return False
        if self.applier is None:
            self.error = "No board selected to apply changes to"
            return False

        self._in_flight.add(proposal_id)
        try:
            confirmation = await asyncio.to_thread(self.applier.apply, proposal)
        except Exception as e:
            logger.error(f"Failed to apply {proposal.type} ({proposal_id}): {e}")
            self.error = f"Could not apply change: {e}"
            return False
        finally:
            self._in_flight.discard(proposal_id)

        self.messages.append(ConversationMessage(role=MessageRole.ASSISTANT, content=confirmation))
        self._remove(proposal_id)
        return True

    async def approve_at(self, index: int) -> bool:
        proposal_id = self._id_at(index)
        if proposal_id is None:
            return False
        return await self.approve(proposal_id)

    def dismiss(self, proposal_id: str) -> bool:
        if self.get_pending(proposal_id) is None or proposal_id in self._in_flight:
            return False
        self._remove(proposal_id)
        logger.info(f"Dismissed proposal {proposal_id}")
        return True

    def dismiss_at(self, index: int) -> bool:
        proposal_id = self._id_at(index)
        if proposal_id is None:
            return False
        return self.dismiss(proposal_id)

    def dismiss_all(self) -> int:
        """Clear the queue, except proposals being applied. Only for an explicit bulk dismiss."""
        count = len(self.pending)
        self.pending = [p for p in self.pending if p.proposal_id in self._in_flight]
        count -= len(self.pending)
        return count

    def reset(self):
        self.messages = []
        self.pending = []
        self.error = None
        self.is_thinking = False
