"""
Assistant schema: proposals, invocation context/result, conversation messages.

Proposals are a tagged union, one dataclass per action type. The wire
form ({"type": ..., "params": {...}}) is translated and validated in
Proposal.from_dict; everything past that boundary works with typed
fields only.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional

from ideakeeper.board.schema import FALLBACK_COLUMN


def new_id() -> str:
    return uuid.uuid4().hex


class ProposalError(ValueError):
    """Raised when an action payload is not a valid proposal."""
    pass


class ActionType(Enum):
    """Board mutations the assistant may propose."""
    CREATE_CARD = "create_card"
    MOVE_CARD = "move_card"
    MODIFY_CARD = "modify_card"


class MentionType(Enum):
    CARD = "card"
    GLOBAL = "global"

    @classmethod
    def from_str(cls, value: str) -> "MentionType":
        try:
            return cls(value)
        except ValueError:
            return cls.GLOBAL


class MessageRole(Enum):
    USER = "user"
    ASSISTANT = "assistant"


class InvocationErrorKind(Enum):
    """Why an invocation produced no message."""
    EMPTY_PROMPT = "empty_prompt"
    NOT_INSTALLED = "not_installed"
    AUTH = "auth"
    TIMEOUT = "timeout"
    EXIT_STATUS = "exit_status"
    EMPTY_OUTPUT = "empty_output"
    BAD_OUTPUT = "bad_output"
    SPAWN = "spawn"
    TRANSPORT = "transport"
    GATEWAY = "gateway"
    UNEXPECTED = "unexpected"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Proposals
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _require_str(params: Dict[str, Any], *names: str) -> str:
    """First non-empty value among names, as a string. Raises if none."""
    for name in names:
        value = params.get(name)
        if value is not None and str(value).strip():
            return str(value)
    raise ProposalError(f"Missing required parameter: {names[0]}")


def _optional_str(params: Dict[str, Any], name: str, default: str) -> str:
    value = params.get(name)
    if value is None or not str(value).strip():
        return default
    return str(value)


@dataclass
class Proposal:
    """One candidate board mutation awaiting human approval."""
    action_type: ClassVar[ActionType]

    @property
    def type(self) -> str:
        return self.action_type.value

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError

    @classmethod
    def from_dict(cls, data: Any, default_card_id: Optional[str] = None) -> "Proposal":
        """Translate a wire-form action object into a typed proposal.

        default_card_id fills a move that names no card, for replies given
        inside one card's thread.

        Raises ProposalError when the payload is not an object, names an
        unknown type, or lacks a required parameter.
        """
        if not isinstance(data, dict):
            raise ProposalError(f"Action must be an object, got {type(data).__name__}")
        params = data.get("params") or {}
        if not isinstance(params, dict):
            raise ProposalError("Action params must be an object")
        try:
            action_type = ActionType(data.get("type"))
        except ValueError:
            raise ProposalError(f"Unknown action type: {data.get('type')!r}")

        if action_type is ActionType.CREATE_CARD:
            return CreateCardProposal(
                text=_require_str(params, "text"),
                column_id=_optional_str(params, "columnId", FALLBACK_COLUMN),
            )
        if action_type is ActionType.MOVE_CARD:
            return MoveCardProposal(
                card_id=(_optional_str(params, "cardId", default_card_id) if default_card_id
                         else _require_str(params, "cardId")),
                # targetColumnId is what the system prompt advertises;
                # destColumnId appears in older replies.
                column_id=_require_str(params, "columnId", "targetColumnId", "destColumnId"),
                source_column_id=_optional_str(params, "sourceColumnId", FALLBACK_COLUMN),
            )
        return ModifyCardProposal(
            card_id=_require_str(params, "cardId"),
            text=_require_str(params, "text"),
        )


@dataclass
class CreateCardProposal(Proposal):
    action_type: ClassVar[ActionType] = ActionType.CREATE_CARD
    text: str = ""
    column_id: str = FALLBACK_COLUMN
    proposal_id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "params": {"text": self.text, "columnId": self.column_id}}

    def describe(self) -> str:
        return f'Create card: "{self.text}" in {self.column_id}'


@dataclass
class MoveCardProposal(Proposal):
    action_type: ClassVar[ActionType] = ActionType.MOVE_CARD
    card_id: str = ""
    column_id: str = ""
    source_column_id: str = FALLBACK_COLUMN
    proposal_id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "params": {
                "cardId": self.card_id,
                "columnId": self.column_id,
                "sourceColumnId": self.source_column_id,
            },
        }

    def describe(self) -> str:
        return f"Move card {self.card_id} to {self.column_id}"


@dataclass
class ModifyCardProposal(Proposal):
    action_type: ClassVar[ActionType] = ActionType.MODIFY_CARD
    card_id: str = ""
    text: str = ""
    proposal_id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "params": {"cardId": self.card_id, "text": self.text}}

    def describe(self) -> str:
        return f"Update card {self.card_id}: {self.text}"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Invocation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

# attribute → wire key
_CONTEXT_FIELDS = (
    ("idea_title", "ideaTitle"),
    ("card_id", "cardId"),
    ("idea_summary", "ideaSummary"),
    ("card_text", "cardText"),
    ("column_title", "columnTitle"),
    ("board_state", "boardState"),
    ("recent_comments", "recentComments"),
)


@dataclass(frozen=True)
class InvocationContext:
    """Read-only snapshot of board state that grounds one invocation."""
    mention_type: MentionType = MentionType.GLOBAL
    idea_title: Optional[str] = None
    idea_summary: Optional[str] = None
    card_id: Optional[str] = None
    card_text: Optional[str] = None
    column_title: Optional[str] = None
    board_state: Optional[str] = None
    recent_comments: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"mentionType": self.mention_type.value}
        for attr, key in _CONTEXT_FIELDS:
            value = getattr(self, attr)
            if value:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "InvocationContext":
        data = data if isinstance(data, dict) else {}
        kwargs = {}
        for attr, key in _CONTEXT_FIELDS:
            value = data.get(key)
            if isinstance(value, str) and value:
                kwargs[attr] = value
        return cls(
            mention_type=MentionType.from_str(str(data.get("mentionType", "global"))),
            **kwargs,
        )


@dataclass
class InvocationResult:
    """Outcome of one invocation. error set implies message is empty."""
    message: str = ""
    actions: List[Proposal] = field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[InvocationErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: str, kind: InvocationErrorKind) -> "InvocationResult":
        return cls(message="", error=error, error_kind=kind)


@dataclass
class HealthStatus:
    available: bool
    version: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"available": self.available}
        if self.version:
            data["version"] = self.version
        if self.error:
            data["error"] = self.error
        return data


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Conversation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass
class ConversationMessage:
    role: MessageRole
    content: str
    actions: List[Proposal] = field(default_factory=list)
    message_id: str = field(default_factory=new_id)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
