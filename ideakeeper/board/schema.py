"""
Board schema: ideas, their columns, cards and card comments.

Every idea owns the same fixed column set. Cards live in exactly one
column of one idea; comments hang off a card.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List


# (column_id, title) in display order
DEFAULT_COLUMNS = (
    ("todo", "To Do"),
    ("doing", "In Progress"),
    ("done", "Done"),
)

FALLBACK_COLUMN = "todo"


def utc_now() -> str:
    """ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Card:
    """One task card on an idea's board."""
    card_id: str
    text: str
    column_id: str = FALLBACK_COLUMN
    idea_id: str = ""
    created_at: str = field(default_factory=utc_now)


@dataclass
class Column:
    column_id: str
    title: str
    cards: List[Card] = field(default_factory=list)


@dataclass
class Idea:
    """An idea and its board."""
    idea_id: str
    title: str
    summary: str = ""
    columns: List[Column] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now)

    def column_title(self, column_id: str) -> Optional[str]:
        for col in self.columns:
            if col.column_id == column_id:
                return col.title
        return None

    def find_card(self, card_id: str) -> Optional[Card]:
        for col in self.columns:
            for card in col.cards:
                if card.card_id == card_id:
                    return card
        return None

    @classmethod
    def with_default_columns(cls, idea_id: str, title: str, summary: str = "") -> "Idea":
        return cls(
            idea_id=idea_id,
            title=title,
            summary=summary,
            columns=[Column(column_id=cid, title=t) for cid, t in DEFAULT_COLUMNS],
        )


@dataclass
class Comment:
    """One comment in a card's thread."""
    comment_id: int
    card_id: str
    body: str
    author: str = ""
    created_at: str = field(default_factory=utc_now)
