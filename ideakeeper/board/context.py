"""
Board snapshots for the assistant.

Builds the InvocationContext that grounds a reply: a one-line-per-column
board summary, the target card, and a bounded comment tail.
"""
from typing import List, Optional, Sequence

from ideakeeper.assistant.schema import InvocationContext, MentionType
from .schema import Card, Comment, Idea

MAX_RECENT_COMMENTS = 10
DEFAULT_AUTHOR = "User"


def summarize_board(idea: Idea) -> str:
    """'Title: card1; card2' per column, '(empty)' for empty columns."""
    lines = []
    for col in idea.columns:
        cards = "; ".join(c.text for c in col.cards) if col.cards else "(empty)"
        lines.append(f"{col.title}: {cards}")
    return "\n".join(lines)


def format_comments(comments: Sequence[Comment], limit: int = MAX_RECENT_COMMENTS) -> str:
    """Last `limit` comments as 'author: body' lines; older ones are dropped."""
    tail = list(comments)[-limit:] if limit > 0 else []
    return "\n".join(f"{c.author or DEFAULT_AUTHOR}: {c.body}" for c in tail)


def build_card_context(
    idea: Idea,
    card: Card,
    column_title: str,
    comments: Sequence[Comment],
) -> InvocationContext:
    """Context for a mention made inside a card's comment thread."""
    return InvocationContext(
        mention_type=MentionType.CARD,
        card_id=card.card_id,
        idea_title=idea.title,
        idea_summary=idea.summary,
        card_text=card.text,
        column_title=column_title,
        board_state=summarize_board(idea),
        recent_comments=format_comments(comments) or None,
    )


def build_global_context(
    ideas: List[Idea],
    selected_idea: Optional[Idea] = None,
) -> InvocationContext:
    """Context for the global chat: selected board plus a digest of every idea."""
    digest = "\n".join(f"- {i.title}: {i.summary}" for i in ideas)
    if selected_idea is not None:
        summary = f"{selected_idea.summary}\n\nAll projects:\n{digest}"
        board_state = summarize_board(selected_idea)
    else:
        summary = f"Projects:\n{digest}"
        board_state = ""

    return InvocationContext(
        mention_type=MentionType.GLOBAL,
        idea_title=selected_idea.title if selected_idea else None,
        idea_summary=summary,
        board_state=board_state or None,
    )
