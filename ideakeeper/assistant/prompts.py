"""System prompt assembly for assistant invocations."""
from .schema import InvocationContext

IDENTITY_LINE = (
    'You are Claude, an AI assistant integrated into a project management '
    'tool called "Idea Keeper".'
)

# Fixed contract the model must follow to propose board changes
ACTION_CONTRACT = """IMPORTANT: You cannot directly modify the board. To create, move, or modify cards, you MUST include a JSON action block in your response. The user will see these as proposals they can approve or dismiss. Without action blocks, nothing will happen on the board.

To propose actions, include this exact format at the end of your response:
```actions
[{"type": "create_card", "params": {"text": "Card title or description", "columnId": "todo"}}]
```

Available action types:
- create_card: {"text": "...", "columnId": "todo" | "doing" | "done"}
- move_card: {"cardId": "...", "targetColumnId": "todo" | "doing" | "done"}
- modify_card: {"cardId": "...", "text": "new text"}

Always include the action block when the user asks you to create, move, or change cards. Each card needs its own action object in the array."""


def build_system_prompt(context: InvocationContext) -> str:
    """One paragraph per populated context field, then the action contract."""
    parts = [IDENTITY_LINE]

    if context.idea_title:
        project = f"Current project: {context.idea_title}"
        if context.idea_summary:
            project += f" - {context.idea_summary}"
        parts.append(project)

    if context.board_state:
        parts.append(f"Board state: {context.board_state}")

    if context.card_text:
        card = f"Current card: {context.card_text}"
        if context.column_title:
            card += f" (in column: {context.column_title})"
        parts.append(card)

    if context.recent_comments:
        parts.append(f"Recent comments: {context.recent_comments}")

    parts.append(ACTION_CONTRACT)
    return "\n\n".join(parts)
