"""
Brainstorming suggestions from Gemini.

One-shot, read-only calls: the reply is markdown for the user to read and
never proposes board changes. API failures are logged and answered with a
fixed apology so callers always get displayable text.
"""
import logging
import os
from functools import lru_cache
from typing import Optional

import google.generativeai as genai

from ideakeeper.board.schema import Card, Idea

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"

IDEA_APOLOGY = (
    "Sorry, I couldn't generate suggestions at this time. "
    "Please check your API key and network connection."
)
CARD_APOLOGY = "Sorry, I couldn't generate suggestions for this card right now."


class BrainstormError(RuntimeError):
    """Raised when the Gemini model cannot be initialized."""


@lru_cache(maxsize=4)
def get_model(model_name: str = DEFAULT_MODEL, api_key: Optional[str] = None):
    """Shared GenerativeModel per (model, key)."""
    api_key = api_key or os.getenv("GOOGLE_API_KEY")
    if not api_key:
        raise BrainstormError("GOOGLE_API_KEY not set")
    genai.configure(api_key=api_key)
    logger.info(f"Initialized Gemini model: {model_name}")
    return genai.GenerativeModel(model_name)


def build_idea_brainstorm_prompt(idea: Idea) -> str:
    cards = [f"[{col.title}] {card.text}" for col in idea.columns for card in col.cards]
    card_lines = "\n".join(f"- {c}" for c in cards) if cards else "(No cards yet)"
    return f"""You are an expert project manager and startup advisor. Your tone is encouraging and pragmatic.
Based on the following project idea, generate a list of actionable next steps, potential challenges to consider, and suggest a simple, achievable first milestone to get started.
The goal is to help the user break down their idea and overcome the feeling of being overwhelmed.
Format the output as clean markdown. Use headings (e.g., ### Next Steps), bold text, and bullet points.

---

**Project Title:** {idea.title}

**Summary:** {idea.summary}

**Existing Cards/Tasks:**
{card_lines}"""


def build_card_brainstorm_prompt(idea: Idea, card: Card) -> str:
    return f"""You are a creative and pragmatic assistant helping to flesh out a specific task for a larger project.
Your goal is to provide actionable and inspiring suggestions to help the user move forward.

**Main Project:** "{idea.title}"

**Task to Brainstorm:** "{card.text}"

Based on this single task, please provide the following in clean markdown format:

### Sub-tasks
- A few concrete, smaller steps to accomplish this task.

### Potential Challenges
- Questions or potential blockers the user should consider.

### Creative Spark
- One creative idea or alternative approach to make this task even better."""


def _generate(prompt: str, model_name: str, api_key: Optional[str], apology: str) -> str:
    try:
        response = get_model(model_name, api_key).generate_content(prompt)
        return response.text
    except Exception as e:
        logger.error(f"Gemini brainstorm failed: {e}")
        return apology


def brainstorm_idea(idea: Idea, model_name: str = DEFAULT_MODEL, api_key: Optional[str] = None) -> str:
    """Next steps, challenges and a first milestone for a whole idea."""
    return _generate(build_idea_brainstorm_prompt(idea), model_name, api_key, IDEA_APOLOGY)


def brainstorm_card(idea: Idea, card: Card, model_name: str = DEFAULT_MODEL,
                    api_key: Optional[str] = None) -> str:
    """Sub-tasks, challenges and one creative idea for a single card."""
    return _generate(build_card_brainstorm_prompt(idea, card), model_name, api_key, CARD_APOLOGY)
