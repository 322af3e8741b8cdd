"""
Mention detection for assistant triggers in free text.

The trigger must be followed by a regex word boundary, so "@claude," and
"@claude-ish" both count while "@claudette" does not.
"""
import re
from functools import lru_cache
from typing import List

DEFAULT_TRIGGER = "@claude"

_MENTION_RE = re.compile(r"@(\w+)")


@lru_cache(maxsize=16)
def _trigger_pattern(trigger: str) -> "re.Pattern[str]":
    return re.compile(re.escape(trigger) + r"\b", re.IGNORECASE)


@lru_cache(maxsize=16)
def _directive_pattern(trigger: str) -> "re.Pattern[str]":
    return re.compile(re.escape(trigger) + r"\b\s*", re.IGNORECASE)


def contains_mention(text: str, trigger: str = DEFAULT_TRIGGER) -> bool:
    """True if text mentions the trigger (case-insensitive, whole word)."""
    if not text:
        return False
    return bool(_trigger_pattern(trigger).search(text))


def extract_directive(text: str, trigger: str = DEFAULT_TRIGGER) -> str:
    """
    Strip the first trigger occurrence plus the whitespace after it.

        extract_directive("  @claude   do the thing")  -> "do the thing"
        extract_directive("no trigger here ")          -> "no trigger here"
    """
    if not text:
        return ""
    return _directive_pattern(trigger).sub("", text, count=1).strip()


def extract_all_mentions(text: str) -> List[str]:
    """Every @name in order, without the @, duplicates kept."""
    if not text:
        return []
    return _MENTION_RE.findall(text)
