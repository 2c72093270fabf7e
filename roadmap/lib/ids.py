"""
Entity code helpers.

Milestones are M1, M2..., epics E1, E2..., stories E1.S1 and requirements
E1.R1. Codes are assigned as max(existing) + 1 within their parent scope, so a
code is never handed out twice as long as nothing is deleted.
"""

import logging
import re
from typing import Iterable, Optional

from roadmap.lib.constants import (
    EPIC_ID_PATTERN,
    MILESTONE_ID_PATTERN,
    REQUIREMENT_ID_PATTERN,
    STORY_ID_PATTERN,
)

logger = logging.getLogger(__name__)


def is_milestone_id(value: str) -> bool:
    return bool(MILESTONE_ID_PATTERN.match(value))


def is_epic_id(value: str) -> bool:
    return bool(EPIC_ID_PATTERN.match(value))


def is_story_id(value: str) -> bool:
    return bool(STORY_ID_PATTERN.match(value))


def is_requirement_id(value: str) -> bool:
    return bool(REQUIREMENT_ID_PATTERN.match(value))


def epic_of(child_id: str) -> Optional[str]:
    """Return the epic prefix of a story or requirement code.

    Returns None when the code is not a well-formed story/requirement code.
    """
    match = STORY_ID_PATTERN.match(child_id) or REQUIREMENT_ID_PATTERN.match(child_id)
    if not match:
        return None
    return match.group(1)


def code_number(code: str) -> Optional[int]:
    """Numeric part of the last segment of a code (E12 -> 12, E1.S3 -> 3)."""
    match = re.search(r'(\d+)$', code)
    if not match:
        return None
    return int(match.group(1))


def sort_key(code: str) -> tuple:
    """Sort key that orders E2 before E10 and E1.S2 before E1.S10."""
    return tuple(int(p) if p.isdigit() else p for p in re.split(r'(\d+)', code))


def next_code(prefix: str, existing: Iterable[str]) -> str:
    """Generate the next sequential code for a scope.

    Args:
        prefix: Code prefix including any parent scope ("M", "E", "E1.S")
        existing: Codes already handed out in this scope

    Returns:
        prefix + (highest existing number + 1), starting at 1
    """
    nums = []
    for code in existing:
        if not code.startswith(prefix):
            continue
        tail = code[len(prefix):]
        if tail.isdigit():
            nums.append(int(tail))
        else:
            logger.warning(f"Malformed code ignored while numbering {prefix}*: {code}")

    if not nums:
        return f"{prefix}1"
    return f"{prefix}{max(nums) + 1}"


def slugify(text: str, max_len: int = 30) -> str:
    """Lowercase, dash-separated slug used in epic directory names."""
    slug = re.sub(r'[^a-z0-9]+', '-', text.lower()).strip('-')
    return slug[:max_len].rstrip('-')
