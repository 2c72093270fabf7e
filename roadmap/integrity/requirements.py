"""
Requirement extraction from PRD text.

A requirement is declared by a markdown ATX heading whose text starts with
R<n>: (or the qualified E<n>.R<n>:) and a non-blank title, e.g.

    ### R1: User Login
    Users can sign in with email and password.

    ## E1.R2: User Logout

Extracted IDs are always qualified with the epic the PRD belongs to
(E1.R1). The number is kept as written, so R01 and R1 are different
requirements. Headings inside fenced code blocks are ignored.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

# Heading text may be wrapped in emphasis (### **R1: Login**)
REQUIREMENT_HEADING = re.compile(
    r'^ {0,3}#{1,6}[ \t]+[*_]*(?:(E\d+)\.)?R(\d+)[*_]*[ \t]*:[ \t]*(\S.*?)[ \t*_#]*$'
)
ANY_HEADING = re.compile(r'^ {0,3}#{1,6}(?:[ \t]|$)')
FENCE = re.compile(r'^ {0,3}(`{3,}|~{3,})')


@dataclass(frozen=True)
class Requirement:
    id: str                 # E1.R1
    number: str             # Digits as written ("1", "01")
    title: str
    description: str = ""   # Body text up to the next heading
    line: int = 0           # 1-based line of the heading


@dataclass(frozen=True)
class RequirementSet:
    """Requirements of one PRD, in order of first appearance."""
    epic_id: str
    requirements: tuple[Requirement, ...] = ()
    duplicates: tuple[str, ...] = ()    # IDs declared more than once, each listed once

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(r.id for r in self.requirements)

    def get(self, requirement_id: str) -> Optional[Requirement]:
        for requirement in self.requirements:
            if requirement.id == requirement_id:
                return requirement
        return None

    def __iter__(self) -> Iterator[Requirement]:
        return iter(self.requirements)

    def __len__(self) -> int:
        return len(self.requirements)

    def __contains__(self, requirement_id: object) -> bool:
        return any(r.id == requirement_id for r in self.requirements)


@dataclass
class _Pending:
    requirement_id: str
    number: str
    title: str
    line: int
    body: list[str] = field(default_factory=list)


def extract_requirements(prd_text: Optional[str], epic_id: str) -> RequirementSet:
    """Parse requirement headings out of PRD markdown.

    Args:
        prd_text: PRD content; None or empty yields an empty set
        epic_id: Epic the PRD belongs to, used to qualify IDs

    Returns:
        RequirementSet. Duplicates keep their first position; the later
        declaration supplies title and description.
    """
    if not prd_text:
        return RequirementSet(epic_id=epic_id)

    found: dict[str, Requirement] = {}
    duplicates: list[str] = []
    current: Optional[_Pending] = None
    fence: Optional[str] = None

    def flush(pending: Optional[_Pending]) -> None:
        if pending is None:
            return
        requirement = Requirement(
            id=pending.requirement_id,
            number=pending.number,
            title=pending.title,
            description="\n".join(pending.body).strip(),
            line=pending.line,
        )
        existing = found.get(requirement.id)
        if existing is None:
            found[requirement.id] = requirement
            return
        if requirement.id not in duplicates:
            duplicates.append(requirement.id)
        logger.debug(f"Duplicate requirement {requirement.id} at line {requirement.line}")
        # dict keeps insertion order, so the first position survives
        found[requirement.id] = Requirement(
            id=requirement.id,
            number=requirement.number,
            title=requirement.title,
            description=requirement.description,
            line=existing.line,
        )

    for lineno, line in enumerate(prd_text.splitlines(), start=1):
        fence_match = FENCE.match(line)
        if fence_match:
            marker = fence_match.group(1)
            if fence is None:
                fence = marker
            elif marker[0] == fence[0] and len(marker) >= len(fence):
                fence = None
            if current is not None:
                current.body.append(line)
            continue

        if fence is not None:
            if current is not None:
                current.body.append(line)
            continue

        match = REQUIREMENT_HEADING.match(line)
        # A title made only of markup (### R1: ##) does not declare anything
        if match and match.group(3).strip(" \t*_#"):
            flush(current)
            qualifier, number, title = match.groups()
            if qualifier and qualifier != epic_id:
                logger.debug(f"{epic_id} PRD declares {qualifier}.R{number}; using {epic_id}")
            current = _Pending(
                requirement_id=f"{epic_id}.R{number}",
                number=number,
                title=title.strip(),
                line=lineno,
            )
            continue

        if ANY_HEADING.match(line):
            flush(current)
            current = None
            continue

        if current is not None:
            current.body.append(line)

    flush(current)

    return RequirementSet(
        epic_id=epic_id,
        requirements=tuple(found.values()),
        duplicates=tuple(duplicates),
    )


def count_requirements(prd_text: Optional[str]) -> int:
    """Number of distinct requirements declared in a PRD."""
    return len(extract_requirements(prd_text, "E0"))
