"""Keyword fallback classification and issue-to-department routing."""
from __future__ import annotations

from typing import Optional

from models import ISSUE_TYPES

# Checked in order; the first category with a matching keyword wins.
FALLBACK_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("pothole", ("road", "pothole", "crack", "hole")),
    ("garbage", ("garbage", "trash", "waste", "dustbin", "plastic")),
    ("streetlight", ("light", "lamp", "dark", "pole")),
    ("water-leakage", ("water", "leak", "pipe", "drain", "sewage")),
    ("dirty-toilet", ("toilet", "bathroom", "urinal")),
)

DEPARTMENTS = {
    "pothole": "Roads & Highway Dept",
    "garbage": "Sanitation Dept",
    "streetlight": "Energy & Power Dept",
    "water-leakage": "Water Supply Dept",
    "dirty-toilet": "Health & Hygiene Dept",
    "other": "General Administration",
}

DEFAULT_DEPARTMENT = DEPARTMENTS["other"]


def infer_issue_type(description: Optional[str]) -> str:
    """Guess an issue type from free text; ``other`` when nothing matches."""
    text = (description or "").lower()
    if not text:
        return "other"
    for issue_type, keywords in FALLBACK_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return issue_type
    return "other"


def resolve_issue_type(issue_type: Optional[str], description: Optional[str]) -> str:
    if issue_type and issue_type != "other" and issue_type in ISSUE_TYPES:
        return issue_type
    return infer_issue_type(description)


def department_for(issue_type: str) -> str:
    return DEPARTMENTS.get(issue_type, DEFAULT_DEPARTMENT)
