"""
Subject normalization for campaign grouping.

Campaign mail rarely repeats a subject byte for byte: senders prepend
"Re:", "[Newsletter]", "Don't miss!" and similar noise. These helpers strip
such prefixes so variations of one campaign share a single hash.
"""

from __future__ import annotations

import hashlib
import re

# Urgency, reply/forward and marketing prefixes, applied in order
SUBJECT_PREFIXES = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^don'?t miss( out)?\b[!:]?\s*",
        r"^trending\b[!:]?\s*",
        r"^hot\b[!:]?\s*",
        r"^new\b[!:]?\s*",
        r"^breaking\b[!:]?\s*",
        r"^urgent\b[!:]?\s*",
        r"^important\b[!:]?\s*",
        r"^reminder\b[!:]?\s*",
        r"^last chance\b[!:]?\s*",
        r"^final\b[!:]?\s*",
        r"^limited time\b[!:]?\s*",
        r"^act now\b[!:]?\s*",
        r"^hurry\b[!:]?\s*",
        r"^re:\s*",
        r"^fw:\s*",
        r"^fwd:\s*",
        r"^sale\b[!:]?\s*",
        r"^flash sale\b[!:]?\s*",
        r"^exclusive\b[!:]?\s*",
        r"^special\b[!:]?\s*",
        r"^\[.*?\]\s*",
        r"^【.*?】\s*",
    )
)

MAX_STRIP_PASSES = 3

_WHITESPACE = re.compile(r"\s+")


def strip_prefixes(subject: str) -> str:
    """Remove campaign prefixes, keeping the original case.

    Chained prefixes such as ``"RE: Don't miss! [Promo] Big sale"`` are
    handled by repeating the pass until nothing changes (at most three times).
    """
    normalized = _WHITESPACE.sub(" ", subject or "").strip()
    for _ in range(MAX_STRIP_PASSES):
        before = normalized
        for prefix in SUBJECT_PREFIXES:
            normalized = prefix.sub("", normalized, count=1)
        if normalized == before:
            break
    return normalized.strip()


def normalize_subject(subject: str) -> str:
    """Grouping key text: prefix-stripped, case-folded, whitespace-collapsed."""
    return _WHITESPACE.sub(" ", strip_prefixes(subject).casefold()).strip()


def subject_hash(subject: str) -> str:
    """SHA-1 hex digest of the normalized subject."""
    return hashlib.sha1(normalize_subject(subject).encode("utf-8")).hexdigest()
