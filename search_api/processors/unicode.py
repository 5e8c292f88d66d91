"""
Unicode character-class resources for text processing.

Builds regular-expression character-class fragments (the part that goes
between `[` and `]`) for Unicode general categories, e.g. "Cc" (control),
"Pf" (final punctuation) or "Sk" (modifier symbol). One-letter names select a
whole group ("P" = every punctuation category).

Tables are computed from `unicodedata` once per process and cached.
"""

from __future__ import annotations

import re
import sys
import unicodedata
from functools import lru_cache
from typing import Dict, Iterable, List, Pattern, Tuple

# Categories treated as token separators by `tokenize()`.
SEPARATOR_CATEGORIES: Tuple[str, ...] = ("Cc", "Cf", "P", "S", "Z")


def _escape(cp: int) -> str:
    if cp <= 0xFFFF:
        return f"\\u{cp:04x}"
    return f"\\U{cp:08x}"


@lru_cache(maxsize=1)
def _category_ranges() -> Dict[str, List[Tuple[int, int]]]:
    """Map each two-letter general category to its sorted code point ranges."""
    ranges: Dict[str, List[Tuple[int, int]]] = {}
    current = None
    start = 0
    for cp in range(sys.maxunicode + 1):
        cat = unicodedata.category(chr(cp))
        if cat != current:
            if current is not None:
                ranges.setdefault(current, []).append((start, cp - 1))
            current = cat
            start = cp
    ranges.setdefault(current, []).append((start, sys.maxunicode))  # type: ignore[arg-type]
    return ranges


def categories() -> List[str]:
    """All two-letter general categories known to this interpreter."""
    return sorted(_category_ranges())


def _expand(names: Iterable[str]) -> List[str]:
    known = _category_ranges()
    out: List[str] = []
    for name in names:
        if len(name) == 1:
            group = [c for c in known if c.startswith(name)]
            if not group:
                raise ValueError(f"Unknown Unicode category group: {name!r}")
            out.extend(group)
        elif name in known:
            out.append(name)
        else:
            raise ValueError(f"Unknown Unicode category: {name!r}")
    return out


def _merge(ranges: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
    merged: List[Tuple[int, int]] = []
    for lo, hi in sorted(ranges):
        if merged and lo <= merged[-1][1] + 1:
            merged[-1] = (merged[-1][0], max(hi, merged[-1][1]))
        else:
            merged.append((lo, hi))
    return merged


@lru_cache(maxsize=64)
def character_class(*names: str) -> str:
    """
    Return a regex character-class fragment matching every code point in the
    given categories, e.g. ``character_class("Pf")`` -> ``"\\u00bb\\u2019..."``.

    Surrogates ("Cs") are skipped; they can't appear in a decoded str anyway.
    """
    table = _category_ranges()
    selected: List[Tuple[int, int]] = []
    for cat in _expand(names):
        if cat == "Cs":
            continue
        selected.extend(table.get(cat, []))

    parts: List[str] = []
    for lo, hi in _merge(selected):
        if lo == hi:
            parts.append(_escape(lo))
        elif hi == lo + 1:
            parts.append(_escape(lo) + _escape(hi))
        else:
            parts.append(f"{_escape(lo)}-{_escape(hi)}")
    return "".join(parts)


@lru_cache(maxsize=1)
def separator_pattern() -> Pattern[str]:
    """Compiled pattern matching runs of punctuation, symbols, spaces and control chars."""
    return re.compile(f"[{character_class(*SEPARATOR_CATEGORIES)}]+")


def tokenize(text: str, *, min_length: int = 1) -> List[str]:
    """Case-folded tokens of `text`, split on Unicode separator classes."""
    if not text:
        return []
    tokens = separator_pattern().split(text.casefold())
    return [t for t in tokens if len(t) >= min_length]
