# dealflow/pipeline/text.py
"""Phrase scanning shared by grading and deduction detection.

Listings are free text written by sellers, so matching is deliberately
forgiving: case-insensitive, on word boundaries, longest phrase first (a
longer phrase claims its characters, so "heavy scratches" is never also
counted as "scratches"), and a phrase is ignored when a negator sits within
two words before it ("no cracks or scratches"). Strict groups only honour a
negator directly in front of the phrase ("not icloud locked"), so
"no lowballers, icloud locked" still hits.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional

from ..utils import collapse_ws

_NEGATOR = r"(?:^|\b)(?:no|not|never|without|zero|\w+n't)\s+"
_NEGATED_TAIL = re.compile(_NEGATOR + r"(?:[\w-]+\s+){0,2}$")
_NEGATED_ADJACENT = re.compile(_NEGATOR + r"$")
_BATTERY_HEALTH = re.compile(
    r"battery(?:\s+health)?(?:\s+(?:is|at|of))?\s*[:=]?\s*(\d{2,3})\s*%"
)


@dataclass(frozen=True)
class Hit:
    group: str
    tag: str
    phrase: str


class KeywordScanner:
    """Scan text for phrases from several named groups in a single pass."""

    def __init__(self, groups: Mapping[str, Mapping[str, str]], strict_groups: Iterable[str] = ()):
        self.strict_groups = frozenset(strict_groups)
        entries = []
        for group, phrases in groups.items():
            for phrase, tag in phrases.items():
                phrase = collapse_ws(phrase).lower()
                if phrase:
                    entries.append((phrase, group, tag))
        entries.sort(key=lambda e: len(e[0]), reverse=True)
        self._patterns = [
            (re.compile(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)"), phrase, group, tag)
            for phrase, group, tag in entries
        ]

    def scan(self, text: str) -> List[Hit]:
        text = collapse_ws(text).lower()
        claimed = bytearray(len(text))
        hits = []
        for pattern, phrase, group, tag in self._patterns:
            for m in pattern.finditer(text):
                start, end = m.span()
                if any(claimed[start:end]):
                    continue
                claimed[start:end] = b"\x01" * (end - start)
                if is_negated(text, start, adjacent=group in self.strict_groups):
                    continue
                hits.append(Hit(group, tag, phrase))
        return hits


def is_negated(text: str, start: int, adjacent: bool = False) -> bool:
    window = text[max(0, start - 40):start]
    pattern = _NEGATED_ADJACENT if adjacent else _NEGATED_TAIL
    return bool(pattern.search(window))


def battery_health(text: str) -> Optional[int]:
    m = _BATTERY_HEALTH.search(collapse_ws(text).lower())
    if not m:
        return None
    value = int(m.group(1))
    return value if value <= 100 else None


def blob(*parts) -> str:
    """Join text fields (strings or lists of tags) into one lower-cased string."""
    out = []
    for part in parts:
        if not part:
            continue
        if isinstance(part, (list, tuple)):
            out.extend(str(p).replace("_", " ") for p in part)
        else:
            out.append(str(part))
    return collapse_ws(" ".join(out)).lower()


def unique(items: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result
