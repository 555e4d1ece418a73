from __future__ import annotations

import datetime as dt
import re
from typing import List, Optional, Tuple

from .models import AcquisitionSignal
from .patterns import (
    ACQUISITION_PATTERNS,
    ANNIVERSARY_RE,
    FAMILY_OWNED_RE,
    FOUNDED_YEAR_RE,
    MENTIONED_DATE_RE,
    YEARS_IN_BUSINESS_RE,
)

MIN_FOUNDED_YEAR = 1800
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")
MAX_SIGNAL_TEXT = 300


def _current_year(now_year: Optional[int]) -> int:
    return now_year if now_year is not None else dt.date.today().year


def extract_founded_year(text: str, *, now_year: Optional[int] = None) -> Optional[Tuple[int, str]]:
    """
    (year, matched phrase). Tried in order: explicit founded/established/since
    year, "NN years in business", "NNth anniversary", "family-owned since".
    """
    text = text or ""
    current = _current_year(now_year)

    for m in FOUNDED_YEAR_RE.finditer(text):
        year = int(m.group(1))
        if MIN_FOUNDED_YEAR <= year <= current:
            return year, m.group(0).strip()

    for rx in (YEARS_IN_BUSINESS_RE, ANNIVERSARY_RE):
        for m in rx.finditer(text):
            years = int(m.group(1))
            if 0 < years < 200:
                return current - years, m.group(0).strip()

    for m in FAMILY_OWNED_RE.finditer(text):
        year = int(m.group(1))
        if MIN_FOUNDED_YEAR <= year <= current:
            return year, m.group(0).strip()

    return None


def extract_acquisition_signals(text: str, source_url: str) -> List[AcquisitionSignal]:
    """
    Sentences announcing a change of control. The sentence is kept as the
    signal text; a month-year or bare year inside it becomes mentioned_date.
    """
    out: List[AcquisitionSignal] = []
    seen = set()

    for sentence in _SENTENCE_SPLIT_RE.split(text or ""):
        sentence = sentence.strip()
        if not sentence:
            continue
        for signal_type, rx in ACQUISITION_PATTERNS:
            if not rx.search(sentence):
                continue
            snippet = sentence[:MAX_SIGNAL_TEXT]
            key = (signal_type, snippet.lower())
            if key in seen:
                break
            seen.add(key)
            dm = MENTIONED_DATE_RE.search(sentence)
            out.append(
                AcquisitionSignal(
                    signal_type=signal_type,
                    text=snippet,
                    mentioned_date=dm.group(1) if dm else None,
                    source_url=source_url,
                )
            )
            # one signal per sentence
            break

    return out


def acquisition_summary(signals: List[AcquisitionSignal]) -> Optional[str]:
    if not signals:
        return None
    first = signals[0]
    if first.mentioned_date:
        return f"{first.text} ({first.mentioned_date})"
    return first.text
