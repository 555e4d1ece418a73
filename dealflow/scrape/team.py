from __future__ import annotations

import re
from collections import Counter
from typing import Iterable, List, Optional, Tuple

from dealflow import config

from .models import TeamMember
from .patterns import (
    EXECUTIVE_TITLES,
    FIRST_NAME_CONTACT_RE,
    FIRST_NAME_STOPWORDS,
    HEADCOUNT_PATTERNS,
    HEADCOUNT_RANGE_RE,
    JOB_TITLES,
    NAME_THEN_TITLE_RE,
    PERSON_NAME_STOPWORDS,
    STANDALONE_NAME_RE,
    TEAM_PAGE_RE,
)

_CAP_WORD_START_RE = re.compile(r"\b(?=[A-Z])")
_COMPOUND_JOINERS = (" of ", " for ", " -", ",", " and ", " & ", "/")

HEADCOUNT_MIN = 2
HEADCOUNT_MAX = 10_000


def _name_key(name: str) -> str:
    return re.sub(r"\s+", " ", name).strip().lower()


def is_valid_person_name(name: str) -> bool:
    tokens = [t.strip(".") for t in name.split()]
    if len(tokens) < 2 or len(tokens) > 3:
        return False
    return not any(t.lower() in PERSON_NAME_STOPWORDS for t in tokens if len(t) > 1)


def classify_title(raw: str) -> Optional[bool]:
    """
    None when `raw` is not a recognised title; otherwise whether it is an
    executive title. Compound forms ("VP of Sales", "Owner, Master Plumber")
    match on their leading title.
    """
    t = re.sub(r"\s+", " ", raw or "").strip().lower()
    if len(t) < 2 or len(t) > 60:
        return None

    if t in EXECUTIVE_TITLES:
        return True
    if t in JOB_TITLES:
        return False

    for vocab, is_exec in ((EXECUTIVE_TITLES, True), (JOB_TITLES, False)):
        for title in vocab:
            if any(t.startswith(title + j) for j in _COMPOUND_JOINERS):
                return is_exec
    return None


def _clean_title(raw: str) -> str:
    t = re.split(r"[.;!?|]\s", raw + " ", maxsplit=1)[0]
    return t.strip().rstrip(".;!?:,").strip()


def _titled_members(line: str, source_url: str) -> Iterable[TeamMember]:
    pos = 0
    while pos < len(line):
        m = None
        for start in _CAP_WORD_START_RE.finditer(line, pos):
            cand = NAME_THEN_TITLE_RE.match(line, start.start())
            if not cand:
                continue
            name = re.sub(r"\s+", " ", cand.group(1)).strip()
            title = _clean_title(cand.group(2))
            if not is_valid_person_name(name):
                continue
            is_exec = classify_title(title)
            if is_exec is None:
                continue
            m = cand
            yield TeamMember(name=name, title=title, is_executive=is_exec, source_url=source_url)
            break
        if m is None:
            return
        pos = m.end()


def extract_team_members(text: str, source_url: str) -> List[TeamMember]:
    """
    "Name - Title" pairs validated against the title vocabularies, plus
    standalone names on team/about pages (no title).
    """
    members: List[TeamMember] = []
    seen = set()

    for line in (text or "").splitlines():
        for member in _titled_members(line, source_url):
            key = _name_key(member.name)
            if key not in seen:
                seen.add(key)
                members.append(member)

    if TEAM_PAGE_RE.search(source_url.lower()):
        for line in (text or "").splitlines():
            m = STANDALONE_NAME_RE.match(line.strip())
            if not m or not is_valid_person_name(m.group(1)):
                continue
            name = re.sub(r"\s+", " ", m.group(1))
            key = _name_key(name)
            if key not in seen:
                seen.add(key)
                members.append(TeamMember(name=name, title=None, is_executive=False, source_url=source_url))

    return members[: config.MAX_TEAM_MEMBERS]


def dedupe_team_members(members: Iterable[TeamMember], limit: int = config.MAX_TEAM_MEMBERS) -> List[TeamMember]:
    """Merge case/whitespace variants; an executive entry replaces a non-executive one."""
    by_key = {}
    for member in members:
        key = _name_key(member.name)
        existing = by_key.get(key)
        if existing is None or (member.is_executive and not existing.is_executive):
            by_key[key] = member
    return list(by_key.values())[:limit]


def extract_first_name_contacts(text: str) -> List[str]:
    """'Call Mike', 'Ask for Raul'. Never promoted to a full team member."""
    out: List[str] = []
    for m in FIRST_NAME_CONTACT_RE.finditer(text or ""):
        name = m.group(1)
        low = name.lower()
        if low in FIRST_NAME_STOPWORDS or low in PERSON_NAME_STOPWORDS:
            continue
        if name not in out:
            out.append(name)
    return out


def extract_headcount(text: str) -> Optional[Tuple[int, str]]:
    """
    (estimate, matched phrase). Ranges count as their upper bound; the most
    frequently stated value wins, ties go to the larger one.
    """
    candidates: List[Tuple[int, str]] = []

    for _name, rx in HEADCOUNT_PATTERNS:
        for m in rx.finditer(text or ""):
            n = int(m.group(1))
            if HEADCOUNT_MIN <= n <= HEADCOUNT_MAX:
                candidates.append((n, m.group(0).strip()))

    for m in HEADCOUNT_RANGE_RE.finditer(text or ""):
        low, high = int(m.group(1)), int(m.group(2))
        if HEADCOUNT_MIN <= high <= HEADCOUNT_MAX and high > low:
            candidates.append((high, m.group(0).strip()))

    if not candidates:
        return None

    freq = Counter(n for n, _ in candidates)
    best = max(candidates, key=lambda c: (freq[c[0]], c[0]))
    return best
