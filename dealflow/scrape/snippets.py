from __future__ import annotations

from typing import List

from .html import text_blocks
from .models import Snippet
from .patterns import (
    EXEC_TITLE_KEYWORDS_RE,
    MAX_BLOCK_LENGTH,
    MIN_BLOCK_LENGTH,
    NAV_JUNK_RE,
    SNIPPET_CATEGORIES,
)


def is_clean_block(block: str) -> bool:
    if not (MIN_BLOCK_LENGTH <= len(block) <= MAX_BLOCK_LENGTH):
        return False
    caps = sum(1 for w in block.split() if len(w) > 2 and w.isupper())
    if caps > 3:
        return False
    return not NAV_JUNK_RE.search(block)


def extract_snippets(raw_html: str, source_url: str, text: str = "") -> List[Snippet]:
    """
    Paragraph-sized blocks that mention something a buyer cares about
    (history, certifications, recurring revenue, succession...).
    """
    blocks = [b for b in text_blocks(raw_html, text) if is_clean_block(b)]
    out: List[Snippet] = []
    seen = set()

    for category, cfg in SNIPPET_CATEGORIES.items():
        count = 0
        for block in blocks:
            if count >= cfg.max_per_page:
                break
            low = block.lower()
            if len(block.split()) < cfg.min_words:
                continue
            if not any(p in low for p in cfg.phrases):
                continue
            if any(r in low for r in cfg.reject_phrases):
                continue
            if category == "executive_hire" and not EXEC_TITLE_KEYWORDS_RE.search(block):
                continue

            key = low[:MAX_BLOCK_LENGTH]
            if key in seen:
                continue
            seen.add(key)
            out.append(Snippet(category=category, text=block[:MAX_BLOCK_LENGTH], source_url=source_url))
            count += 1

    return out
