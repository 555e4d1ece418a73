from __future__ import annotations

import re
import urllib.parse
from typing import List, Optional

from bs4 import BeautifulSoup

_NON_CONTENT_TAGS = ("script", "style", "noscript", "svg", "template", "iframe")
_BLOCK_TAGS = ("p", "li", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "td", "dd", "figcaption")
_WS_RE = re.compile(r"[ \t\r\f\v]+")


def soup_for(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _strip_non_content(soup: BeautifulSoup) -> BeautifulSoup:
    for tag in soup.find_all(_NON_CONTENT_TAGS):
        tag.decompose()
    return soup


def html_to_text(html: str) -> str:
    """
    Visible text with one line per block element; blank lines collapsed.
    Line structure matters to the team-member and standalone-name passes.
    """
    if not html:
        return ""
    soup = _strip_non_content(soup_for(html))
    raw = soup.get_text("\n")
    lines = [_WS_RE.sub(" ", ln).strip() for ln in raw.splitlines()]
    return "\n".join(ln for ln in lines if ln)


def text_blocks(html: str, text: str = "") -> List[str]:
    """
    Paragraph-level blocks for snippet matching. Falls back to the plain text's
    lines when there is no markup.
    """
    blocks: List[str] = []
    if html:
        soup = _strip_non_content(soup_for(html))
        for node in soup.find_all(_BLOCK_TAGS):
            # skip containers whose text is repeated by a nested block
            if node.find(_BLOCK_TAGS):
                continue
            t = re.sub(r"\s+", " ", node.get_text(" ", strip=True)).strip()
            if t:
                blocks.append(t)
    if not blocks and text:
        blocks = [re.sub(r"\s+", " ", b).strip() for b in re.split(r"\n+", text) if b.strip()]
    return blocks


def page_title(html: str) -> Optional[str]:
    if not html:
        return None
    soup = soup_for(html)
    if soup.title and soup.title.string:
        return soup.title.string.strip() or None
    return None


def strip_fragment(url: str) -> str:
    u = urllib.parse.urlparse(url)
    return urllib.parse.urlunparse((u.scheme, u.netloc, u.path, u.params, u.query, ""))


def extract_links(base_url: str, html: str, max_links: int = 80) -> List[str]:
    out: List[str] = []
    if not html:
        return out

    for a in soup_for(html).find_all("a", href=True):
        href = (a.get("href") or "").strip()
        if not href or href.startswith("#"):
            continue
        if href.lower().startswith(("mailto:", "tel:", "javascript:")):
            continue
        abs_url = strip_fragment(urllib.parse.urljoin(base_url, href))
        if abs_url not in out:
            out.append(abs_url)
        if len(out) >= max_links:
            break

    return out
