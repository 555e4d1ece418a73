"""
Polite same-domain crawler producing FetchedPage objects for extraction.

Breadth-first from a fixed set of seed paths; discovered links are queued by
keyword score so about/contact/team pages are reached inside the page budget.
Stops on the page cap, the per-domain time budget, or after too many
consecutive failures.
"""

from __future__ import annotations

import logging
import time
import urllib.parse
import urllib.robotparser
from typing import Callable, List, Optional, Set, Tuple

import requests

from dealflow import config

from .html import extract_links, html_to_text, page_title, strip_fragment
from .models import FetchedPage

logger = logging.getLogger(__name__)

_HEADERS = {
    "User-Agent": config.CRAWL_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

_SEED_PATHS = (
    "/",
    "/about",
    "/about-us",
    "/contact",
    "/contact-us",
    "/team",
    "/our-team",
    "/staff",
    "/leadership",
    "/history",
)

KEYWORD_PRIORITY = (
    "about",
    "contact",
    "team",
    "staff",
    "leadership",
    "history",
    "owner",
    "careers",
    "services",
    "locations",
)

_BLOCK_NETLOCS_SUBSTR = (
    "facebook.com",
    "instagram.com",
    "linkedin.com",
    "twitter.com",
    "x.com",
    "tiktok.com",
    "youtube.com",
    "yelp.com",
    "goo.gl",
    "bit.ly",
)

_SKIP_SUFFIXES = (".pdf", ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".zip", ".mp4", ".doc", ".docx")


def normalize_root_url(raw: Optional[str]) -> Optional[str]:
    s = (raw or "").strip()
    if not s:
        return None
    if "://" not in s:
        s = "https://" + s

    u = urllib.parse.urlparse(s)
    if u.scheme not in ("http", "https") or not u.netloc:
        return None

    netloc = u.netloc.lower()
    if any(bad in netloc for bad in _BLOCK_NETLOCS_SUBSTR):
        return None

    return urllib.parse.urlunparse((u.scheme, netloc, "/", "", "", ""))


def _bare_host(url: str) -> str:
    host = urllib.parse.urlparse(url).netloc.lower()
    return host[4:] if host.startswith("www.") else host


def _score_url(u: str) -> int:
    low = u.lower()
    score = 0
    for i, kw in enumerate(KEYWORD_PRIORITY):
        if kw in low:
            score += (len(KEYWORD_PRIORITY) - i) * 10
    score -= min(len(low), 200) // 10
    return score


class SiteCrawler:
    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        max_pages: Optional[int] = None,
        max_depth: Optional[int] = None,
        timeout: Optional[int] = None,
        delay_s: Optional[float] = None,
        budget_s: Optional[int] = None,
        fail_fast_limit: Optional[int] = None,
        ignore_robots: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session or requests.Session()
        self.max_pages = max_pages if max_pages is not None else config.crawl_max_pages()
        self.max_depth = max_depth if max_depth is not None else config.crawl_max_depth()
        self.timeout = timeout if timeout is not None else config.http_timeout()
        self.delay_s = delay_s if delay_s is not None else config.crawl_delay_s()
        self.budget_s = budget_s if budget_s is not None else config.crawl_domain_budget_s()
        self.fail_fast_limit = fail_fast_limit if fail_fast_limit is not None else config.crawl_fail_fast_limit()
        self.ignore_robots = ignore_robots if ignore_robots is not None else config.crawl_ignore_robots()
        self._clock = clock
        self._sleep = sleep

    def _robots(self, root: str) -> Optional[urllib.robotparser.RobotFileParser]:
        if self.ignore_robots:
            return None
        # RobotFileParser.read() has no timeout; fetch it ourselves
        try:
            r = self.session.get(urllib.parse.urljoin(root, "/robots.txt"), headers=_HEADERS, timeout=self.timeout)
        except requests.RequestException:
            return None
        if r.status_code >= 400:
            return None
        rp = urllib.robotparser.RobotFileParser()
        rp.parse(r.text.splitlines())
        return rp

    def _get(self, url: str) -> Tuple[int, str, str, str]:
        r = self.session.get(url, headers=_HEADERS, timeout=self.timeout, allow_redirects=True)
        ctype = (r.headers.get("Content-Type") or "").lower()
        return r.status_code, ctype, r.text, strip_fragment(r.url or url)

    def crawl(self, website_url: str) -> List[FetchedPage]:
        root = normalize_root_url(website_url)
        if not root:
            logger.info("crawl skipped, unusable website url=%r", website_url)
            return []

        started = self._clock()
        failures = 0
        host = _bare_host(root)
        robots = self._robots(root)

        seen: Set[str] = set()
        queue: List[Tuple[str, int, Optional[str]]] = [
            (urllib.parse.urljoin(root, p), 0, None) for p in _SEED_PATHS
        ]
        out: List[FetchedPage] = []

        while queue and len(out) < self.max_pages:
            if self._clock() - started > self.budget_s:
                logger.info("crawl budget stop root=%s pages=%d failures=%d", root, len(out), failures)
                break
            if failures >= self.fail_fast_limit:
                logger.info("crawl fail-fast stop root=%s pages=%d failures=%d", root, len(out), failures)
                break

            url, depth, parent = queue.pop(0)
            url = strip_fragment(url)
            if url in seen or depth > self.max_depth:
                continue
            seen.add(url)

            if _bare_host(url) != host:
                continue
            if urllib.parse.urlparse(url).path.lower().endswith(_SKIP_SUFFIXES):
                continue
            if robots is not None and not robots.can_fetch(_HEADERS["User-Agent"], url):
                continue

            try:
                status, ctype, body, final_url = self._get(url)
            except requests.RequestException as e:
                failures += 1
                logger.debug("fetch failed url=%s: %s", url, e)
                continue

            if status in (401, 403, 429) or status >= 500:
                failures += 1
                continue
            if status >= 400:
                continue
            if "text/html" not in ctype and "application/xhtml" not in ctype:
                continue
            if final_url != url and final_url in seen:
                continue
            seen.add(final_url)

            out.append(
                FetchedPage(
                    url=final_url,
                    html=body,
                    text=html_to_text(body),
                    depth=depth,
                    status_code=status,
                    title=page_title(body),
                    parent_url=parent,
                )
            )

            for nxt in sorted(extract_links(final_url, body), key=_score_url, reverse=True):
                if nxt not in seen:
                    queue.append((nxt, depth + 1, final_url))

            if self.delay_s:
                self._sleep(self.delay_s)

        return out


def crawl_site(website_url: str, **kwargs) -> List[FetchedPage]:
    return SiteCrawler(**kwargs).crawl(website_url)
