from __future__ import annotations

import re
import urllib.parse
from typing import Dict, Iterable, Optional

from .patterns import SOCIAL_BLOCKED_SEGMENTS, SOCIAL_HOSTS, SOCIAL_URL_PATTERNS

PLATFORMS = ("linkedin", "facebook", "instagram", "twitter")

_LINKEDIN_PATH_RE = re.compile(r"^/(company|in)/[^/]+/?$", re.I)


def _host(u: urllib.parse.ParseResult) -> str:
    host = (u.hostname or "").lower()
    for prefix in ("www.", "m."):
        if host.startswith(prefix):
            host = host[len(prefix):]
    return host


def platform_for(url: str) -> Optional[str]:
    host = _host(urllib.parse.urlparse(url or ""))
    for platform, hosts in SOCIAL_HOSTS.items():
        if host in hosts:
            return platform
    return None


def normalize_profile_url(url: str) -> str:
    """Drop query and fragment, then any trailing slash."""
    u = urllib.parse.urlparse(url.strip())
    return urllib.parse.urlunparse((u.scheme or "https", u.netloc, u.path, "", "", "")).rstrip("/")


def is_valid_profile_url(url: str, platform: str) -> bool:
    """
    True when `url` looks like a business profile on `platform`; share buttons,
    tracking pixels, post permalinks and login pages are rejected.
    """
    try:
        u = urllib.parse.urlparse(url or "")
    except ValueError:
        return False

    if u.scheme not in ("http", "https"):
        return False
    if _host(u) not in SOCIAL_HOSTS.get(platform, ()):
        return False

    head = u.path.lstrip("/").split("/", 1)[0].lower()
    if not head or head in SOCIAL_BLOCKED_SEGMENTS[platform]:
        return False

    if platform == "linkedin":
        return bool(_LINKEDIN_PATH_RE.match(u.path))
    return True


def from_urls(urls: Iterable[str]) -> Dict[str, str]:
    """One profile per platform from an explicit URL list (schema.org sameAs)."""
    out: Dict[str, str] = {}
    for url in urls:
        platform = platform_for(url)
        if platform and platform not in out and is_valid_profile_url(url, platform):
            out[platform] = normalize_profile_url(url)
    return out


def extract_social_links(raw_html: str) -> Dict[str, str]:
    """First valid profile link per platform found anywhere in the markup."""
    out: Dict[str, str] = {}
    if not raw_html:
        return out

    for platform in PLATFORMS:
        for m in SOCIAL_URL_PATTERNS[platform].finditer(raw_html):
            cand = m.group(0)
            if is_valid_profile_url(cand, platform):
                out[platform] = normalize_profile_url(cand)
                break
    return out
