from __future__ import annotations

import html
import re
import urllib.parse
from typing import List, Optional, Set

from dealflow import config

from .patterns import CONTACT_PAGE_RE, EMAIL_RE, MAILTO_RE, PHONE_RE, TEL_HREF_RE

_OBFUSCATED = [
    (re.compile(r"\s*\[\s*at\s*\]\s*", re.I), "@"),
    (re.compile(r"\s*\(\s*at\s*\)\s*", re.I), "@"),
    (re.compile(r"\s*\{\s*at\s*\}\s*", re.I), "@"),
    (re.compile(r"\s*\[\s*dot\s*\]\s*", re.I), "."),
    (re.compile(r"\s*\(\s*dot\s*\)\s*", re.I), "."),
    (re.compile(r"\s*\{\s*dot\s*\}\s*", re.I), "."),
]

# template placeholders and vendor mailboxes that never belong to the business
_BLOCKLIST_DOMAIN_SUBSTR = (
    "example.com",
    "domain.com",
    "email.com",
    "yourdomain",
    "wixpress.com",
    "sentry.io",
    "sentry-next.",
    "godaddy.com",
)

_BAD_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".css", ".js")


def _deobfuscate(text: str) -> str:
    out = text
    for rx, repl in _OBFUSCATED:
        out = rx.sub(repl, out)
    return out


def _is_junk_email(e: str) -> bool:
    low = (e or "").strip().lower()
    if not low or "@" not in low:
        return True

    if low.endswith(_BAD_SUFFIXES):
        return True

    dom = low.split("@", 1)[1]
    return any(bad in dom for bad in _BLOCKLIST_DOMAIN_SUBSTR)


def _clean_candidate(raw: str) -> str:
    s = urllib.parse.unquote((raw or "").strip())
    s = s.strip(" \t\r\n\"'<>[](){}.,;:")
    return s.lower()


def extract_emails(text: str, raw_html: str = "", *, limit: int = config.MAX_EMAILS) -> List[str]:
    """
    Emails from visible text plus mailto: links in markup, in first-seen order.
    Handles [at]/(dot) obfuscation and URL-encoded prefixes (%20info@...).
    """
    blob = _deobfuscate(html.unescape(text or ""))
    found: List[str] = []
    seen: Set[str] = set()

    def _add(cand: str) -> None:
        if cand in seen or _is_junk_email(cand):
            return
        seen.add(cand)
        found.append(cand)

    for m in EMAIL_RE.findall(blob):
        _add(_clean_candidate(m))

    for m in MAILTO_RE.findall(html.unescape(raw_html or "")):
        cand = _clean_candidate(m)
        if EMAIL_RE.fullmatch(cand):
            _add(cand)

    # "20info@x.com" is an artifact when "info@x.com" was also found
    clean = [
        e for e in found
        if not any(len(e) > n and e[:n].isdigit() and e[n:] in seen for n in (1, 2, 3))
    ]
    return clean[:limit]


# -----------------------------
# Phones
# -----------------------------
def normalize_phone(raw: Optional[str]) -> str:
    """Digits only; a leading US country code is dropped."""
    digits = re.sub(r"\D", "", raw or "")
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    return digits


def is_fake_phone(digits: str) -> bool:
    if len(digits) != 10:
        return True
    exchange, line = digits[3:6], digits[6:]
    if exchange == "555" and line.startswith("01"):
        return True
    if len(set(digits)) == 1:
        return True
    if digits in ("1234567890", "0123456789", "9876543210"):
        return True
    if len(set(digits[3:])) == 1:
        return True
    return False


def extract_phones(text: str, raw_html: str = "", *, limit: int = config.MAX_PHONES) -> List[str]:
    """US numbers normalized to 10 digits; tel: links are included."""
    candidates = PHONE_RE.findall(text or "")
    candidates += TEL_HREF_RE.findall(raw_html or "")

    out: List[str] = []
    for raw in candidates:
        p = normalize_phone(raw)
        if len(p) != 10 or p in out or is_fake_phone(p):
            continue
        out.append(p)
        if len(out) >= limit:
            break
    return out


# -----------------------------
# Contact page
# -----------------------------
def find_contact_page_url(urls: List[str]) -> Optional[str]:
    for u in urls:
        path = urllib.parse.urlparse(u).path or "/"
        if CONTACT_PAGE_RE.search(path):
            return u
    for u in urls:
        if "contact" in u.lower():
            return u
    return None
