"""
Regexes, title vocabularies and snippet category configuration shared by the
extractors.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Tuple

# -----------------------------
# Contact
# -----------------------------
# TLD capped at 6 chars to reject build artifacts like v@bundle.version
EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,6}\b")
MAILTO_RE = re.compile(r"mailto:([^\"'\s>?]+)", re.I)
PHONE_RE = re.compile(r"(?:\+1[-.\s]?)?\(?[2-9]\d{2}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
TEL_HREF_RE = re.compile(r"tel:([+\d().\-\s]{10,20})", re.I)

CONTACT_PAGE_RE = re.compile(r"/(?:contact(?:-us)?|get-in-touch|reach-us)/?$", re.I)

# -----------------------------
# Social
# -----------------------------
SOCIAL_URL_PATTERNS: Dict[str, re.Pattern] = {
    "linkedin": re.compile(r"https?://(?:www\.)?linkedin\.com/(?:company|in)/[a-zA-Z0-9_\-%]+/?", re.I),
    "facebook": re.compile(r"https?://(?:www\.|m\.)?facebook\.com/[a-zA-Z0-9._\-]+/?", re.I),
    "instagram": re.compile(r"https?://(?:www\.)?instagram\.com/[a-zA-Z0-9._\-]+/?", re.I),
    "twitter": re.compile(r"https?://(?:www\.)?(?:twitter\.com|x\.com)/[a-zA-Z0-9_]+/?", re.I),
}

SOCIAL_HOSTS: Dict[str, Tuple[str, ...]] = {
    "linkedin": ("linkedin.com",),
    "facebook": ("facebook.com", "fb.com"),
    "instagram": ("instagram.com",),
    "twitter": ("twitter.com", "x.com"),
}

# first path segment values that are never a business profile
SOCIAL_BLOCKED_SEGMENTS: Dict[str, frozenset] = {
    "facebook": frozenset({
        "plugins", "share.php", "sharer.php", "sharer", "dialog", "help", "privacy",
        "terms", "login", "login.php", "watch", "events", "groups", "tr", "pixel", "ads",
    }),
    "linkedin": frozenset({
        "feed", "jobs", "learning", "mynetwork", "posts", "pulse", "search", "sharearticle",
    }),
    "instagram": frozenset({"explore", "p", "reel", "reels", "stories", "tv", "accounts"}),
    "twitter": frozenset({"home", "intent", "search", "share", "hashtag", "i", "login"}),
}

# -----------------------------
# Team
# -----------------------------
NAME_THEN_TITLE_RE = re.compile(
    r"([A-Z][a-z]{1,15}(?:\s+[A-Z]\.?)?\s+[A-Z][a-z]{1,20})[ \t,\-–—|:]+([^\n]{2,60})"
)
STANDALONE_NAME_RE = re.compile(r"^([A-Z][a-z]{1,15}(?:\s+[A-Z]\.?)?\s+[A-Z][a-z]{1,20})$")
TEAM_PAGE_RE = re.compile(r"\b(about|team|staff|people|leadership|our-team|meet|who-we-are|management)\b", re.I)

# "Call Mike", "Ask for Raul": the verb is case-insensitive, the name must be capitalized
FIRST_NAME_CONTACT_RE = re.compile(
    r"\b(?i:call|ask\s+for|text|talk\s+to|speak\s+(?:to|with)|contact)\s+([A-Z][a-z]{2,15})\b(?!\s+[A-Z][a-z])"
)

EXECUTIVE_TITLES = frozenset({
    "owner", "co-owner", "founder", "co-founder", "cofounder", "founder & ceo", "founder and ceo",
    "owner/operator", "owner & operator", "owner and operator", "owner/president", "owner & president",
    "president", "vice president", "vp", "ceo", "cfo", "coo", "cto", "cio",
    "chief executive officer", "chief financial officer", "chief operating officer",
    "chief technology officer", "principal", "managing partner", "partner", "managing director",
    "general manager", "gm", "chairman", "chairman of the board", "executive director",
    "director", "proprietor", "managing member", "operations manager", "office manager",
})

JOB_TITLES = frozenset({
    "manager", "project manager", "service manager", "sales manager", "supervisor", "foreman",
    "superintendent", "estimator", "senior estimator", "coordinator", "service coordinator",
    "office administrator", "administrator", "bookkeeper", "accountant", "controller",
    "technician", "lead technician", "service technician", "installer", "lead installer",
    "master plumber", "plumber", "journeyman", "master electrician", "electrician",
    "engineer", "project engineer", "designer", "architect", "consultant", "advisor",
    "agent", "broker", "associate", "sales", "sales representative", "account manager",
    "customer service", "customer service representative", "dispatcher", "receptionist",
    "marketing manager", "marketing director", "team lead", "crew lead", "crew leader",
})

PERSON_NAME_STOPWORDS = frozenset({
    "about", "our", "the", "meet", "contact", "call", "free", "read", "learn", "home", "privacy",
    "terms", "service", "services", "request", "schedule", "get", "view", "more", "all", "new",
    "best", "top", "why", "how", "what", "who", "we", "us", "your", "my", "click", "see",
    "company", "inc", "llc", "corp", "co", "group", "plumbing", "heating", "cooling", "air",
    "electric", "electrical", "roofing", "construction", "contractors", "solutions",
    "street", "avenue", "road", "suite", "north", "south", "east", "west", "county", "city",
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "january", "february", "march", "april", "may", "june", "july", "august", "september",
    "october", "november", "december", "team", "member", "members", "staff", "leadership",
})

FIRST_NAME_STOPWORDS = frozenset({
    "now", "today", "us", "our", "the", "them", "him", "her", "any", "anytime", "ahead",
    "back", "toll", "free", "one", "your", "all", "out", "for", "and", "who", "today's",
    "dispatch", "service", "office", "sales", "support", "info", "form", "page", "team",
})

# -----------------------------
# History / headcount / acquisition
# -----------------------------
FOUNDED_YEAR_RE = re.compile(
    r"\b(?:founded|established|est\.?|since|started|opened|in\s+business\s+since)\s+(?:in\s+)?(\d{4})\b", re.I
)
YEARS_IN_BUSINESS_RE = re.compile(
    r"\b(\d{1,3})\+?\s+years\s+(?:in\s+business|of\s+(?:business|service|serving)|serving)\b", re.I
)
ANNIVERSARY_RE = re.compile(r"\b(\d{1,3})(?:st|nd|rd|th)\s+anniversary\b", re.I)
FAMILY_OWNED_RE = re.compile(
    r"\bfamily[\s-](?:owned|operated)(?:\s+and\s+(?:operated|owned))?\s+since\s+(\d{4})\b", re.I
)

_HC_NOUNS = r"(?:full[\s-]time\s+)?(?:employees|staff(?:\s+members)?|team\s+members|professionals|technicians|people|workers)"

HEADCOUNT_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    ("direct", re.compile(r"\b(\d{1,5})\+?\s+" + _HC_NOUNS + r"\b", re.I)),
    ("team-of", re.compile(r"\bteam\s+of\s+(?:over\s+|more\s+than\s+)?(\d{1,5})\b", re.I)),
    ("employs", re.compile(r"\bemploys\s+(?:over\s+|more\s+than\s+)?(\d{1,5})\b", re.I)),
    ("over", re.compile(r"\b(?:over|more\s+than)\s+(\d{1,5})\s+" + _HC_NOUNS + r"\b", re.I)),
    ("person-team", re.compile(r"\b(\d{1,5})[\s-]person\s+(?:team|staff|crew)\b", re.I)),
)
HEADCOUNT_RANGE_RE = re.compile(r"\b(\d{1,5})\s*(?:-|–|to)\s*(\d{1,5})\s+" + _HC_NOUNS + r"\b", re.I)

_ENTITY = r"[A-Z][\w&.,'\- ]{1,80}"
ACQUISITION_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    ("acquired_by", re.compile(r"\b(?i:acquired\s+by)\s+" + _ENTITY)),
    ("part_of", re.compile(r"\b(?i:now\s+(?:a\s+)?part\s+of)\s+" + _ENTITY)),
    ("merged_with", re.compile(r"\b(?i:merged\s+with)\s+" + _ENTITY)),
    ("subsidiary_of", re.compile(r"\b(?i:a\s+(?:wholly[\s-]owned\s+)?subsidiary\s+of)\s+" + _ENTITY)),
    ("new_ownership", re.compile(r"\bnew\s+ownership\b", re.I)),
)
MENTIONED_DATE_RE = re.compile(
    r"\b((?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|Aug(?:ust)?|"
    r"Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)\.?\s+(?:19|20)\d{2}|(?:19|20)\d{2})\b"
)

# -----------------------------
# Snippets
# -----------------------------
MIN_BLOCK_LENGTH = 30
MAX_BLOCK_LENGTH = 300

NAV_JUNK_RE = re.compile(
    r"\b(shop all|learn more|read more|click here|sign up|log in|subscribe|add to cart|buy now|view all|"
    r"see more|load more|show more|menu|navigation|breadcrumb|footer|header|sidebar|skip link)\b",
    re.I,
)
EXEC_TITLE_KEYWORDS_RE = re.compile(
    r"\b(ceo|cfo|coo|cto|cio|president|vice president|vp|director|general manager|gm|manager|supervisor|team lead)\b",
    re.I,
)


@dataclass(frozen=True)
class SnippetCategory:
    phrases: Tuple[str, ...]
    max_per_page: int
    min_words: int
    reject_phrases: Tuple[str, ...] = ()


SNIPPET_CATEGORIES: Dict[str, SnippetCategory] = {
    "history": SnippetCategory(
        phrases=(
            "founded in", "established in", "since 19", "since 20", "years of experience",
            "years in business", "years serving", "family owned", "family-owned", "family operated",
            "family-operated", "generation business", "been in business", "our history",
            "company was founded", "we were founded", "we were established", "has been serving",
            "have been serving",
        ),
        max_per_page=3,
        min_words=8,
    ),
    "executive_hire": SnippetCategory(
        phrases=(
            "joins our team", "joins the team", "joined our team", "joined the team", "new team member",
            "recently hired", "new hire", "pleased to welcome", "proud to welcome", "excited to welcome",
            "welcome aboard",
        ),
        reject_phrases=("technician", "installer", "helper", "apprentice", "intern"),
        max_per_page=3,
        min_words=6,
    ),
    "certification": SnippetCategory(
        phrases=(
            "certified by", "certification from", "certified contractor", "accredited by",
            "accreditation from", "osha certified", "osha compliant", "osha trained", "iso certified",
            "iso 9001", "leed certified", "leed accredited", "nate certified", "epa certified", "epa lead",
            "master certified", "factory certified", "manufacturer certified", "certified technician",
            "certified installer", "certified professional",
        ),
        max_per_page=3,
        min_words=5,
    ),
    "award": SnippetCategory(
        phrases=(
            "award winning", "award-winning", "won the award", "received the award", "best of",
            "top rated", "top-rated", "five star", "5-star", "5 star", "angi super service",
            "angie's list", "angies list", "bbb a+", "bbb accredited", "better business bureau",
            "voted best", "named best", "recognized as", "excellence award", "service award",
        ),
        reject_phrases=(
            "rewards", "loyalty", "cash back", "cashback", "earn points", "redeem", "membership",
            "auto delivery", "points for every",
        ),
        max_per_page=3,
        min_words=5,
    ),
    "licensing": SnippetCategory(
        phrases=(
            "license #", "license no", "lic #", "lic.", "licensed contractor", "licensed and bonded",
            "licensed & bonded", "fully licensed", "state licensed", "registered contractor",
            "contractor license", "bonded and licensed", "bonded & licensed",
        ),
        max_per_page=2,
        min_words=4,
    ),
    "revenue_scale": SnippetCategory(
        phrases=(
            "million in revenue", "annual revenue", "revenue of", "projects completed", "jobs completed",
            "homes built", "customers served", "clients served", "households served", "units managed",
            "properties managed", "square feet", "sq ft installed", "acres managed",
        ),
        max_per_page=3,
        min_words=6,
    ),
    "recurring_revenue": SnippetCategory(
        phrases=(
            "maintenance contract", "maintenance agreement", "maintenance plan", "service contract",
            "service agreement", "service plan", "managed services", "monthly service", "annual service",
            "subscription", "retainer", "preventive maintenance", "recurring", "ongoing maintenance",
            "planned maintenance",
        ),
        reject_phrases=("cancel anytime", "free trial", "newsletter", "unsubscribe"),
        max_per_page=3,
        min_words=6,
    ),
    "commercial_clients": SnippetCategory(
        phrases=(
            "commercial clients", "commercial customers", "commercial projects", "government contract",
            "federal contract", "state contract", "municipal", "property management", "property managers",
            "general contractor", "subcontract", "hoa", "homeowners association", "fortune 500",
            "enterprise clients", "corporate clients", "institutional", "industrial clients",
        ),
        max_per_page=3,
        min_words=6,
    ),
    "multi_location": SnippetCategory(
        phrases=(
            "locations across", "offices across", "branches across", "expanded to", "expanding to",
            "opened our", "regional offices", "multiple locations", "multiple offices", "serving multiple",
            "nationwide", "statewide", "locations in", "branches in",
        ),
        reject_phrases=("apply now", "job opening", "career"),
        max_per_page=2,
        min_words=6,
    ),
    "succession": SnippetCategory(
        phrases=(
            "retirement", "retiring", "looking to sell", "ready to sell", "next chapter",
            "succession plan", "transition plan", "passing the torch", "stepping down", "winding down",
            "exit strategy", "business transition", "ownership transition", "legacy planning",
        ),
        max_per_page=2,
        min_words=6,
    ),
    "proprietary": SnippetCategory(
        phrases=(
            "patented", "patent pending", "patent #", "proprietary technology", "proprietary process",
            "proprietary system", "proprietary method", "proprietary software", "proprietary formula",
            "fleet of", "specialized equipment", "custom-built", "trade secret", "in-house developed",
            "internally developed",
        ),
        max_per_page=3,
        min_words=5,
    ),
}
