"""
schema.org JSON-LD extraction.

Blocks are merged across one page (Organization + LocalBusiness is common);
first non-empty value per field wins.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from .html import soup_for

logger = logging.getLogger(__name__)

SCHEMA_TYPES_OF_INTEREST = {
    "localbusiness",
    "organization",
    "corporation",
    "homeandconstructionbusiness",
    "professionalservice",
    "financialservice",
    "insuranceagency",
    "realestateagent",
    "legalservice",
    "dentist",
    "physician",
    "store",
    "restaurant",
    "autorepair",
    "plumber",
    "electrician",
    "hvacbusiness",
    "roofingcontractor",
    "generalcontractor",
    "housepainter",
    "locksmith",
    "movingcompany",
}

_YEAR_RE = re.compile(r"\b(1[89]\d{2}|20\d{2})\b")


@dataclass
class SchemaOrgData:
    name: Optional[str] = None
    email: Optional[str] = None
    telephone: Optional[str] = None
    founding_year: Optional[int] = None
    number_of_employees: Optional[int] = None
    founders: List[str] = field(default_factory=list)
    same_as: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(
            (self.name, self.email, self.telephone, self.founding_year,
             self.number_of_employees, self.founders, self.same_as)
        )


def _iter_nodes(data: Any) -> Iterable[dict]:
    if isinstance(data, list):
        for item in data:
            yield from _iter_nodes(item)
    elif isinstance(data, dict):
        yield data
        if "@graph" in data:
            yield from _iter_nodes(data["@graph"])


def _types(node: dict) -> List[str]:
    t = node.get("@type")
    if isinstance(t, str):
        return [t.lower()]
    if isinstance(t, list):
        return [x.lower() for x in t if isinstance(x, str)]
    return []


def _first_str(v: Any) -> Optional[str]:
    if isinstance(v, str):
        return v.strip() or None
    if isinstance(v, list):
        for x in v:
            s = _first_str(x)
            if s:
                return s
    return None


def _employees(v: Any) -> Optional[int]:
    if isinstance(v, dict):
        v = v.get("value") or v.get("maxValue") or v.get("minValue")
    if isinstance(v, (int, float)):
        return int(v)
    if isinstance(v, str):
        m = re.search(r"\d+", v.replace(",", ""))
        if m:
            return int(m.group(0))
    return None


def _founder_names(v: Any) -> List[str]:
    out: List[str] = []
    items = v if isinstance(v, list) else [v]
    for item in items:
        if isinstance(item, dict):
            n = _first_str(item.get("name"))
        else:
            n = _first_str(item)
        if n:
            out.append(n)
    return out


def _load_block(raw: str) -> Any:
    try:
        return json.loads(raw, strict=False)
    except ValueError:
        # trailing commas / html comments wrapped around the payload
        cleaned = re.sub(r"^\s*<!--|-->\s*$", "", raw.strip())
        cleaned = re.sub(r",\s*([}\]])", r"\1", cleaned)
        return json.loads(cleaned, strict=False)


def extract_schema_org(html: str) -> Optional[SchemaOrgData]:
    if not html or "ld+json" not in html:
        return None

    merged = SchemaOrgData()
    for script in soup_for(html).find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text() or ""
        if not raw.strip():
            continue
        try:
            data = _load_block(raw)
        except ValueError:
            logger.debug("unparseable JSON-LD block skipped")
            continue

        for node in _iter_nodes(data):
            if not SCHEMA_TYPES_OF_INTEREST.intersection(_types(node)):
                continue

            merged.name = merged.name or _first_str(node.get("name"))
            merged.email = merged.email or (_first_str(node.get("email")) or "").replace("mailto:", "").lower() or None
            merged.telephone = merged.telephone or _first_str(node.get("telephone"))

            if merged.founding_year is None:
                fd = _first_str(node.get("foundingDate"))
                m = _YEAR_RE.search(fd or "")
                if m:
                    merged.founding_year = int(m.group(1))

            if merged.number_of_employees is None:
                merged.number_of_employees = _employees(node.get("numberOfEmployees"))

            for n in _founder_names(node.get("founder")):
                if n not in merged.founders:
                    merged.founders.append(n)

            same_as = node.get("sameAs")
            for url in ([same_as] if isinstance(same_as, str) else (same_as or [])):
                if isinstance(url, str) and url.strip() and url.strip() not in merged.same_as:
                    merged.same_as.append(url.strip())

    return None if merged.is_empty() else merged
