from __future__ import annotations

import re
from typing import Any, Dict, Iterable, Optional, Tuple

_WS_RE = re.compile(r"\s+")


def normalize_name(name: Optional[str]) -> str:
    """
    Franchise grouping key: trimmed, lowercased, internal whitespace collapsed.
    """
    return _WS_RE.sub(" ", (name or "").strip().lower())


def _component_text(comp: Dict[str, Any], *, short: bool = False) -> Optional[str]:
    keys = ("shortText", "longText") if short else ("longText", "shortText")
    for k in keys:
        v = comp.get(k)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return None


def extract_city_state(
    components: Optional[Iterable[Dict[str, Any]]],
) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """
    Pull (city, state, zip_code) out of Places v1 addressComponents.

    city falls back locality -> postal_town -> sublocality; state uses the short
    code of administrative_area_level_1 ("CO", not "Colorado").
    """
    by_type: Dict[str, Dict[str, Any]] = {}
    for comp in components or []:
        if not isinstance(comp, dict):
            continue
        for t in comp.get("types") or []:
            by_type.setdefault(t, comp)

    city = None
    for t in ("locality", "postal_town", "sublocality"):
        if t in by_type:
            city = _component_text(by_type[t])
            if city:
                break

    state = _component_text(by_type["administrative_area_level_1"], short=True) if "administrative_area_level_1" in by_type else None
    zip_code = _component_text(by_type["postal_code"]) if "postal_code" in by_type else None

    return city, state, zip_code
