from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

_OBJECT_RE = re.compile(r"\{.*\}", re.S)


def load_json_object(raw: str) -> Dict[str, Any]:
    """
    Parse a model response into a dict. Tolerates prose or code fences around
    the object; raises ValueError when there is no JSON object at all.
    """
    raw = (raw or "").strip()
    try:
        data = json.loads(raw)
    except ValueError:
        m = _OBJECT_RE.search(raw)
        if not m:
            raise ValueError("no JSON object in response")
        data = json.loads(m.group(0))
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def str_list(v: Any) -> List[str]:
    if not isinstance(v, list):
        return []
    return [str(x).strip() for x in v if isinstance(x, (str, int, float)) and str(x).strip()]


def opt_int(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return int(v)
    if isinstance(v, str) and v.strip().lstrip("-").isdigit():
        return int(v.strip())
    return None


def count(v: Any) -> int:
    n = opt_int(v)
    return n if n is not None and n > 0 else 0
