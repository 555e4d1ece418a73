"""
Task descriptor + search list loading.

JOB_INPUT (JSON):
    {
      "jobId": "...",                      required
      "campaignId": "...",
      "campaignRunId": "...",
      "searchList": "<path or http(s) url>",  required (alias: searchesS3Key)
      "skipCachedSearches": true,
      "maxResultsPerSearch": 60
    }

Search list payload:
    {"searches": ["plumbers in Denver, CO", {"textQuery": "...", "includedType": "plumber"}]}
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Mapping, Optional, Union

import requests

from dealflow import config
from dealflow.errors import ConfigurationError, ProviderError

from .models import JobInput, SearchSpec


def _as_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return bool(v)
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "y", "on")
    return False


def parse_job_input(raw: Union[str, Mapping[str, Any], None] = None) -> JobInput:
    """
    Parse the task descriptor. With no argument, reads env JOB_INPUT.

    Raises ConfigurationError when the descriptor is missing, not JSON, or lacks
    jobId / the search-list pointer.
    """
    if raw is None:
        raw = os.environ.get("JOB_INPUT")
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ConfigurationError("JOB_INPUT is required.")

    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ConfigurationError(f"JOB_INPUT is not valid JSON: {e}")
    else:
        data = dict(raw)

    if not isinstance(data, dict):
        raise ConfigurationError("JOB_INPUT must be a JSON object.")

    job_id = str(data.get("jobId") or "").strip()
    pointer = str(data.get("searchList") or data.get("searchesS3Key") or "").strip()
    if not job_id or not pointer:
        raise ConfigurationError("jobId and searchList are required in JOB_INPUT.")

    try:
        max_results = int(data.get("maxResultsPerSearch") or config.MAX_RESULTS_CAP)
    except (TypeError, ValueError):
        raise ConfigurationError("maxResultsPerSearch must be an integer.")
    max_results = max(1, min(max_results, config.MAX_RESULTS_CAP))

    return JobInput(
        job_id=job_id,
        search_list=pointer,
        campaign_id=(str(data["campaignId"]) if data.get("campaignId") else None),
        campaign_run_id=(str(data["campaignRunId"]) if data.get("campaignRunId") else None),
        skip_cached_searches=_as_bool(data.get("skipCachedSearches", False)),
        max_results_per_search=max_results,
    )


def parse_search_list(payload: Any) -> List[SearchSpec]:
    """Normalize {searches: [...]} into SearchSpecs, dropping blank entries."""
    if not isinstance(payload, dict):
        raise ConfigurationError("search list must be a JSON object with a 'searches' array.")
    entries = payload.get("searches") or []
    if not isinstance(entries, list):
        raise ConfigurationError("'searches' must be an array.")

    out: List[SearchSpec] = []
    for entry in entries:
        if isinstance(entry, str):
            q = entry.strip()
            if q:
                out.append(SearchSpec(text_query=q))
        elif isinstance(entry, dict):
            q = str(entry.get("textQuery") or "").strip()
            if not q:
                continue
            t = str(entry.get("includedType") or "").strip() or None
            out.append(SearchSpec(text_query=q, included_type=t))
    return out


def load_search_list(
    pointer: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: Optional[int] = None,
) -> List[SearchSpec]:
    """
    Fetch the search list from a local path or an http(s) URL (e.g. a presigned
    object-storage URL).
    """
    body: Dict[str, Any]
    if pointer.startswith(("http://", "https://")):
        sess = session or requests.Session()
        try:
            resp = sess.get(pointer, timeout=timeout or config.http_timeout())
            resp.raise_for_status()
            body = resp.json()
        except ValueError as e:
            raise ConfigurationError(f"search list is not valid JSON: {e}")
        except requests.RequestException as e:
            raise ProviderError(f"[search_list] fetch failed: {e}", kind="search_list")
    else:
        try:
            with open(pointer, "r", encoding="utf-8") as f:
                body = json.load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"search list not found: {pointer}")
        except ValueError as e:
            raise ConfigurationError(f"search list is not valid JSON: {e}")

    return parse_search_list(body)
