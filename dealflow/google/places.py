"""
Google Places (v1) text search client.

- RateLimiter: one gate per ingestion run; sleeps before every provider call.
- PlacesClient.search_text_page(): one POST places:searchText, with retry on
  429 / 5xx / network errors.
- parse_place(): raw place dict -> PlaceRecord.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from dealflow import config
from dealflow.errors import ProviderError
from dealflow.places.models import PlaceRecord, PlacesPage
from dealflow.places.normalize import extract_city_state, normalize_name

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Minimum-interval gate derived from a requests-per-second budget.

    Owned by a single ingestion run; not shared across processes.
    """

    def __init__(
        self,
        per_second: float = config.RATE_LIMIT_PER_SECOND,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if per_second <= 0:
            raise ValueError("per_second must be > 0")
        self.min_interval = 1.0 / float(per_second)
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None

    def wait(self) -> None:
        if self._last is not None:
            elapsed = self._clock() - self._last
            if elapsed < self.min_interval:
                self._sleep(self.min_interval - elapsed)
        self._last = self._clock()


class PlacesClient:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[int] = None,
        max_retries: int = config.MAX_RETRIES_DEFAULT,
        retry_backoff: float = config.RETRY_BACKOFF_DEFAULT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._api_key = api_key
        self.limiter = limiter or RateLimiter(sleep=sleep)
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else config.http_timeout()
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._sleep = sleep

    @property
    def api_key(self) -> str:
        if not self._api_key:
            self._api_key = config.places_api_key()
        return self._api_key

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": ",".join(config.PLACES_FIELD_MASK),
        }

    def _post_json(self, body: Dict[str, Any], *, kind: str) -> Dict[str, Any]:
        """
        POST with basic retry. Returns parsed JSON or raises ProviderError.

        The limiter is consulted before every attempt, retries included.
        """
        last_status: Optional[int] = None

        for attempt in range(self.max_retries + 1):
            self.limiter.wait()
            try:
                resp = self.session.post(
                    config.PLACES_SEARCH_URL,
                    headers=self._headers(),
                    data=json.dumps(body),
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                if attempt >= self.max_retries:
                    raise ProviderError(
                        f"[{kind}] HTTP error after {self.max_retries} retries: {e}",
                        kind=kind,
                    )
                self._sleep(self.retry_backoff * (2 ** attempt))
                continue

            last_status = resp.status_code

            if resp.status_code == 429 or resp.status_code >= 500:
                if attempt >= self.max_retries:
                    raise ProviderError(
                        f"[{kind}] status={resp.status_code} after {self.max_retries} retries",
                        status_code=resp.status_code,
                        kind=kind,
                    )
                cooldown = min(60.0, self.retry_backoff * (2 ** attempt))
                logger.warning("places %s status=%s, retrying in %.1fs", kind, resp.status_code, cooldown)
                self._sleep(cooldown)
                continue

            if resp.status_code >= 400:
                raise ProviderError(
                    f"[{kind}] status={resp.status_code}: {(resp.text or '')[:300]}",
                    status_code=resp.status_code,
                    kind=kind,
                )

            try:
                data = resp.json()
            except ValueError:
                raise ProviderError(f"[{kind}] non-JSON response body", status_code=resp.status_code, kind=kind)

            return data if isinstance(data, dict) else {}

        raise ProviderError(f"[{kind}] failed with status={last_status!r}", status_code=last_status, kind=kind)

    def search_text_page(
        self,
        text_query: str,
        *,
        included_type: Optional[str] = None,
        page_token: Optional[str] = None,
        page_size: int = config.PAGE_SIZE,
    ) -> PlacesPage:
        """
        Fetch a single result page (<= 20 places) plus the continuation token.
        """
        if not text_query:
            raise ProviderError("search_text_page requires a non-empty text_query.", kind="searchText")

        body: Dict[str, Any] = {
            "textQuery": text_query,
            "pageSize": max(1, min(int(page_size), config.PAGE_SIZE)),
        }
        if included_type:
            body["includedType"] = included_type
        if page_token:
            body["pageToken"] = page_token

        data = self._post_json(body, kind="searchText")
        places = [p for p in (data.get("places") or []) if isinstance(p, dict)]
        return PlacesPage(places=places, next_page_token=data.get("nextPageToken") or None)


def _localized(value: Any) -> Optional[str]:
    """displayName / editorialSummary style {text: ...}; reviewSummary nests one level deeper."""
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        inner = value.get("text")
        if isinstance(inner, dict):
            return _localized(inner)
        if isinstance(inner, str):
            return inner.strip() or None
    return None


def _float_or_none(v: Any) -> Optional[float]:
    try:
        return float(v) if v is not None else None
    except (TypeError, ValueError):
        return None


def _int_or_none(v: Any) -> Optional[int]:
    try:
        return int(v) if v is not None else None
    except (TypeError, ValueError):
        return None


def parse_place(raw: Dict[str, Any]) -> Optional[PlaceRecord]:
    """
    Map one Places v1 result to a PlaceRecord. Returns None when the place has no id.
    """
    place_id = (raw.get("id") or "").strip()
    if not place_id:
        return None

    name = _localized(raw.get("displayName")) or "Unknown"
    city, state, zip_code = extract_city_state(raw.get("addressComponents"))
    loc = raw.get("location") or {}

    return PlaceRecord(
        place_id=place_id,
        name=name,
        normalized_name=normalize_name(name),
        address=raw.get("formattedAddress"),
        city=city,
        state=state,
        zip_code=zip_code,
        latitude=_float_or_none(loc.get("latitude")),
        longitude=_float_or_none(loc.get("longitude")),
        phone=raw.get("nationalPhoneNumber"),
        international_phone=raw.get("internationalPhoneNumber"),
        website=raw.get("websiteUri"),
        google_maps_uri=raw.get("googleMapsUri"),
        rating=_float_or_none(raw.get("rating")),
        review_count=_int_or_none(raw.get("userRatingCount")),
        price_level=raw.get("priceLevel"),
        business_type=_localized(raw.get("primaryTypeDisplayName")),
        primary_type=raw.get("primaryType"),
        types=[t for t in (raw.get("types") or []) if isinstance(t, str)],
        business_status=raw.get("businessStatus"),
        opening_hours=raw.get("regularOpeningHours"),
        editorial_summary=_localized(raw.get("editorialSummary")),
        review_summary=_localized(raw.get("reviewSummary")),
    )
