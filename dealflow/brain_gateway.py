"""
BrainGateway: the one place dealflow talks to an LLM.

Every call is logged to `llm_calls` (context type, model, input, output,
success, latency, lead/job linkage), whether it succeeds or not.

Current `context_type` values:

  - "lead_extraction"   website text -> structured facts
  - "lead_scoring"      facts + market context -> scores
  - "ops_healthcheck"   model/infra probes

Unknown values are logged with a WARNING and written as-is.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence

from openai import APIConnectionError, APIStatusError, OpenAI, OpenAIError, RateLimitError
from sqlalchemy import text

from dealflow import config
from dealflow.db import get_session
from dealflow.errors import ProviderError

logger = logging.getLogger(__name__)

ALLOWED_CONTEXT_TYPES = {
    "lead_extraction",
    "lead_scoring",
    "ops_healthcheck",
}


def _normalize_context_type(raw: Optional[str]) -> str:
    if raw is None:
        return "ops_healthcheck"
    if raw not in ALLOWED_CONTEXT_TYPES:
        logger.warning(
            "BrainGateway called with non-standard context_type=%r. Expected one of: %s",
            raw,
            sorted(ALLOWED_CONTEXT_TYPES),
        )
    return raw


def _build_client() -> OpenAI:
    # raises ConfigurationError when the key is missing; never at import time
    return OpenAI(api_key=config.openai_api_key())


def _log_call(
    *,
    context_type: str,
    model: str,
    input_text: str,
    output_text: str,
    lead_id: Optional[int],
    job_id: Optional[str],
    success: bool,
    latency_ms: int,
) -> None:
    try:
        with get_session() as session:
            session.execute(
                text(
                    """
                    INSERT INTO llm_calls (
                        context_type, model_name, input_text, output_text,
                        lead_id, job_id, success, latency_ms, created_at
                    )
                    VALUES (
                        :context_type, :model_name, :input_text, :output_text,
                        :lead_id, :job_id, :success, :latency_ms, now()
                    )
                    """
                ),
                {
                    "context_type": context_type,
                    "model_name": model,
                    "input_text": input_text,
                    "output_text": output_text,
                    "lead_id": lead_id,
                    "job_id": job_id,
                    "success": success,
                    "latency_ms": latency_ms,
                },
            )
    except Exception:
        # telemetry must never fail the call it describes
        logger.exception("Failed to log llm_call")


class BrainGateway:
    """
    Thin wrapper around OpenAI chat completions that:
      1) calls the model in JSON mode at temperature 0
      2) retries throttling with fixed backoff (5s, 15s, 45s)
      3) logs every attempt to llm_calls
      4) returns the raw response text, or raises ProviderError
    """

    def __init__(
        self,
        client_instance: Optional[OpenAI] = None,
        *,
        backoff: Sequence[float] = config.LLM_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        log_calls: bool = True,
    ):
        self._client: Optional[OpenAI] = client_instance
        self._backoff = tuple(backoff)
        self._sleep = sleep
        self._log_calls = log_calls

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = _build_client()
        return self._client

    def _call_once(self, *, system: str, prompt: str, model: str) -> str:
        response = self.client.chat.completions.create(
            model=model,
            temperature=0,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        )
        return response.choices[0].message.content or ""

    def complete_json(
        self,
        prompt: str,
        system: str,
        *,
        model: str,
        context_type: Optional[str] = None,
        lead_id: Optional[int] = None,
        job_id: Optional[str] = None,
    ) -> str:
        ctx = _normalize_context_type(context_type)
        input_text = f"[system]\n{system}\n\n[user]\n{prompt}"
        attempt = 0

        while True:
            start = time.perf_counter()
            try:
                output = self._call_once(system=system, prompt=prompt, model=model)
            except OpenAIError as e:
                latency_ms = int((time.perf_counter() - start) * 1000)
                if self._log_calls:
                    _log_call(
                        context_type=ctx, model=model, input_text=input_text,
                        output_text=f"[ERROR] {type(e).__name__}: {e}",
                        lead_id=lead_id, job_id=job_id, success=False, latency_ms=latency_ms,
                    )

                throttled = isinstance(e, RateLimitError)
                if throttled and attempt < len(self._backoff):
                    wait = self._backoff[attempt]
                    attempt += 1
                    logger.warning("LLM throttled (lead_id=%s); retry %d in %.0fs", lead_id, attempt, wait)
                    self._sleep(wait)
                    continue

                status = getattr(e, "status_code", None) if isinstance(e, APIStatusError) else None
                if throttled:
                    status = 429
                kind = "connection" if isinstance(e, APIConnectionError) else "llm"
                raise ProviderError(f"{type(e).__name__}: {str(e)[:300]}", status_code=status, kind=kind) from e

            latency_ms = int((time.perf_counter() - start) * 1000)
            if self._log_calls:
                _log_call(
                    context_type=ctx, model=model, input_text=input_text, output_text=output,
                    lead_id=lead_id, job_id=job_id, success=True, latency_ms=latency_ms,
                )
            return output
