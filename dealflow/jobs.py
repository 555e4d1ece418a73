"""
Shared `jobs` table bookkeeping. Stage stores subclass JobStore so each
pipeline stage records running / terminal status the same way.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from dealflow.db import get_engine, translate_db_error


class JobStore:
    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = get_engine()
        return self._engine

    def start_job(self, job_id: str, *, job_type: str) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    text(
                        """
                        INSERT INTO jobs (id, job_type, status, started_at, created_at)
                        VALUES (:id, :job_type, 'running', now(), now())
                        ON CONFLICT (id) DO UPDATE
                        SET status = 'running', started_at = now(), error_message = NULL, completed_at = NULL
                        """
                    ),
                    {"id": job_id, "job_type": job_type},
                )
        except SQLAlchemyError as e:
            raise translate_db_error(e, what="start_job")

    def finish_job(
        self,
        job_id: str,
        *,
        status: str,
        error_message: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    text(
                        """
                        UPDATE jobs
                        SET status = :status,
                            error_message = :error_message,
                            meta = COALESCE(meta, '{}'::jsonb) || CAST(:meta AS jsonb),
                            completed_at = now()
                        WHERE id = :id
                        """
                    ),
                    {
                        "id": job_id,
                        "status": status,
                        "error_message": (error_message or None) and error_message[:2000],
                        "meta": json.dumps(meta or {}),
                    },
                )
        except SQLAlchemyError as e:
            raise translate_db_error(e, what="finish_job")
