"""
Postgres reads and writes for the scoring stage.

Reads pull the lead row, its latest completed crawl and the contact rows that
crawl produced. The verdict write overwrites the lead's scoring columns.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.types import JSON

from dealflow.db import translate_db_error
from dealflow.jobs import JobStore
from dealflow.scrape.aggregate import build_site_document
from dealflow.scrape.models import FetchedPage

from .models import HeuristicFacts, ScoringVerdict

logger = logging.getLogger(__name__)

LEAD_FIELDS = (
    "name",
    "business_type",
    "city",
    "state",
    "phone",
    "website",
    "rating",
    "review_count",
    "price_level",
    "editorial_summary",
    "review_summary",
)

_LATEST_RUN_SQL = """
    SELECT id FROM scrape_runs
    WHERE lead_id = :lead_id AND status = 'completed'
    ORDER BY completed_at DESC NULLS LAST, id DESC
    LIMIT 1
"""

_SAVE_VERDICT_SQL = text(
    """
    UPDATE leads
    SET controlling_owner = :controlling_owner,
        ownership_type = :ownership_type,
        is_excluded = :is_excluded,
        exclusion_reason = :exclusion_reason,
        business_quality_score = :business_quality_score,
        exit_readiness_score = :exit_readiness_score,
        scoring_rationale = :rationale,
        supporting_evidence = :supporting_evidence,
        scored_at = now(),
        updated_at = now()
    WHERE id = :lead_id
    """
).bindparams(bindparam("supporting_evidence", type_=JSON()))


class ScoringStore(JobStore):
    def leads_to_score(
        self,
        *,
        limit: int = 50,
        lead_ids: Optional[Sequence[int]] = None,
        rescore: bool = False,
    ) -> List[int]:
        where = ["1=1"]
        params: Dict[str, object] = {"limit": int(limit)}
        if not rescore:
            where.append("scored_at IS NULL")
        if lead_ids:
            where.append("id = ANY(:ids)")
            params["ids"] = list(lead_ids)
        sql = text(
            f"""
            SELECT id FROM leads
            WHERE {' AND '.join(where)}
            ORDER BY id
            LIMIT :limit
            """
        )
        try:
            with self.engine.begin() as conn:
                return [int(r[0]) for r in conn.execute(sql, params).all()]
        except SQLAlchemyError as e:
            raise translate_db_error(e, what="leads_to_score")

    def load_lead(self, lead_id: int) -> Optional[Dict[str, Any]]:
        """
        Lead data for the scoring prompt plus `scored_at`. Contacts come from
        the latest completed crawl; None when the lead does not exist.
        """
        cols = ", ".join(LEAD_FIELDS)
        try:
            with self.engine.begin() as conn:
                row = conn.execute(
                    text(f"SELECT {cols}, contact_page_url, scored_at FROM leads WHERE id = :id"),
                    {"id": lead_id},
                ).mappings().first()
                if row is None:
                    return None
                lead = dict(row)
                run_id = conn.execute(text(_LATEST_RUN_SQL), {"lead_id": lead_id}).scalar()
                lead["emails"], lead["phones"] = [], []
                lead["social"] = {}
                if run_id is not None:
                    p = {"run_id": run_id}
                    lead["emails"] = list(
                        conn.execute(text("SELECT value FROM lead_emails WHERE source_run_id = :run_id ORDER BY id"), p).scalars()
                    )
                    lead["phones"] = list(
                        conn.execute(text("SELECT value FROM lead_phones WHERE source_run_id = :run_id ORDER BY id"), p).scalars()
                    )
                    lead["social"] = {
                        r["platform"]: r["url"]
                        for r in conn.execute(
                            text("SELECT platform, url FROM lead_social_profiles WHERE source_run_id = :run_id"), p
                        ).mappings()
                    }
        except SQLAlchemyError as e:
            raise translate_db_error(e, what="load_lead")
        return lead

    def heuristic_facts(self, lead_id: int) -> HeuristicFacts:
        try:
            with self.engine.begin() as conn:
                founded = conn.execute(text("SELECT founded_year FROM leads WHERE id = :id"), {"id": lead_id}).scalar()
                run_id = conn.execute(text(_LATEST_RUN_SQL), {"lead_id": lead_id}).scalar()
                rows = []
                if run_id is not None:
                    rows = conn.execute(
                        text("SELECT name, kind FROM lead_team_members WHERE source_run_id = :run_id ORDER BY id"),
                        {"run_id": run_id},
                    ).mappings().all()
        except SQLAlchemyError as e:
            raise translate_db_error(e, what="heuristic_facts")

        return HeuristicFacts(
            founded_year=founded,
            first_name_only_contacts=[r["name"] for r in rows if r["kind"] == "first_name_only"],
            team_member_names=[r["name"] for r in rows if r["kind"] == "member"],
        )

    def site_document(self, lead_id: int) -> str:
        try:
            with self.engine.begin() as conn:
                run_id = conn.execute(text(_LATEST_RUN_SQL), {"lead_id": lead_id}).scalar()
                if run_id is None:
                    return ""
                rows = conn.execute(
                    text(
                        """
                        SELECT url, title, text_content, depth, status_code
                        FROM scraped_pages WHERE scrape_run_id = :run_id
                        ORDER BY depth, id
                        """
                    ),
                    {"run_id": run_id},
                ).mappings().all()
        except SQLAlchemyError as e:
            raise translate_db_error(e, what="site_document")

        pages = [
            FetchedPage(
                url=r["url"],
                text=r["text_content"] or "",
                depth=r["depth"] or 0,
                status_code=r["status_code"] or 200,
                title=r["title"],
            )
            for r in rows
        ]
        return build_site_document(pages)

    def save_verdict(self, lead_id: int, verdict: ScoringVerdict) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _SAVE_VERDICT_SQL,
                    {
                        "lead_id": lead_id,
                        "controlling_owner": verdict.controlling_owner,
                        "ownership_type": verdict.ownership_type,
                        "is_excluded": verdict.is_excluded,
                        "exclusion_reason": verdict.exclusion_reason,
                        "business_quality_score": verdict.business_quality_score,
                        "exit_readiness_score": verdict.exit_readiness_score,
                        "rationale": verdict.rationale,
                        "supporting_evidence": verdict.supporting_evidence,
                    },
                )
        except SQLAlchemyError as e:
            raise translate_db_error(e, what="save_verdict")
        logger.debug("verdict saved lead_id=%s bq=%s er=%s", lead_id, verdict.business_quality_score, verdict.exit_readiness_score)
