"""
Postgres persistence for crawl & extraction.

One scrape_runs row per crawl attempt. Pages and every extracted item are
append-only and point back at the run and the page they came from; the lead's
scrape-derived scalar columns are overwritten with the latest non-null values.
"""

from __future__ import annotations

import logging
import urllib.parse
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from dealflow.db import translate_db_error
from dealflow.jobs import JobStore

from .aggregate import page_text
from .models import ExtractedData, FetchedPage

logger = logging.getLogger(__name__)


@dataclass
class ScrapeTarget:
    lead_id: int
    website: str
    phone: Optional[str] = None


_INSERT_RUN_SQL = text(
    """
    INSERT INTO scrape_runs (lead_id, job_id, root_url, status, pages_count, duration_ms,
                             error_message, started_at, completed_at)
    VALUES (:lead_id, :job_id, :root_url, :status, :pages_count, :duration_ms,
            :error_message, now() - make_interval(secs => :duration_s), now())
    RETURNING id
    """
)

_INSERT_PAGE_SQL = text(
    """
    INSERT INTO scraped_pages (scrape_run_id, lead_id, parent_page_id, depth, url, domain,
                               status_code, title, text_content, html, scraped_at)
    VALUES (:run_id, :lead_id, :parent_page_id, :depth, :url, :domain,
            :status_code, :title, :text_content, :html, now())
    RETURNING id
    """
)

_UPDATE_LEAD_SQL = text(
    """
    UPDATE leads
    SET founded_year = COALESCE(:founded_year, founded_year),
        years_in_business = COALESCE(:years_in_business, years_in_business),
        headcount_estimate = COALESCE(:headcount_estimate, headcount_estimate),
        headcount_source = COALESCE(:headcount_source, headcount_source),
        has_acquisition_signal = :has_acquisition_signal,
        acquisition_summary = :acquisition_summary,
        contact_page_url = COALESCE(:contact_page_url, contact_page_url),
        web_scraped_at = now(),
        updated_at = now()
    WHERE id = :lead_id
    """
)


def _domain(url: str) -> str:
    return urllib.parse.urlparse(url).netloc.lower()


class ScrapeStore(JobStore):
    def leads_to_scrape(
        self,
        *,
        limit: int = 25,
        lead_ids: Optional[Sequence[int]] = None,
        force: bool = False,
    ) -> List[ScrapeTarget]:
        """
        Leads with a website that have not been crawled yet. Explicit
        `lead_ids` bypass the not-yet-crawled filter only when `force`.
        """
        where = ["website IS NOT NULL", "website <> ''"]
        params: Dict[str, object] = {"limit": int(limit)}
        if not force:
            where.append("web_scraped_at IS NULL")
        if lead_ids:
            where.append("id = ANY(:ids)")
            params["ids"] = list(lead_ids)

        sql = text(
            f"""
            SELECT id, website, phone
            FROM leads
            WHERE {' AND '.join(where)}
            ORDER BY id
            LIMIT :limit
            """
        )
        try:
            with self.engine.begin() as conn:
                rows = conn.execute(sql, params).mappings().all()
        except SQLAlchemyError as e:
            raise translate_db_error(e, what="leads_to_scrape")
        return [ScrapeTarget(lead_id=int(r["id"]), website=r["website"], phone=r["phone"]) for r in rows]

    def persist(
        self,
        lead_id: int,
        root_url: str,
        pages: Iterable[FetchedPage],
        extracted: ExtractedData,
        *,
        job_id: Optional[str] = None,
        duration_ms: int = 0,
    ) -> int:
        """Write one completed crawl in a single transaction; returns the scrape run id."""
        pages = sorted(pages, key=lambda p: p.depth)
        try:
            with self.engine.begin() as conn:
                run_id = int(
                    conn.execute(
                        _INSERT_RUN_SQL,
                        {
                            "lead_id": lead_id,
                            "job_id": job_id,
                            "root_url": root_url,
                            "status": "completed",
                            "pages_count": len(pages),
                            "duration_ms": int(duration_ms),
                            "duration_s": duration_ms / 1000.0,
                            "error_message": None,
                        },
                    ).scalar_one()
                )

                page_ids: Dict[str, int] = {}
                for page in pages:
                    pid = conn.execute(
                        _INSERT_PAGE_SQL,
                        {
                            "run_id": run_id,
                            "lead_id": lead_id,
                            "parent_page_id": page_ids.get(page.parent_url or ""),
                            "depth": page.depth,
                            "url": page.url,
                            "domain": _domain(page.url),
                            "status_code": page.status_code,
                            "title": page.title,
                            "text_content": page_text(page),
                            "html": page.html,
                        },
                    ).scalar_one()
                    page_ids[page.url] = int(pid)

                def prov(url: str) -> Dict[str, Optional[int]]:
                    return {"lead_id": lead_id, "run_id": run_id, "page_id": page_ids.get(url)}

                for e in extracted.emails:
                    conn.execute(
                        text(
                            """
                            INSERT INTO lead_emails (lead_id, value, source_page_id, source_run_id, created_at)
                            VALUES (:lead_id, :value, :page_id, :run_id, now())
                            ON CONFLICT (source_run_id, value) DO NOTHING
                            """
                        ),
                        {**prov(e.source_url), "value": e.value},
                    )

                for p in extracted.phones:
                    conn.execute(
                        text(
                            """
                            INSERT INTO lead_phones (lead_id, value, is_confirmed_listing_phone,
                                                     source_page_id, source_run_id, created_at)
                            VALUES (:lead_id, :value, :confirmed, :page_id, :run_id, now())
                            ON CONFLICT (source_run_id, value) DO NOTHING
                            """
                        ),
                        {**prov(p.source_url), "value": p.value, "confirmed": extracted.listing_phone_confirmed},
                    )

                for s in extracted.social.values():
                    conn.execute(
                        text(
                            """
                            INSERT INTO lead_social_profiles (lead_id, platform, url, source_page_id,
                                                              source_run_id, created_at)
                            VALUES (:lead_id, :platform, :url, :page_id, :run_id, now())
                            ON CONFLICT (source_run_id, platform) DO NOTHING
                            """
                        ),
                        {**prov(s.source_url), "platform": s.platform, "url": s.url},
                    )

                member_sql = text(
                    """
                    INSERT INTO lead_team_members (lead_id, name, title, is_executive, kind,
                                                   source_page_id, source_run_id, created_at)
                    VALUES (:lead_id, :name, :title, :is_executive, :kind, :page_id, :run_id, now())
                    """
                )
                for m in extracted.team_members:
                    conn.execute(
                        member_sql,
                        {**prov(m.source_url), "name": m.name, "title": m.title,
                         "is_executive": m.is_executive, "kind": "member"},
                    )
                for f in extracted.first_name_contacts:
                    conn.execute(
                        member_sql,
                        {**prov(f.source_url), "name": f.value, "title": None,
                         "is_executive": False, "kind": "first_name_only"},
                    )

                for a in extracted.acquisition_signals:
                    conn.execute(
                        text(
                            """
                            INSERT INTO lead_acquisition_signals (lead_id, signal_type, text, mentioned_date,
                                                                  source_page_id, source_run_id, created_at)
                            VALUES (:lead_id, :signal_type, :text, :mentioned_date, :page_id, :run_id, now())
                            """
                        ),
                        {**prov(a.source_url), "signal_type": a.signal_type, "text": a.text,
                         "mentioned_date": a.mentioned_date},
                    )

                for s in extracted.snippets:
                    conn.execute(
                        text(
                            """
                            INSERT INTO lead_snippets (lead_id, category, text, source_page_id,
                                                       source_run_id, created_at)
                            VALUES (:lead_id, :category, :text, :page_id, :run_id, now())
                            """
                        ),
                        {**prov(s.source_url), "category": s.category, "text": s.text},
                    )

                conn.execute(
                    _UPDATE_LEAD_SQL,
                    {
                        "lead_id": lead_id,
                        "founded_year": extracted.founded_year.value if extracted.founded_year else None,
                        "years_in_business": extracted.years_in_business,
                        "headcount_estimate": extracted.headcount.value if extracted.headcount else None,
                        "headcount_source": extracted.headcount.evidence if extracted.headcount else None,
                        "has_acquisition_signal": extracted.has_acquisition_signal,
                        "acquisition_summary": extracted.acquisition_summary,
                        "contact_page_url": extracted.contact_page_url,
                    },
                )
        except SQLAlchemyError as e:
            raise translate_db_error(e, what=f"persist scrape lead_id={lead_id}")

        return run_id

    def record_failure(
        self,
        lead_id: int,
        root_url: str,
        error_message: str,
        *,
        job_id: Optional[str] = None,
        duration_ms: int = 0,
    ) -> int:
        """
        A failed crawl still gets a run row, and the lead is stamped as crawled
        so the next batch moves on; re-crawl with force.
        """
        try:
            with self.engine.begin() as conn:
                run_id = conn.execute(
                    _INSERT_RUN_SQL,
                    {
                        "lead_id": lead_id,
                        "job_id": job_id,
                        "root_url": root_url,
                        "status": "failed",
                        "pages_count": 0,
                        "duration_ms": int(duration_ms),
                        "duration_s": duration_ms / 1000.0,
                        "error_message": (error_message or "")[:2000],
                    },
                ).scalar_one()
                conn.execute(
                    text("UPDATE leads SET web_scraped_at = now(), updated_at = now() WHERE id = :id"),
                    {"id": lead_id},
                )
        except SQLAlchemyError as e:
            raise translate_db_error(e, what=f"record scrape failure lead_id={lead_id}")
        return int(run_id)
