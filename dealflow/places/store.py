"""
Postgres persistence for Places ingestion.

Every mutation is either an idempotent insert-or-ignore or an update keyed by a
unique id, so overlapping campaign runs need no in-process locking.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.types import JSON

from dealflow.db import translate_db_error
from dealflow.jobs import JobStore

from .models import PlaceRecord, RunCounters


FRANCHISE_ATTACH = "attach"
FRANCHISE_CREATE = "create"


def franchise_action(existing_franchise_id: Optional[int], name_shared: bool) -> Optional[str]:
    """
    attach when a franchise already exists for the name, create one when
    another place shares the name, otherwise None (leave the lead unlinked).
    """
    if existing_franchise_id is not None:
        return FRANCHISE_ATTACH
    if name_shared:
        return FRANCHISE_CREATE
    return None


_RECENT_QUERY_SQL = text(
    """
    SELECT 1
    FROM search_queries
    WHERE text_query = :text_query
      AND included_type IS NOT DISTINCT FROM :included_type
      AND executed_at >= now() - make_interval(days => :window_days)
    LIMIT 1
    """
)

_CREATE_QUERY_SQL = text(
    """
    INSERT INTO search_queries (campaign_id, campaign_run_id, text_query, included_type, executed_at)
    VALUES (:campaign_id, :campaign_run_id, :text_query, :included_type, now())
    RETURNING id
    """
)

_INSERT_LEAD_SQL = text(
    """
    INSERT INTO leads (
        place_id, campaign_id, campaign_run_id, search_query_id,
        name, normalized_name, address, city, state, zip_code, latitude, longitude,
        phone, international_phone, website, google_maps_uri,
        rating, review_count, price_level, business_type, primary_type, types,
        business_status, opening_hours, editorial_summary, review_summary,
        source, created_at, updated_at
    )
    VALUES (
        :place_id, :campaign_id, :campaign_run_id, :search_query_id,
        :name, :normalized_name, :address, :city, :state, :zip_code, :latitude, :longitude,
        :phone, :international_phone, :website, :google_maps_uri,
        :rating, :review_count, :price_level, :business_type, :primary_type, :types,
        :business_status, :opening_hours, :editorial_summary, :review_summary,
        'google_places', now(), now()
    )
    ON CONFLICT (place_id) DO NOTHING
    RETURNING id
    """
).bindparams(
    bindparam("types", type_=JSON()),
    bindparam("opening_hours", type_=JSON()),
)


class PlacesStore(JobStore):
    # -----------------------------
    # Campaign run bookkeeping
    # -----------------------------
    def start_campaign_run(self, run_id: str) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    text(
                        """
                        UPDATE campaign_runs
                        SET status = 'running', started_at = COALESCE(started_at, now())
                        WHERE id = :id
                        """
                    ),
                    {"id": run_id},
                )
        except SQLAlchemyError as e:
            raise translate_db_error(e, what="start_campaign_run")

    def update_run_counters(self, run_id: str, counters: RunCounters) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    text(
                        """
                        UPDATE campaign_runs
                        SET queries_executed = :queries_executed,
                            leads_found = :leads_found,
                            duplicates_skipped = :duplicates_skipped,
                            errors = :errors
                        WHERE id = :id
                        """
                    ),
                    {"id": run_id, **counters.as_dict()},
                )
        except SQLAlchemyError as e:
            raise translate_db_error(e, what="update_run_counters")

    def finish_campaign_run(
        self,
        run_id: str,
        *,
        status: str,
        counters: RunCounters,
        error_message: Optional[str] = None,
    ) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    text(
                        """
                        UPDATE campaign_runs
                        SET status = :status,
                            queries_executed = :queries_executed,
                            leads_found = :leads_found,
                            duplicates_skipped = :duplicates_skipped,
                            errors = :errors,
                            error_message = :error_message,
                            completed_at = now()
                        WHERE id = :id
                        """
                    ),
                    {
                        "id": run_id,
                        "status": status,
                        "error_message": (error_message or None) and error_message[:2000],
                        **counters.as_dict(),
                    },
                )
        except SQLAlchemyError as e:
            raise translate_db_error(e, what="finish_campaign_run")

    # -----------------------------
    # Search queries
    # -----------------------------
    def recent_query_exists(self, text_query: str, included_type: Optional[str], *, window_days: int) -> bool:
        try:
            with self.engine.begin() as conn:
                hit = conn.execute(
                    _RECENT_QUERY_SQL,
                    {"text_query": text_query, "included_type": included_type, "window_days": int(window_days)},
                ).scalar()
        except SQLAlchemyError as e:
            raise translate_db_error(e, what="recent_query_exists")
        return hit is not None

    def create_search_query(
        self,
        *,
        campaign_id: Optional[str],
        campaign_run_id: Optional[str],
        text_query: str,
        included_type: Optional[str],
    ) -> int:
        try:
            with self.engine.begin() as conn:
                qid = conn.execute(
                    _CREATE_QUERY_SQL,
                    {
                        "campaign_id": campaign_id,
                        "campaign_run_id": campaign_run_id,
                        "text_query": text_query,
                        "included_type": included_type,
                    },
                ).scalar_one()
        except SQLAlchemyError as e:
            raise translate_db_error(e, what="create_search_query")
        return int(qid)

    def record_query_result(self, query_id: int, *, results_count: int, new_leads_count: int) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    text(
                        """
                        UPDATE search_queries
                        SET results_count = :results_count, new_leads_count = :new_leads_count
                        WHERE id = :id
                        """
                    ),
                    {"id": query_id, "results_count": results_count, "new_leads_count": new_leads_count},
                )
        except SQLAlchemyError as e:
            raise translate_db_error(e, what="record_query_result")

    # -----------------------------
    # Leads / franchises
    # -----------------------------
    def insert_lead(
        self,
        rec: PlaceRecord,
        *,
        campaign_id: Optional[str],
        campaign_run_id: Optional[str],
        search_query_id: Optional[int],
    ) -> Optional[int]:
        """
        Insert-or-ignore keyed by place_id. Returns the new lead id, or None when
        the place already existed (first writer wins).
        """
        params = {
            "place_id": rec.place_id,
            "campaign_id": campaign_id,
            "campaign_run_id": campaign_run_id,
            "search_query_id": search_query_id,
            "name": rec.name,
            "normalized_name": rec.normalized_name,
            "address": rec.address,
            "city": rec.city,
            "state": rec.state,
            "zip_code": rec.zip_code,
            "latitude": rec.latitude,
            "longitude": rec.longitude,
            "phone": rec.phone,
            "international_phone": rec.international_phone,
            "website": rec.website,
            "google_maps_uri": rec.google_maps_uri,
            "rating": rec.rating,
            "review_count": rec.review_count,
            "price_level": rec.price_level,
            "business_type": rec.business_type,
            "primary_type": rec.primary_type,
            "types": rec.types,
            "business_status": rec.business_status,
            "opening_hours": rec.opening_hours,
            "editorial_summary": rec.editorial_summary,
            "review_summary": rec.review_summary,
        }
        try:
            with self.engine.begin() as conn:
                new_id = conn.execute(_INSERT_LEAD_SQL, params).scalar()
        except SQLAlchemyError as e:
            raise translate_db_error(e, what=f"insert_lead place_id={rec.place_id}")
        return int(new_id) if new_id is not None else None

    def link_franchise(self, *, lead_id: int, place_id: str, normalized_name: str, display_name: str) -> Optional[int]:
        """
        Attach the lead to the franchise for its normalized name. A new
        franchise is backfilled onto every lead sharing the name; a name no
        other place carries leaves the lead unlinked (returns None).
        """
        if not normalized_name:
            return None
        try:
            with self.engine.begin() as conn:
                fid = conn.execute(
                    text("SELECT id FROM franchises WHERE normalized_name = :n"),
                    {"n": normalized_name},
                ).scalar()

                shared = False
                if fid is None:
                    shared = conn.execute(
                        text(
                            """
                            SELECT 1 FROM leads
                            WHERE normalized_name = :n AND place_id <> :place_id
                            LIMIT 1
                            """
                        ),
                        {"n": normalized_name, "place_id": place_id},
                    ).scalar() is not None

                action = franchise_action(fid, shared)
                if action is None:
                    return None

                if action == FRANCHISE_CREATE:
                    fid = conn.execute(
                        text(
                            """
                            INSERT INTO franchises (normalized_name, display_name, created_at)
                            VALUES (:n, :display_name, now())
                            ON CONFLICT (normalized_name) DO NOTHING
                            RETURNING id
                            """
                        ),
                        {"n": normalized_name, "display_name": display_name},
                    ).scalar()
                    if fid is None:
                        # lost the race to a concurrent run
                        fid = conn.execute(
                            text("SELECT id FROM franchises WHERE normalized_name = :n"),
                            {"n": normalized_name},
                        ).scalar_one()

                    conn.execute(
                        text(
                            """
                            UPDATE leads SET franchise_id = :fid, updated_at = now()
                            WHERE normalized_name = :n AND franchise_id IS NULL
                            """
                        ),
                        {"fid": fid, "n": normalized_name},
                    )
                else:
                    conn.execute(
                        text("UPDATE leads SET franchise_id = :fid, updated_at = now() WHERE id = :id"),
                        {"fid": fid, "id": lead_id},
                    )
        except SQLAlchemyError as e:
            raise translate_db_error(e, what=f"link_franchise lead_id={lead_id}")
        return int(fid)
