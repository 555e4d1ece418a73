"""
Market statistics in Postgres.

- market_stats_by_type / _by_state / _by_city: materialized views of review
  count cut points and rating per cohort, refreshed CONCURRENTLY so readers
  are never blocked
- lead ranks: one transaction that materializes scored leads into temp tables,
  computes entropy weights per cohort and writes percentiles + composite back
  to leads (same math as market.stats)
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from dealflow import config
from dealflow.db import get_engine, translate_db_error

from .buckets import RC_COLUMNS, TypeStats

logger = logging.getLogger(__name__)

MARKET_VIEWS = (
    ("market_stats_by_type", ("business_type",)),
    ("market_stats_by_state", ("state",)),
    ("market_stats_by_city", ("city", "state")),
)


def _percentile_select() -> str:
    cols = [
        f"PERCENTILE_CONT({round(pct / 100.0, 4)}) WITHIN GROUP (ORDER BY review_count) AS {col}"
        for pct, col in zip(config.RC_PERCENTILES, RC_COLUMNS)
    ]
    return ",\n        ".join(cols)


def market_view_ddl() -> List[str]:
    """CREATE statements for the three views plus the unique indexes CONCURRENTLY needs."""
    stmts: List[str] = []
    for view, keys in MARKET_VIEWS:
        key_list = ", ".join(keys)
        not_null = " AND ".join(f"{k} IS NOT NULL" for k in keys)
        stmts.append(
            f"""
            CREATE MATERIALIZED VIEW IF NOT EXISTS {view} AS
            SELECT {key_list},
                COUNT(*)::int AS lead_count,
                AVG(rating)::float AS rating_mean,
                PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY rating) AS rating_median,
                {_percentile_select()}
            FROM leads
            WHERE review_count IS NOT NULL AND {not_null}
            GROUP BY {key_list}
            """
        )
        stmts.append(f"CREATE UNIQUE INDEX IF NOT EXISTS ux_{view} ON {view} ({key_list})")
    return stmts


def refresh_market_stats(engine: Optional[Engine] = None) -> None:
    engine = engine or get_engine()
    try:
        # REFRESH ... CONCURRENTLY cannot run inside a transaction block
        with engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
            for view, _ in MARKET_VIEWS:
                conn.exec_driver_sql(f"REFRESH MATERIALIZED VIEW CONCURRENTLY {view}")
                logger.info("refreshed %s", view)
    except SQLAlchemyError as e:
        raise translate_db_error(e, what="refresh_market_stats")


def _weights_sql(table: str, keys: tuple) -> str:
    k = ", ".join(keys)
    k_cc = ", ".join(f"cc.{x}" for x in keys)
    not_null = " AND ".join(f"{x} IS NOT NULL" for x in keys[:1])

    def join(alias: str) -> str:
        return " AND ".join(f"{alias}.{x} IS NOT DISTINCT FROM cc.{x}" for x in keys)

    def entropy(score: str) -> str:
        return f"""
            SELECT {k},
              CASE WHEN COUNT(*) <= 1 THEN 0 ELSE -SUM(p * LN(p)) / LN(10) END AS h
            FROM (
              SELECT {k}, {score},
                     COUNT(*)::float / SUM(COUNT(*)) OVER (PARTITION BY {k}) AS p
              FROM _scored WHERE {not_null}
              GROUP BY {k}, {score}
            ) f
            GROUP BY {k}
        """

    return f"""
        CREATE TEMP TABLE {table} ON COMMIT DROP AS
        WITH q_ent AS ({entropy('business_quality_score')}),
             s_ent AS ({entropy('exit_readiness_score')})
        SELECT {k_cc}, cc.cnt,
               cc.cnt * COALESCE(q.h, 0) AS q_w,
               cc.cnt * COALESCE(s.h, 0) AS s_w
        FROM (SELECT {k}, COUNT(*) AS cnt FROM _scored WHERE {not_null} GROUP BY {k}) cc
        LEFT JOIN q_ent q ON {join('q')}
        LEFT JOIN s_ent s ON {join('s')}
    """


_SCORED_SQL = """
    CREATE TEMP TABLE _scored ON COMMIT DROP AS
    SELECT id, business_type, city, state, business_quality_score, exit_readiness_score
    FROM leads
    WHERE business_quality_score IS NOT NULL AND business_quality_score <> -1
      AND exit_readiness_score IS NOT NULL AND exit_readiness_score <> -1
      AND is_excluded = false
"""

_RANK_UPDATE_SQL = f"""
    WITH ranked AS (
      SELECT s.id,
        CASE WHEN tw.cnt >= {config.COHORT_FLOOR} THEN PERCENT_RANK() OVER (PARTITION BY s.business_type ORDER BY s.business_quality_score) * 100 END AS q_type,
        CASE WHEN cw.cnt >= {config.COHORT_FLOOR} THEN PERCENT_RANK() OVER (PARTITION BY s.city, s.state ORDER BY s.business_quality_score) * 100 END AS q_city,
        CASE WHEN tw.cnt >= {config.COHORT_FLOOR} THEN PERCENT_RANK() OVER (PARTITION BY s.business_type ORDER BY s.exit_readiness_score) * 100 END AS s_type,
        CASE WHEN cw.cnt >= {config.COHORT_FLOOR} THEN PERCENT_RANK() OVER (PARTITION BY s.city, s.state ORDER BY s.exit_readiness_score) * 100 END AS s_city,
        COALESCE(tw.q_w, 0) AS q_type_w, COALESCE(cw.q_w, 0) AS q_city_w,
        COALESCE(tw.s_w, 0) AS s_type_w, COALESCE(cw.s_w, 0) AS s_city_w
      FROM _scored s
      LEFT JOIN _type_weights tw ON tw.business_type = s.business_type
      LEFT JOIN _city_weights cw ON cw.city = s.city AND cw.state IS NOT DISTINCT FROM s.state
    )
    UPDATE leads SET
      quality_percentile_by_type = ranked.q_type,
      quality_percentile_by_city = ranked.q_city,
      exit_percentile_by_type = ranked.s_type,
      exit_percentile_by_city = ranked.s_city,
      composite_score = (
        COALESCE(q_type * q_type_w, 0) + COALESCE(q_city * q_city_w, 0) +
        COALESCE(s_type * s_type_w, 0) + COALESCE(s_city * s_city_w, 0)
      ) / NULLIF(
        (CASE WHEN q_type IS NOT NULL THEN q_type_w ELSE 0 END) +
        (CASE WHEN q_city IS NOT NULL THEN q_city_w ELSE 0 END) +
        (CASE WHEN s_type IS NOT NULL THEN s_type_w ELSE 0 END) +
        (CASE WHEN s_city IS NOT NULL THEN s_city_w ELSE 0 END),
        0
      )
    FROM ranked WHERE leads.id = ranked.id
"""

# leads that stopped qualifying (re-scored to -1, excluded) lose stale ranks
_CLEAR_STALE_SQL = """
    UPDATE leads SET
      quality_percentile_by_type = NULL,
      quality_percentile_by_city = NULL,
      exit_percentile_by_type = NULL,
      exit_percentile_by_city = NULL,
      composite_score = NULL
    WHERE NOT EXISTS (SELECT 1 FROM _scored s WHERE s.id = leads.id)
      AND (quality_percentile_by_type IS NOT NULL OR quality_percentile_by_city IS NOT NULL
           OR exit_percentile_by_type IS NOT NULL OR exit_percentile_by_city IS NOT NULL
           OR composite_score IS NOT NULL)
"""


def refresh_lead_ranks(engine: Optional[Engine] = None) -> int:
    """Recompute percentile + composite columns for every lead; returns rows ranked."""
    engine = engine or get_engine()
    try:
        with engine.begin() as conn:
            conn.exec_driver_sql(_SCORED_SQL)
            conn.exec_driver_sql("CREATE INDEX ON _scored (business_type)")
            conn.exec_driver_sql("CREATE INDEX ON _scored (city, state)")
            conn.exec_driver_sql(_weights_sql("_type_weights", ("business_type",)))
            conn.exec_driver_sql(_weights_sql("_city_weights", ("city", "state")))
            ranked = conn.exec_driver_sql(_RANK_UPDATE_SQL).rowcount
            cleared = conn.exec_driver_sql(_CLEAR_STALE_SQL).rowcount
    except SQLAlchemyError as e:
        raise translate_db_error(e, what="refresh_lead_ranks")

    logger.info("lead ranks refreshed: ranked=%s cleared=%s", ranked, cleared)
    return int(ranked or 0)


def load_type_stats(business_type: Optional[str], engine: Optional[Engine] = None) -> Optional[TypeStats]:
    if not business_type:
        return None
    engine = engine or get_engine()
    cols = ", ".join(RC_COLUMNS)
    try:
        with engine.begin() as conn:
            row = conn.execute(
                text(
                    f"""
                    SELECT business_type, lead_count, rating_mean, rating_median, {cols}
                    FROM market_stats_by_type
                    WHERE business_type = :bt
                    """
                ),
                {"bt": business_type},
            ).mappings().first()
    except SQLAlchemyError as e:
        raise translate_db_error(e, what="load_type_stats")

    if row is None:
        return None
    return TypeStats(
        business_type=row["business_type"],
        lead_count=int(row["lead_count"]),
        rating_mean=row["rating_mean"],
        rating_median=row["rating_median"],
        cut_points=[float(row[c]) if row[c] is not None else None for c in RC_COLUMNS],
    )
