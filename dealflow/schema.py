from sqlalchemy import (
    Boolean, Column, BigInteger, Float, ForeignKey, Index, Integer, String, Text, TIMESTAMP,
    UniqueConstraint, func, text
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.dialects.postgresql import JSONB

Base = declarative_base()


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(Text, primary_key=True)
    name = Column(String(256), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)


class CampaignRun(Base):
    __tablename__ = "campaign_runs"

    id = Column(Text, primary_key=True)
    campaign_id = Column(Text, ForeignKey("campaigns.id", ondelete="CASCADE"))
    status = Column(String(32), nullable=False, server_default="pending")  # pending|running|completed|failed
    queries_executed = Column(Integer, nullable=False, server_default="0")
    leads_found = Column(Integer, nullable=False, server_default="0")
    duplicates_skipped = Column(Integer, nullable=False, server_default="0")
    errors = Column(Integer, nullable=False, server_default="0")
    error_message = Column(Text)
    started_at = Column(TIMESTAMP(timezone=True))
    completed_at = Column(TIMESTAMP(timezone=True))

    campaign = relationship("Campaign")


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Text, primary_key=True)
    job_type = Column(String(32), nullable=False)  # places|extract|market_stats|scoring
    status = Column(String(32), nullable=False, server_default="pending")
    meta = Column(JSONB, nullable=False, server_default=text("'{}'::jsonb"))
    error_message = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    started_at = Column(TIMESTAMP(timezone=True))
    completed_at = Column(TIMESTAMP(timezone=True))


class SearchQuery(Base):
    __tablename__ = "search_queries"

    id = Column(BigInteger, primary_key=True)
    campaign_id = Column(Text, ForeignKey("campaigns.id", ondelete="SET NULL"))
    campaign_run_id = Column(Text, ForeignKey("campaign_runs.id", ondelete="SET NULL"))
    text_query = Column(Text, nullable=False)
    included_type = Column(String(128))
    results_count = Column(Integer)
    new_leads_count = Column(Integer)
    executed_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_search_queries_text_type_executed", "text_query", "included_type", "executed_at"),
    )


class Franchise(Base):
    __tablename__ = "franchises"

    id = Column(BigInteger, primary_key=True)
    normalized_name = Column(Text, nullable=False)
    display_name = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("normalized_name", name="uq_franchises_normalized_name"),
    )


class Lead(Base):
    __tablename__ = "leads"

    id = Column(BigInteger, primary_key=True)
    place_id = Column(Text, nullable=False)
    campaign_id = Column(Text, ForeignKey("campaigns.id", ondelete="SET NULL"))
    campaign_run_id = Column(Text, ForeignKey("campaign_runs.id", ondelete="SET NULL"))
    search_query_id = Column(BigInteger, ForeignKey("search_queries.id", ondelete="SET NULL"))
    franchise_id = Column(BigInteger, ForeignKey("franchises.id", ondelete="SET NULL"))

    name = Column(Text, nullable=False)
    normalized_name = Column(Text, index=True)
    address = Column(Text)
    city = Column(String(128))
    state = Column(String(64))
    zip_code = Column(String(16))
    latitude = Column(Float)
    longitude = Column(Float)

    phone = Column(String(32))
    international_phone = Column(String(32))
    website = Column(Text)
    google_maps_uri = Column(Text)

    rating = Column(Float)
    review_count = Column(Integer)
    price_level = Column(String(64))
    business_type = Column(String(128), index=True)
    primary_type = Column(String(128))
    types = Column(JSONB)
    business_status = Column(String(64))
    opening_hours = Column(JSONB)
    editorial_summary = Column(Text)
    review_summary = Column(Text)
    source = Column(String(64), nullable=False, server_default="google_places")

    # scrape-derived
    founded_year = Column(Integer)
    years_in_business = Column(Integer)
    headcount_estimate = Column(Integer)
    headcount_source = Column(Text)
    has_acquisition_signal = Column(Boolean, nullable=False, server_default=text("false"))
    acquisition_summary = Column(Text)
    contact_page_url = Column(Text)
    web_scraped_at = Column(TIMESTAMP(timezone=True))

    # scoring
    controlling_owner = Column(Text)
    ownership_type = Column(String(64))
    is_excluded = Column(Boolean, nullable=False, server_default=text("false"))
    exclusion_reason = Column(Text)
    business_quality_score = Column(Integer)  # 1..10, -1 = insufficient evidence
    exit_readiness_score = Column(Integer)    # 1..10, -1 = insufficient evidence
    scoring_rationale = Column(Text)
    supporting_evidence = Column(JSONB)
    scored_at = Column(TIMESTAMP(timezone=True))

    # market statistics
    quality_percentile_by_type = Column(Float)
    quality_percentile_by_city = Column(Float)
    exit_percentile_by_type = Column(Float)
    exit_percentile_by_city = Column(Float)
    composite_score = Column(Float)

    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    franchise = relationship("Franchise")

    __table_args__ = (
        UniqueConstraint("place_id", name="uq_leads_place_id"),
        Index("ix_leads_city_state", "city", "state"),
    )


class ScrapeRun(Base):
    __tablename__ = "scrape_runs"

    id = Column(BigInteger, primary_key=True)
    lead_id = Column(BigInteger, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    job_id = Column(Text)
    root_url = Column(Text, nullable=False)
    status = Column(String(32), nullable=False)  # completed|failed
    pages_count = Column(Integer, nullable=False, server_default="0")
    duration_ms = Column(Integer)
    error_message = Column(Text)
    started_at = Column(TIMESTAMP(timezone=True))
    completed_at = Column(TIMESTAMP(timezone=True))


class ScrapedPage(Base):
    __tablename__ = "scraped_pages"

    id = Column(BigInteger, primary_key=True)
    scrape_run_id = Column(BigInteger, ForeignKey("scrape_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    lead_id = Column(BigInteger, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    parent_page_id = Column(BigInteger, ForeignKey("scraped_pages.id", ondelete="SET NULL"))
    depth = Column(Integer, nullable=False, server_default="0")
    url = Column(Text, nullable=False)
    domain = Column(Text)
    status_code = Column(Integer)
    title = Column(Text)
    text_content = Column(Text)
    html = Column(Text)
    scraped_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)


def _provenance_columns():
    return (
        Column("source_page_id", BigInteger, ForeignKey("scraped_pages.id", ondelete="SET NULL")),
        Column("source_run_id", BigInteger, ForeignKey("scrape_runs.id", ondelete="CASCADE"), nullable=False),
    )


class LeadEmail(Base):
    __tablename__ = "lead_emails"

    id = Column(BigInteger, primary_key=True)
    lead_id = Column(BigInteger, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    value = Column(String(320), nullable=False)
    source_page_id, source_run_id = _provenance_columns()
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (UniqueConstraint("source_run_id", "value", name="uq_lead_emails_run_value"),)


class LeadPhone(Base):
    __tablename__ = "lead_phones"

    id = Column(BigInteger, primary_key=True)
    lead_id = Column(BigInteger, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    value = Column(String(32), nullable=False)
    is_confirmed_listing_phone = Column(Boolean, nullable=False, server_default=text("false"))
    source_page_id, source_run_id = _provenance_columns()
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (UniqueConstraint("source_run_id", "value", name="uq_lead_phones_run_value"),)


class LeadSocialProfile(Base):
    __tablename__ = "lead_social_profiles"

    id = Column(BigInteger, primary_key=True)
    lead_id = Column(BigInteger, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String(32), nullable=False)  # linkedin|facebook|instagram|twitter
    url = Column(Text, nullable=False)
    source_page_id, source_run_id = _provenance_columns()
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (UniqueConstraint("source_run_id", "platform", name="uq_lead_social_run_platform"),)


class LeadTeamMember(Base):
    __tablename__ = "lead_team_members"

    id = Column(BigInteger, primary_key=True)
    lead_id = Column(BigInteger, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    title = Column(Text)
    is_executive = Column(Boolean, nullable=False, server_default=text("false"))
    kind = Column(String(32), nullable=False, server_default="member")  # member|first_name_only
    source_page_id, source_run_id = _provenance_columns()
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)


class LeadAcquisitionSignal(Base):
    __tablename__ = "lead_acquisition_signals"

    id = Column(BigInteger, primary_key=True)
    lead_id = Column(BigInteger, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    signal_type = Column(String(64), nullable=False)
    text = Column(Text, nullable=False)
    mentioned_date = Column(String(64))
    source_page_id, source_run_id = _provenance_columns()
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)


class LeadSnippet(Base):
    __tablename__ = "lead_snippets"

    id = Column(BigInteger, primary_key=True)
    lead_id = Column(BigInteger, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    category = Column(String(64), nullable=False)
    text = Column(Text, nullable=False)
    source_page_id, source_run_id = _provenance_columns()
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)


class LlmCall(Base):
    __tablename__ = "llm_calls"

    id = Column(BigInteger, primary_key=True)
    context_type = Column(String(64))
    model_name = Column(String(128))
    input_text = Column(Text)
    output_text = Column(Text)
    lead_id = Column(BigInteger, ForeignKey("leads.id", ondelete="SET NULL"))
    job_id = Column(Text)
    success = Column(Boolean, nullable=False)
    latency_ms = Column(Integer)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
