"""
dealflow: lead-generation pipeline for sell-side M&A sourcing.

Stages:
- places:   Google Places text search -> deduplicated `leads` rows
- scrape:   fetched website pages -> source-attributed facts per lead
- market:   cohort distributions, percentile ranks and composite score
- scoring:  two-pass LLM verdict (extract facts, then score)

Prefect wrappers for each stage live in flows/.
"""
