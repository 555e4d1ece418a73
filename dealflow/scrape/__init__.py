"""
Crawl & extraction subsystem.

Fetching is done elsewhere; this package takes already-fetched pages and
produces one ExtractedData aggregate per lead, every item tagged with the
page it came from.

- structured.py: JSON-LD (schema.org) blocks, merged first
- contact.py / social.py / team.py / history.py / snippets.py: heuristic passes
- aggregate.py: priority ordering and merge rules
- storage.py: ScrapeRun / ScrapedPage / per-category rows
"""
