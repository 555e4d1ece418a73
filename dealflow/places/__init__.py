"""
Places ingestion.

Turns a campaign's search list into SearchQuery rows and deduplicated leads,
linking same-named leads under one franchise.
"""
