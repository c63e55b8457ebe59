"""
HTTP API for repository ingestion, wiki summaries and search.
"""
