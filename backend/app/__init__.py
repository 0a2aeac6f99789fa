"""Event ingestion, query and aggregation service."""
