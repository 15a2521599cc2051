"""Pipeline: collection, deduplication, enrichment and orchestration."""
