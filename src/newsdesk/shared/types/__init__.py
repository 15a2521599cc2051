"""Data types passed between pipeline stages."""
