"""Types, configuration and utilities shared across newsdesk."""
