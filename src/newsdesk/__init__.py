"""newsdesk - hybrid news tracking for companies and people."""

__version__ = "1.0.0"
