"""inboxrules - pick the automation rule that governs each incoming email."""

__version__ = "0.1.0"
