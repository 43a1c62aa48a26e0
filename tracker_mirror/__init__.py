"""Jira tracker mirror.

Synchronizes issues, users and time-tracking history from a Jira tracker into
a local SQLite mirror, recomputing derived aggregates on every run.
"""

__version__ = "0.1.0"
