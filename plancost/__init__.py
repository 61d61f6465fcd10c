"""Row-count estimation for MySQL statements from EXPLAIN plans and table statistics."""

__version__ = "0.1.0"
