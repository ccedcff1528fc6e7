"""Task records, SQLite storage, tab bookkeeping and a service client for a scraping workbench."""

__version__ = "1.3.0"
__all__ = ["api", "database", "models", "tabs"]