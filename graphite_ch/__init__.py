"""Caches, a fault-injecting reverse proxy, Docker and process helpers, and response checks for testing a Graphite backend on ClickHouse."""

__version__ = "0.1.0"