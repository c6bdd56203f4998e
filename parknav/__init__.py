"""
parknav: MCP server for parking discovery.

Speech tools, Overpass parking ingestion, web-search enrichment and
GeoJSON export backed by PostgreSQL.
"""

__version__ = "1.0.0"
