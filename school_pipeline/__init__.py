"""
School Pipeline — ingestion and query core for a UK school listing.

Architecture: Parse → Validate (+ geocode repair) → Query
Philosophy:  Parse leniently. Validate explicitly. Never crash on one bad school.
"""

__version__ = "1.0.0"
