"""
SportsTV Streaming Analytics

ETL from the operational subscriber store and the streaming CSV export into
the fact_streaming_summary star schema.
"""

__version__ = "1.0.0"
