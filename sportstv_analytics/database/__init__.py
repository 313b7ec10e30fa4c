"""
Database Module
"""
from .connection import create_target_engine, create_source_engine, close_engines
from .models import Base, FactStreamingSummary, DimDate, DimCountry, DimSport

__all__ = [
    "create_target_engine",
    "create_source_engine",
    "close_engines",
    "Base",
    "FactStreamingSummary",
    "DimDate",
    "DimCountry",
    "DimSport",
]
