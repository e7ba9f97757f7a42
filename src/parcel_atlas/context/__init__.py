"""
Parcel context resolution and search.
"""

from parcel_atlas.context.resolver import (
    ContextEntryPoint,
    ContextResolver,
    NearestRoad,
    ParcelContext,
)
from parcel_atlas.context.search import ParcelSearch, ParcelSummary

__all__ = [
    "ContextResolver",
    "ParcelContext",
    "ContextEntryPoint",
    "NearestRoad",
    "ParcelSearch",
    "ParcelSummary",
]
