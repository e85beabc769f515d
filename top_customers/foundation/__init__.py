"""Foundational building blocks for the top customers pipeline.

This package exposes the input record types and the latest-wins resolver
used to derive current prices and contact values from their history.
"""

from .records import ContactRecord, PricedEvent, PriceRecord
from .resolver import build_contact_map, build_price_map, resolve_latest

__all__ = [
    "ContactRecord",
    "PricedEvent",
    "PriceRecord",
    "build_contact_map",
    "build_price_map",
    "resolve_latest",
]
