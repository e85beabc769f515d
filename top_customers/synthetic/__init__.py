"""Synthetic data generation utilities.

This package produces realistic-but-fake purchase events together with
price and contact histories (duplicates per key included) to exercise the
pipeline without accessing production data.
"""

from .generator import (
    SyntheticConfig,
    SyntheticDataset,
    dataset_to_payload,
    generate_contacts,
    generate_dataset,
    generate_events,
    generate_price_history,
)

__all__ = [
    "SyntheticConfig",
    "SyntheticDataset",
    "dataset_to_payload",
    "generate_contacts",
    "generate_dataset",
    "generate_events",
    "generate_price_history",
]
