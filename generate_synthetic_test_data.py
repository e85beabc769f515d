#!/usr/bin/env python
"""
Generate a synthetic input file for the top customers pipeline.

The file holds purchase events, a price history with several revisions per
content (some content left unpriced) and a contact history, in the layout
accepted by ``top-customers --input``.

Usage:
    python generate_synthetic_test_data.py

Output:
    synthetic_top_customers.json - Input data for a dry run
"""

import json
from datetime import date
from pathlib import Path

from top_customers.synthetic import SyntheticConfig, dataset_to_payload, generate_dataset


def main():
    """Generate synthetic records and save them to JSON."""
    print("Generating synthetic purchase data...")

    dataset = generate_dataset(
        n_customers=4000,
        n_contents=250,
        start=date(2020, 1, 1),
        end=date(2024, 6, 30),
        config=SyntheticConfig(unpriced_share=0.05, seed=42),  # Fixed seed for reproducibility
    )
    payload = dataset_to_payload(dataset)

    output_file = Path("synthetic_top_customers.json")
    with open(output_file, "w") as f:
        json.dump(payload, f, indent=2)

    print(f"\nSynthetic data saved to: {output_file.absolute()}")
    print("\nDataset statistics:")
    print(f"  - Purchase events: {len(dataset.events)}")
    print(f"  - Unique customers with events: {len({e.customer_id for e in dataset.events})}")
    print(f"  - Price rows: {len(dataset.prices)} for {len({p.content_id for p in dataset.prices})} contents")
    print(f"  - Contact rows: {len(dataset.contacts)}")
    print("\nTry it with:")
    print(f"  top-customers --input {output_file} --dry-run --report summary.md")


if __name__ == "__main__":
    main()
