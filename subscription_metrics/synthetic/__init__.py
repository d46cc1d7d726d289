"""Synthetic subscription data.

Produces realistic-but-fake customers, products and subscriptions so the
metrics engine and the assistant can be exercised without a connected
billing account.
"""

from .generator import (
    DEFAULT_TIERS,
    GeneratorConfig,
    SeedResult,
    SyntheticDataset,
    generate_dataset,
    generate_products,
    load_dataset,
    populate_store,
)

__all__ = [
    "DEFAULT_TIERS",
    "GeneratorConfig",
    "SeedResult",
    "SyntheticDataset",
    "generate_dataset",
    "generate_products",
    "load_dataset",
    "populate_store",
]
