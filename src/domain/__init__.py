"""Domain models and pure logic for wallet cost-basis reconstruction.

Transfer normalization, swap cost allocation, FIFO sell matching and lot
aggregation live here as side-effect free code over pydantic models, kept
apart from persistence and HTTP clients so they can be tested in isolation.
"""

__all__ = [
    "aggregation",
    "classifier",
    "cost_basis",
    "fifo",
    "ledger",
    "normalizer",
    "pricing",
    "transfers",
]
