"""Order resolution and patch dispatch."""

from .batcher import UpdateBatcher, group_operations
from .resolver import OrderResolver, ReorderPlan

__all__ = [
    "OrderResolver",
    "ReorderPlan",
    "UpdateBatcher",
    "group_operations",
]
