"""
Gateway capabilities.

Capability detection for determining what operations a gateway supports.
"""

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from backlog_sync.workitem.protocol import WorkItemGateway


class Capability(Enum):
    """
    Capabilities that a gateway may support.

    Used for graceful degradation when a gateway is read-only: plans can
    still be computed, but nothing is applied.
    """
    QUERY = "query"    # run_query
    FETCH = "fetch"    # fetch_details
    PATCH = "patch"    # patch_work_item


# Method names for each capability
CAPABILITY_METHODS = {
    Capability.QUERY: ["run_query"],
    Capability.FETCH: ["fetch_details"],
    Capability.PATCH: ["patch_work_item"],
}


def detect_capabilities(gateway: "WorkItemGateway") -> set[Capability]:
    """
    Detect which capabilities a gateway supports.

    Checks for the existence of required methods on the gateway.
    """
    capabilities = set()

    for capability, methods in CAPABILITY_METHODS.items():
        has_all = all(
            hasattr(gateway, method) and callable(getattr(gateway, method))
            for method in methods
        )
        if has_all:
            capabilities.add(capability)

    return capabilities
