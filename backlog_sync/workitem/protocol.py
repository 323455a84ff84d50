"""
Work Item Gateway Protocol.

Defines the interface that tracking-service gateways must implement.
Uses Python's Protocol for structural typing - gateways don't need
to explicitly inherit from this class.
"""

from typing import Any, Iterable, Iterator, Protocol, runtime_checkable

from backlog_sync.deadline import Deadline
from backlog_sync.workitem.types import PatchOperation, WorkItem


@runtime_checkable
class WorkItemGateway(Protocol):
    """
    Service-agnostic interface for work item backends.

    Implementations include:
    - AzureDevOpsGateway (reference implementation)
    - test fakes

    Patches are last-write field assignments, so every method is safe
    to retry.
    """

    @property
    def name(self) -> str:
        """
        Gateway identifier.

        Returns:
            Gateway name (e.g., "azure_devops")
        """
        ...

    # --- Read Operations ---

    def run_query(
        self,
        query_text: str,
        top: int | None = None,
        deadline: Deadline | None = None,
    ) -> Iterator[int]:
        """
        Execute a query and yield matching ids in service order.

        The iterator is lazy and cannot be restarted.
        """
        ...

    def fetch_details(
        self,
        ids: Iterable[int],
        fields: list[str] | None = None,
        deadline: Deadline | None = None,
    ) -> dict[int, WorkItem]:
        """
        Fetch full records for a set of ids.

        Returns a complete mapping or raises; never a partial result.
        """
        ...

    # --- Write Operations ---

    def patch_work_item(
        self,
        item_id: int,
        operations: list[PatchOperation],
        deadline: Deadline | None = None,
    ) -> WorkItem:
        """
        Apply field assignments to one work item.

        Returns:
            The updated WorkItem as reported by the service
        """
        ...
