"""
Update batcher.

Groups field assignments into one patch document per work item and
dispatches them on a bounded thread pool. The service has no multi-item
transaction, so this is not atomic: every identifier is attempted and
reported on its own.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Iterable

from backlog_sync.deadline import Deadline
from backlog_sync.logger import get_logger
from backlog_sync.workitem.errors import DeadlineExceeded, GatewayError, InvalidSpec
from backlog_sync.workitem.protocol import WorkItemGateway
from backlog_sync.workitem.types import PatchOperation, PatchReport, PatchResult, PatchStatus

logger = get_logger("batcher")


def group_operations(operations: Iterable[PatchOperation]) -> dict[int, list[PatchOperation]]:
    """
    Group operations into one document per identifier.

    Repeated identical assignments collapse into one.

    Raises:
        InvalidSpec: Two different values for the same id and field
    """
    grouped: dict[int, dict[str, PatchOperation]] = {}
    for op in operations:
        by_field = grouped.setdefault(op.item_id, {})
        existing = by_field.get(op.field)
        if existing is not None and existing.value != op.value:
            raise InvalidSpec(
                f"Conflicting values for {op.field} on {op.item_id}: "
                f"{existing.value!r} vs {op.value!r}",
                item_id=op.item_id,
                field=op.field,
            )
        by_field[op.field] = op
    return {item_id: list(ops.values()) for item_id, ops in grouped.items()}


class UpdateBatcher:
    """Apply PatchOperations through a gateway, one PATCH per identifier."""

    def __init__(self, gateway: WorkItemGateway, max_workers: int = 4):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._gateway = gateway
        self._max_workers = max_workers

    def apply(
        self,
        operations: Iterable[PatchOperation],
        deadline: Deadline | None = None,
    ) -> PatchReport:
        """
        Dispatch every operation and report per-identifier outcomes.

        Any failure while patching an identifier becomes a FAILED result;
        nothing is raised for it.
        Identifiers still queued when the deadline passes are reported as
        FAILED with DeadlineExceeded.

        Args:
            operations: Field assignments (any order, any number per id)
            deadline: Optional overall deadline

        Returns:
            PatchReport covering every identifier in operations
        """
        documents = group_operations(operations)
        report = PatchReport()
        if not documents:
            return report

        logger.info("batcher.apply", items=len(documents), workers=self._max_workers)

        workers = min(self._max_workers, len(documents))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                item_id: executor.submit(self._patch_one, item_id, ops, deadline)
                for item_id, ops in documents.items()
            }
            for item_id, future in futures.items():
                report.results[item_id] = future.result()

        logger.info(
            "batcher.done",
            applied=len(report.applied),
            failed=len(report.failed),
        )
        return report

    def _patch_one(
        self,
        item_id: int,
        operations: list[PatchOperation],
        deadline: Deadline | None,
    ) -> PatchResult:
        try:
            if deadline is not None and deadline.expired:
                raise DeadlineExceeded("Deadline exceeded before dispatch", item_id=item_id)
            self._gateway.patch_work_item(item_id, operations, deadline=deadline)
        except GatewayError as e:
            logger.error(
                "batcher.patch.failed",
                item_id=item_id,
                error_type=type(e).__name__,
                status_code=e.status_code,
                error=e.message,
            )
            return PatchResult(
                item_id=item_id,
                status=PatchStatus.FAILED,
                operations=operations,
                reason=e.message,
                error_type=type(e).__name__,
                status_code=e.status_code,
            )
        except Exception as e:
            logger.error(
                "batcher.patch.error",
                item_id=item_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return PatchResult(
                item_id=item_id,
                status=PatchStatus.FAILED,
                operations=operations,
                reason=str(e),
                error_type=type(e).__name__,
            )

        logger.debug("batcher.patch.applied", item_id=item_id, fields=[op.field for op in operations])
        return PatchResult(item_id=item_id, status=PatchStatus.APPLIED, operations=operations)
