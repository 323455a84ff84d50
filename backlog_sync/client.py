"""
Backlog sync client facade.

User-facing client that wires the query builder, gateway, order resolver
and update batcher into one reorder workflow.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from backlog_sync.deadline import Deadline
from backlog_sync.logger import get_logger
from backlog_sync.ordering.batcher import UpdateBatcher
from backlog_sync.ordering.resolver import OrderResolver, ReorderPlan
from backlog_sync.workitem.capabilities import Capability, detect_capabilities
from backlog_sync.workitem.config import FieldMap, SyncConfig, load_config
from backlog_sync.workitem.errors import InvalidSpec
from backlog_sync.workitem.query import build_query
from backlog_sync.workitem.types import (
    PatchOperation,
    PatchReport,
    PatchResult,
    PatchStatus,
    QuerySpec,
    ReorderIntent,
    WorkItem,
)

if TYPE_CHECKING:
    from backlog_sync.workitem.protocol import WorkItemGateway

logger = get_logger("client")


@dataclass
class SyncReport:
    """
    Outcome of one reorder.

    Attributes:
        plan: Computed order values
        placements: Patch results for the moved items
        renumber: Patch results for the renumber phase, if one ran
        dry_run: True when nothing was dispatched
    """
    plan: ReorderPlan
    placements: PatchReport = field(default_factory=PatchReport)
    renumber: PatchReport | None = None
    dry_run: bool = False

    @property
    def all_applied(self) -> bool:
        if self.renumber is not None and not self.renumber.all_applied:
            return False
        return self.placements.all_applied

    @property
    def failed(self) -> list[PatchResult]:
        renumber_failed = self.renumber.failed if self.renumber is not None else []
        return renumber_failed + self.placements.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "plan": self.plan.to_dict(),
            "renumber": self.renumber.to_dict() if self.renumber is not None else None,
            "placements": self.placements.to_dict(),
        }


class BacklogSyncClient:
    """
    User-facing client for backlog reorders.

    Wraps a WorkItemGateway and runs query -> fetch -> resolve -> apply.

    Example:
        client = BacklogSyncClient.from_config()
        report = client.reorder(
            QuerySpec(project="Fabrikam", states=["New", "Active"]),
            ReorderIntent((42,), Anchor.top()),
        )
        for result in report.failed:
            print(result.item_id, result.reason)
    """

    def __init__(
        self,
        gateway: "WorkItemGateway",
        config: SyncConfig | None = None,
        fields: FieldMap | None = None,
        max_workers: int = 4,
    ):
        """
        Initialize client with a gateway.

        Args:
            gateway: WorkItem gateway instance
            config: Ordering and query settings
            fields: Field reference mapping for the process template
            max_workers: Width of the patch thread pool
        """
        self._gateway = gateway
        self._config = config or SyncConfig()
        self._fields = fields or FieldMap()
        self._capabilities = detect_capabilities(gateway)
        self._resolver = OrderResolver(self._config.ordering)
        self._batcher = UpdateBatcher(gateway, max_workers=max_workers)

    @classmethod
    def from_config(cls, config_path: str | Path | None = None) -> "BacklogSyncClient":
        """
        Create client from configuration file.

        Loads config and instantiates the default gateway.

        Raises:
            ValueError: If gateway not supported or config invalid
        """
        config = load_config(config_path)
        gateway = cls._create_gateway(config.default_provider, config)
        return cls(
            gateway,
            config,
            fields=gateway.config.fields,
            max_workers=gateway.config.max_workers,
        )

    @staticmethod
    def _create_gateway(name: str, config: SyncConfig):
        """Create gateway instance by name."""
        if name == "azure_devops":
            from backlog_sync.workitem.providers.azure_devops import AzureDevOpsGateway
            return AzureDevOpsGateway(config.providers.get("azure_devops", {}))

        raise ValueError(f"Unknown provider: {name}")

    @property
    def gateway_name(self) -> str:
        """Name of the underlying gateway."""
        return self._gateway.name

    @property
    def capabilities(self) -> set[Capability]:
        """Set of capabilities supported by the gateway."""
        return self._capabilities

    def has_capability(self, capability: Capability) -> bool:
        """Check if gateway supports a specific capability."""
        return capability in self._capabilities

    def _require(self, *capabilities: Capability, action: str) -> None:
        missing = [c.value for c in capabilities if c not in self._capabilities]
        if missing:
            raise InvalidSpec(
                f"Gateway '{self.gateway_name}' cannot {action}: missing {', '.join(missing)}"
            )

    # --- Read Operations ---

    def build_query(self, spec: QuerySpec) -> str:
        """WIQL text for a QuerySpec under this client's field mapping."""
        return build_query(spec, self._fields, self._config.allowed_fields)

    def fetch_backlog(self, spec: QuerySpec, deadline: Deadline | None = None) -> list[WorkItem]:
        """
        Query a backlog view and return its items in query order.

        Args:
            spec: Backlog filter
            deadline: Optional overall deadline

        Returns:
            List of WorkItems
        """
        self._require(Capability.QUERY, Capability.FETCH, action="read a backlog")
        query = self.build_query(spec)
        ids = list(self._gateway.run_query(query, top=spec.top, deadline=deadline))
        details = self._gateway.fetch_details(ids, deadline=deadline)
        return [details[i] for i in ids if i in details]

    def plan(
        self,
        spec: QuerySpec,
        intent: ReorderIntent,
        deadline: Deadline | None = None,
    ) -> ReorderPlan:
        """
        Compute new order values without writing anything.

        The context set is the query result plus any moved items outside it.

        Raises:
            InvalidSpec, ReorderPreconditionError, GatewayError
        """
        self._resolver.check_intent(intent)
        self._require(Capability.QUERY, Capability.FETCH, action="read a backlog")

        query = self.build_query(spec)
        ids = list(self._gateway.run_query(query, top=spec.top, deadline=deadline))
        view = set(ids)
        context_ids = ids + [i for i in intent.item_ids if i not in view]

        details = self._gateway.fetch_details(context_ids, deadline=deadline)
        context = [details[i] for i in context_ids if i in details]

        return self._resolver.resolve(context, intent)

    # --- Write Operations ---

    def reorder(
        self,
        spec: QuerySpec,
        intent: ReorderIntent,
        *,
        dry_run: bool = False,
        deadline_s: float | None = None,
    ) -> SyncReport:
        """
        Plan and apply a reorder.

        Renumber patches (if any) are applied first. Placement values are
        computed against the renumbered values, so placements are only
        dispatched once every renumber patch is applied.

        Args:
            spec: Backlog view the reorder happens in
            intent: Ids to move and where to put them
            dry_run: Compute the plan only
            deadline_s: Overall time budget in seconds

        Returns:
            SyncReport; per-item failures are reported, not raised
        """
        if not dry_run:
            self._require(Capability.PATCH, action="apply patches")

        deadline = Deadline.optional(deadline_s)
        logger.info(
            "sync.reorder.start",
            anchor=str(intent.anchor),
            moved=len(intent.item_ids),
            dry_run=dry_run,
        )

        plan = self.plan(spec, intent, deadline=deadline)
        if dry_run or plan.is_noop:
            return SyncReport(plan=plan, dry_run=dry_run)

        order_field = self._fields.order
        report = self._apply_phases(
            plan,
            plan.renumber_operations(order_field),
            plan.placement_operations(order_field),
            deadline,
        )

        logger.info(
            "sync.reorder.done",
            applied=len(report.placements.applied),
            failed=len(report.failed),
            renumber_triggered=plan.renumber_triggered,
        )
        return report

    def retry_failed(self, report: SyncReport, deadline_s: float | None = None) -> SyncReport:
        """
        Reapply every failed operation from a previous report.

        Patches are plain field assignments, so a wholesale retry is safe.
        """
        renumber_ops = report.renumber.retry_operations() if report.renumber is not None else []
        return self._apply_phases(
            report.plan,
            renumber_ops,
            report.placements.retry_operations(),
            Deadline.optional(deadline_s),
        )

    def _apply_phases(
        self,
        plan: ReorderPlan,
        renumber_ops: list[PatchOperation],
        placement_ops: list[PatchOperation],
        deadline: Deadline | None,
    ) -> SyncReport:
        renumber_report = None
        if renumber_ops:
            renumber_report = self._batcher.apply(renumber_ops, deadline=deadline)
            if not renumber_report.all_applied:
                logger.error(
                    "sync.renumber.incomplete",
                    failed=[r.item_id for r in renumber_report.failed],
                    held_back=len(placement_ops),
                )
                return SyncReport(
                    plan=plan,
                    placements=self._held_back(placement_ops),
                    renumber=renumber_report,
                )

        placement_report = self._batcher.apply(placement_ops, deadline=deadline)
        return SyncReport(plan=plan, placements=placement_report, renumber=renumber_report)

    def _held_back(self, operations: list[PatchOperation]) -> PatchReport:
        report = PatchReport()
        for op in operations:
            result = report.results.setdefault(
                op.item_id,
                PatchResult(
                    item_id=op.item_id,
                    status=PatchStatus.FAILED,
                    reason="renumber phase incomplete; placement not dispatched",
                    error_type="RenumberIncomplete",
                ),
            )
            result.operations.append(op)
        return report
