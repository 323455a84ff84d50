"""
WorkItem types and data structures.

This module defines service-agnostic data classes for work items, query
filters, reorder intents and field patches, decoupling the ordering logic
from the tracking service's wire format.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from backlog_sync.workitem.errors import InvalidSpec


@dataclass
class WorkItem:
    """
    Complete work item representation.

    Attributes:
        id: Positive integer identifier, unique within the service
        work_item_type: Service-defined type ("User Story", "Bug", ...)
        title: Work item title
        state: Service-defined state name
        assignee: Display name or unique name of the assignee
        area_path: Area path
        iteration_path: Iteration path
        order: Opaque numeric rank; None when the service never ranked the item
        changed_at: Last modification timestamp
        tags: List of tags
        url: Direct API link to the item
        fields: Raw service fields as returned by the detail fetch
    """
    id: int
    work_item_type: str = ""
    title: str = ""
    state: str = ""
    assignee: str | None = None
    area_path: str = ""
    iteration_path: str = ""
    order: float | None = None

    changed_at: datetime | None = None
    tags: list[str] = field(default_factory=list)
    url: str | None = None

    # Service-specific extras
    fields: dict[str, Any] = field(default_factory=dict)

    def has_tag(self, tag: str) -> bool:
        """Check if work item has a specific tag."""
        return tag in self.tags

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "work_item_type": self.work_item_type,
            "title": self.title,
            "state": self.state,
            "assignee": self.assignee,
            "area_path": self.area_path,
            "iteration_path": self.iteration_path,
            "order": self.order,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
            "tags": self.tags,
            "url": self.url,
        }


@dataclass
class QuerySpec:
    """
    Filter specification for a backlog view.

    Only project is required; None or empty means "no filter".

    Attributes:
        project: Team project name
        work_item_types: Restrict to these types
        states: Restrict to these states
        iteration_path: Items under this iteration path
        area_path: Items under this area path
        tags: Items must carry ALL of these tags
        assignee: Assigned-to value
        filters: Extra equality filters keyed by field reference name
        sort_key: Field reference to sort by (defaults to the order field)
        top: Optional cap on the number of returned ids
    """
    project: str
    work_item_types: list[str] | None = None
    states: list[str] | None = None
    iteration_path: str | None = None
    area_path: str | None = None
    tags: list[str] | None = None
    assignee: str | None = None
    filters: dict[str, Any] = field(default_factory=dict)
    sort_key: str | None = None
    top: int | None = None


class AnchorKind(Enum):
    """Where moved items land relative to the rest of the backlog."""
    TOP = "top"
    BOTTOM = "bottom"
    AFTER = "after"
    BEFORE = "before"


@dataclass(frozen=True)
class Anchor:
    """
    Placement anchor for a reorder.

    AFTER and BEFORE require a reference_id; TOP and BOTTOM forbid one.
    """
    kind: AnchorKind
    reference_id: int | None = None

    def __post_init__(self):
        relative = self.kind in (AnchorKind.AFTER, AnchorKind.BEFORE)
        if relative and self.reference_id is None:
            raise InvalidSpec(f"{self.kind.name} anchor requires a reference id")
        if not relative and self.reference_id is not None:
            raise InvalidSpec(f"{self.kind.name} anchor takes no reference id")

    @classmethod
    def top(cls) -> "Anchor":
        return cls(AnchorKind.TOP)

    @classmethod
    def bottom(cls) -> "Anchor":
        return cls(AnchorKind.BOTTOM)

    @classmethod
    def after(cls, reference_id: int) -> "Anchor":
        return cls(AnchorKind.AFTER, reference_id)

    @classmethod
    def before(cls, reference_id: int) -> "Anchor":
        return cls(AnchorKind.BEFORE, reference_id)

    def __str__(self) -> str:
        if self.reference_id is None:
            return self.kind.name
        return f"{self.kind.name}({self.reference_id})"


@dataclass(frozen=True)
class ReorderIntent:
    """
    Ordered list of ids to move, plus where to put them.

    The requested relative order among item_ids is preserved in the result.
    """
    item_ids: tuple[int, ...]
    anchor: Anchor

    def __post_init__(self):
        object.__setattr__(self, "item_ids", tuple(self.item_ids))


@dataclass(frozen=True)
class PatchOperation:
    """A last-write assignment of one field on one work item."""
    item_id: int
    field: str
    value: Any

    def to_json_patch(self) -> dict[str, Any]:
        """Render as a JSON Patch document entry."""
        return {"op": "add", "path": f"/fields/{self.field}", "value": self.value}


class PatchStatus(Enum):
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class PatchResult:
    """Outcome of the patch document sent for one identifier."""
    item_id: int
    status: PatchStatus
    operations: list[PatchOperation] = field(default_factory=list)
    reason: str | None = None
    error_type: str | None = None
    status_code: int | None = None

    @property
    def applied(self) -> bool:
        return self.status is PatchStatus.APPLIED

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "status": self.status.value,
            "fields": {op.field: op.value for op in self.operations},
            "reason": self.reason,
            "error_type": self.error_type,
            "status_code": self.status_code,
        }


@dataclass
class PatchReport:
    """
    Per-identifier results of one batcher run.

    Every identifier that was handed to the batcher appears exactly once.
    """
    results: dict[int, PatchResult] = field(default_factory=dict)

    @property
    def applied(self) -> list[PatchResult]:
        return [r for r in self.results.values() if r.status is PatchStatus.APPLIED]

    @property
    def failed(self) -> list[PatchResult]:
        return [r for r in self.results.values() if r.status is PatchStatus.FAILED]

    @property
    def all_applied(self) -> bool:
        return not self.failed

    def retry_operations(self) -> list[PatchOperation]:
        """Operations of every failed identifier, safe to reapply wholesale."""
        return [op for r in self.failed for op in r.operations]

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": len(self.applied),
            "failed": len(self.failed),
            "results": [self.results[i].to_dict() for i in sorted(self.results)],
        }
