"""
Order resolver.

Computes new order values for the items a reorder intent moves, using
fractional ranking: moved items take evenly spaced points inside the gap
between their new neighbours, so non-moved items keep their values.

When the gap is too narrow to subdivide (floating point ranks converge
after many inserts into the same spot), the whole context set is
renumbered onto a fixed stride and placement runs again. Renumbering is
the only path that changes non-moved items and is reported separately.
"""

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from backlog_sync.logger import get_logger
from backlog_sync.workitem.config import OrderingConfig
from backlog_sync.workitem.errors import (
    DuplicateIdentifier,
    EmptyIntent,
    OrderResolutionError,
    ReorderPreconditionError,
    UnknownAnchor,
)
from backlog_sync.workitem.types import AnchorKind, PatchOperation, ReorderIntent, WorkItem

logger = get_logger("resolver")


@dataclass
class ReorderPlan:
    """
    New order values for one reorder.

    Attributes:
        placements: Moved id -> new order value
        renumbered: Non-moved id -> new order value (renumber side effect)
        renumber_triggered: True when the context set was renumbered
        final_order: Resulting id sequence of the context set plus moved ids
    """
    placements: dict[int, float] = field(default_factory=dict)
    renumbered: dict[int, float] = field(default_factory=dict)
    renumber_triggered: bool = False
    final_order: list[int] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.placements and not self.renumbered

    def renumber_operations(self, order_field: str) -> list[PatchOperation]:
        return [PatchOperation(i, order_field, v) for i, v in self.renumbered.items()]

    def placement_operations(self, order_field: str) -> list[PatchOperation]:
        return [PatchOperation(i, order_field, v) for i, v in self.placements.items()]

    def to_patch_operations(self, order_field: str) -> list[PatchOperation]:
        """All operations, renumber first."""
        return self.renumber_operations(order_field) + self.placement_operations(order_field)

    def to_dict(self) -> dict:
        return {
            "placements": {str(k): v for k, v in self.placements.items()},
            "renumbered": {str(k): v for k, v in self.renumbered.items()},
            "renumber_triggered": self.renumber_triggered,
            "final_order": self.final_order,
        }


def _sort_key(entry: tuple[int, float | None]):
    item_id, order = entry
    # Unranked items sort after every ranked one
    return (order is None, order if order is not None else 0.0, item_id)


def _context_orders(context: Iterable[WorkItem] | Mapping[int, float | None]) -> dict[int, float | None]:
    if isinstance(context, Mapping):
        return {int(k): (float(v) if v is not None else None) for k, v in context.items()}
    return {item.id: item.order for item in context}


class OrderResolver:
    """Resolve a ReorderIntent against a context set of current order values."""

    def __init__(self, config: OrderingConfig | None = None):
        self._config = config or OrderingConfig()

    @property
    def config(self) -> OrderingConfig:
        return self._config

    def check_intent(self, intent: ReorderIntent) -> None:
        """
        Check the preconditions that need no context set.

        Raises:
            EmptyIntent: No ids to move
            DuplicateIdentifier: An id repeats
            ReorderPreconditionError: The anchor is itself being moved
        """
        if not intent.item_ids:
            raise EmptyIntent("Reorder intent has no identifiers")

        seen: set[int] = set()
        for item_id in intent.item_ids:
            if item_id in seen:
                raise DuplicateIdentifier(
                    f"Identifier {item_id} appears more than once in the intent",
                    item_id=item_id,
                )
            seen.add(item_id)

        anchor_id = intent.anchor.reference_id
        if anchor_id is not None and anchor_id in seen:
            raise ReorderPreconditionError(
                f"Anchor {anchor_id} is one of the moved items",
                item_id=anchor_id,
            )

    def validate(self, intent: ReorderIntent, context_ids: Iterable[int]) -> None:
        """
        Check all intent preconditions against a context set.

        Raises:
            UnknownAnchor: The anchor is not in the context set
            (plus everything check_intent raises)
        """
        self.check_intent(intent)

        anchor_id = intent.anchor.reference_id
        if anchor_id is not None and anchor_id not in set(context_ids):
            raise UnknownAnchor(
                f"Anchor {anchor_id} is not in the context set",
                item_id=anchor_id,
            )

    def resolve(
        self,
        context: Iterable[WorkItem] | Mapping[int, float | None],
        intent: ReorderIntent,
    ) -> ReorderPlan:
        """
        Compute new order values for the moved items.

        Args:
            context: Items in the affected backlog view, or id -> order mapping.
                Moved items may be absent (they are being moved into the view).
            intent: Ids to move and where to put them

        Returns:
            ReorderPlan with placements and any renumber side effect
        """
        orders = _context_orders(context)
        self.validate(intent, orders)

        moved = list(intent.item_ids)
        moved_set = set(moved)
        rest = sorted(
            ((i, o) for i, o in orders.items() if i not in moved_set),
            key=_sort_key,
        )
        index = self._insertion_index(rest, intent)

        current = [orders.get(item_id) for item_id in moved]
        values = self._place(rest, index, len(moved), current=current)
        if values is not None:
            placements = {
                item_id: value
                for item_id, value in zip(moved, values)
                if value is not None
            }
            plan = ReorderPlan(placements=placements)
        else:
            plan = self._renumber_and_place(rest, index, moved)

        plan.final_order = [i for i, _ in rest[:index]] + moved + [i for i, _ in rest[index:]]

        logger.info(
            "resolver.plan",
            anchor=str(intent.anchor),
            moved=len(moved),
            context=len(rest),
            placements=len(plan.placements),
            renumbered=len(plan.renumbered),
            renumber_triggered=plan.renumber_triggered,
        )
        return plan

    def _insertion_index(self, rest: list[tuple[int, float | None]], intent: ReorderIntent) -> int:
        kind = intent.anchor.kind
        if kind is AnchorKind.TOP:
            return 0
        if kind is AnchorKind.BOTTOM:
            return len(rest)
        position = [i for i, _ in rest].index(intent.anchor.reference_id)
        return position + 1 if kind is AnchorKind.AFTER else position

    def _place(
        self,
        rest: list[tuple[int, float | None]],
        index: int,
        count: int,
        current: list[float | None] | None = None,
    ) -> list[float | None] | None:
        """
        Values for `count` items inserted at `index`, or None if a renumber is needed.

        An entry is None when that item already sits in the right place.
        """
        lower = rest[index - 1][1] if index > 0 else None
        upper = rest[index][1] if index < len(rest) else None

        if index > 0 and lower is None:
            # Lower neighbour is unranked; nothing to place against
            return None

        if current is not None and self._already_placed(current, lower, upper):
            return [None] * count

        cfg = self._config
        if lower is None and upper is None:
            values = [cfg.stride * (k + 1) for k in range(count)]
        elif lower is None:
            if cfg.non_negative:
                values = self._subdivide(0.0, upper, count)
            else:
                values = [upper - (count - k) for k in range(count)]
        elif upper is None:
            values = [lower + (k + 1) for k in range(count)]
        else:
            values = self._subdivide(lower, upper, count)

        if values is None or not self._strictly_between(values, lower, upper):
            return None
        return values

    def _subdivide(self, lower: float, upper: float, count: int) -> list[float] | None:
        step = (upper - lower) / (count + 1)
        if step < self._config.min_gap:
            return None
        return [lower + step * (k + 1) for k in range(count)]

    def _strictly_between(self, values: list[float], lower: float | None, upper: float | None) -> bool:
        bounded = ([lower] if lower is not None else []) + values + ([upper] if upper is not None else [])
        if self._config.non_negative and values and values[0] < 0:
            return False
        return all(a < b for a, b in zip(bounded, bounded[1:]))

    def _already_placed(self, current: list[float | None], lower: float | None, upper: float | None) -> bool:
        if any(v is None for v in current):
            return False
        return self._strictly_between(current, lower, upper)

    def _renumber_and_place(
        self,
        rest: list[tuple[int, float | None]],
        index: int,
        moved: list[int],
    ) -> ReorderPlan:
        stride = self._config.stride
        fresh = [(item_id, stride * (k + 1)) for k, (item_id, _) in enumerate(rest)]
        renumbered = {
            item_id: value
            for (item_id, value), (_, old) in zip(fresh, rest)
            if old != value
        }

        logger.warning(
            "resolver.renumber",
            context=len(rest),
            changed=len(renumbered),
            stride=stride,
        )

        values = self._place(fresh, index, len(moved))
        if values is None:
            raise OrderResolutionError(
                f"Cannot place {len(moved)} items even after renumbering with stride {stride}"
            )

        return ReorderPlan(
            placements=dict(zip(moved, values)),
            renumbered=renumbered,
            renumber_triggered=True,
        )
