"""Tests for the order resolver."""

import pytest

from backlog_sync.ordering.resolver import OrderResolver, ReorderPlan
from backlog_sync.workitem.config import OrderingConfig
from backlog_sync.workitem.errors import (
    DuplicateIdentifier,
    EmptyIntent,
    OrderResolutionError,
    ReorderPreconditionError,
    UnknownAnchor,
)
from backlog_sync.workitem.types import Anchor, PatchOperation, ReorderIntent, WorkItem

CONTEXT = {1: 10.0, 2: 20.0, 3: 30.0}


@pytest.fixture
def resolver():
    return OrderResolver()


def _resolve(resolver, context, ids, anchor):
    return resolver.resolve(context, ReorderIntent(tuple(ids), anchor))


class TestEndToEndScenarios:
    """The canonical three-item backlog."""

    def test_move_after(self, resolver):
        """Moving 3 after 1 lands on the midpoint of 10 and 20."""
        plan = _resolve(resolver, CONTEXT, [3], Anchor.after(1))
        assert plan.placements == {3: 15.0}
        assert plan.renumbered == {}
        assert plan.renumber_triggered is False
        assert plan.final_order == [1, 3, 2]

    def test_move_to_top(self, resolver):
        """Moving 2 to the top takes min - 1."""
        plan = _resolve(resolver, CONTEXT, [2], Anchor.top())
        assert plan.placements == {2: 9.0}
        assert plan.renumber_triggered is False
        assert plan.final_order == [2, 1, 3]

    def test_move_to_bottom(self, resolver):
        plan = _resolve(resolver, CONTEXT, [1], Anchor.bottom())
        assert plan.placements == {1: 31.0}

    def test_move_before(self, resolver):
        plan = _resolve(resolver, CONTEXT, [3], Anchor.before(2))
        assert plan.placements == {3: 15.0}

    def test_before_first_item(self, resolver):
        plan = _resolve(resolver, CONTEXT, [3], Anchor.before(1))
        assert plan.placements == {3: 9.0}

    def test_accepts_work_items(self, resolver):
        items = [WorkItem(id=i, order=o) for i, o in CONTEXT.items()]
        plan = _resolve(resolver, items, [3], Anchor.after(1))
        assert plan.placements == {3: 15.0}


class TestPreconditions:
    """Intent validation happens before any values are computed."""

    def test_empty_intent(self, resolver):
        with pytest.raises(EmptyIntent):
            _resolve(resolver, CONTEXT, [], Anchor.top())

    def test_duplicate_identifier(self, resolver):
        with pytest.raises(DuplicateIdentifier) as exc:
            _resolve(resolver, CONTEXT, [2, 3, 2], Anchor.top())
        assert exc.value.item_id == 2

    def test_duplicate_is_a_precondition_error(self, resolver):
        with pytest.raises(ReorderPreconditionError):
            resolver.check_intent(ReorderIntent((1, 1), Anchor.bottom()))

    def test_unknown_anchor(self, resolver):
        with pytest.raises(UnknownAnchor) as exc:
            _resolve(resolver, CONTEXT, [3], Anchor.after(99))
        assert exc.value.item_id == 99

    def test_anchor_is_moved_item(self, resolver):
        with pytest.raises(ReorderPreconditionError, match="one of the moved items"):
            _resolve(resolver, CONTEXT, [3], Anchor.after(3))


class TestPlacement:
    """Placement properties."""

    @pytest.mark.parametrize("a,b", [(10.0, 20.0), (0.0, 1e-3), (-5.0, 5.0), (1e9, 1e9 + 1)])
    def test_single_insertion_is_strictly_between(self, resolver, a, b):
        plan = _resolve(resolver, {1: a, 2: b, 3: b + 100}, [3], Anchor.after(1))
        mid = plan.placements[3]
        assert a < mid < b
        assert plan.renumber_triggered is False

    def test_k_items_subdivide_gap_in_requested_order(self, resolver):
        context = {1: 10.0, 2: 20.0, 5: 50.0, 6: 60.0, 7: 70.0}
        plan = _resolve(resolver, context, [7, 5, 6], Anchor.after(1))

        values = [plan.placements[i] for i in (7, 5, 6)]
        assert values == [12.5, 15.0, 17.5]
        assert all(10.0 < v < 20.0 for v in values)
        assert plan.final_order == [1, 7, 5, 6, 2]

    def test_k_items_to_top(self, resolver):
        plan = _resolve(resolver, CONTEXT, [3, 2], Anchor.top())
        assert plan.placements == {3: 8.0, 2: 9.0}

    def test_k_items_to_bottom(self, resolver):
        plan = _resolve(resolver, CONTEXT, [2, 1], Anchor.bottom())
        assert plan.placements == {2: 31.0, 1: 32.0}

    def test_non_negative_top_halves_minimum(self):
        resolver = OrderResolver(OrderingConfig(non_negative=True))
        plan = _resolve(resolver, CONTEXT, [2], Anchor.top())
        assert plan.placements == {2: 5.0}

    def test_non_moved_items_untouched(self, resolver):
        plan = _resolve(resolver, CONTEXT, [3], Anchor.after(1))
        assert set(plan.placements) == {3}
        ops = plan.to_patch_operations("Microsoft.VSTS.Common.StackRank")
        assert ops == [PatchOperation(3, "Microsoft.VSTS.Common.StackRank", 15.0)]

    def test_empty_context_uses_stride(self, resolver):
        plan = _resolve(resolver, {}, [4, 5], Anchor.top())
        assert plan.placements == {4: 1000.0, 5: 2000.0}

    def test_moved_item_outside_context(self, resolver):
        plan = _resolve(resolver, CONTEXT, [8], Anchor.after(2))
        assert plan.placements == {8: 25.0}
        assert plan.final_order == [1, 2, 8, 3]

    def test_already_in_place_is_noop(self, resolver):
        plan = _resolve(resolver, CONTEXT, [2], Anchor.after(1))
        assert plan.placements == {}
        assert plan.is_noop

    def test_ties_broken_by_id(self, resolver):
        plan = _resolve(resolver, {1: 10.0, 2: 10.0, 3: 30.0}, [3], Anchor.after(1))
        # 1 and 2 share a rank; 2 is 1's successor, so the gap is (10, 10)
        assert plan.renumber_triggered is True
        assert plan.final_order == [1, 3, 2]


class TestRenumber:
    """Renumbering when the gap is too narrow."""

    def test_gap_below_resolution_triggers_renumber(self, resolver):
        context = {1: 10.0, 2: 10.0 + 1e-7, 3: 30.0}
        plan = _resolve(resolver, context, [3], Anchor.after(1))

        assert plan.renumber_triggered is True
        assert plan.renumbered == {1: 1000.0, 2: 2000.0}
        assert plan.placements == {3: 1500.0}
        assert plan.final_order == [1, 3, 2]

    def test_float_collapse_triggers_renumber(self, resolver):
        """Adding 1 to a huge rank is absorbed by rounding."""
        big = 2.0 ** 60
        plan = _resolve(resolver, {1: big, 2: 5.0}, [2], Anchor.bottom())
        assert plan.renumber_triggered is True
        assert plan.renumbered == {1: 1000.0}
        assert plan.placements == {2: 1001.0}

    def test_renumber_is_evenly_spaced_and_order_preserving(self, resolver):
        context = {i: 1.0 + i * 1e-8 for i in range(1, 21)}
        context[99] = 500.0
        plan = _resolve(resolver, context, [99], Anchor.after(10))

        assert plan.renumber_triggered is True
        renumbered = [plan.renumbered[i] for i in range(1, 21)]
        assert renumbered == [1000.0 * i for i in range(1, 21)]
        steps = {b - a for a, b in zip(renumbered, renumbered[1:])}
        assert steps == {1000.0}
        assert 10000.0 < plan.placements[99] < 11000.0

    def test_renumber_only_reports_changed_values(self, resolver):
        context = {1: 1000.0, 2: 1000.0 + 1e-7, 3: 3000.0, 4: 4000.0}
        plan = _resolve(resolver, context, [4], Anchor.after(1))
        assert plan.renumbered == {2: 2000.0}
        assert plan.placements == {4: 1500.0}

    def test_non_negative_top_below_resolution(self):
        resolver = OrderResolver(OrderingConfig(non_negative=True))
        plan = _resolve(resolver, {1: 1e-7, 2: 5.0}, [2], Anchor.top())
        assert plan.renumber_triggered is True
        assert plan.placements == {2: 500.0}
        assert plan.renumbered == {1: 1000.0}

    def test_unranked_lower_neighbour_triggers_renumber(self, resolver):
        context = {1: 10.0, 2: None, 3: 30.0}
        plan = _resolve(resolver, context, [3], Anchor.bottom())
        assert plan.renumber_triggered is True
        assert plan.renumbered == {1: 1000.0, 2: 2000.0}
        assert plan.placements == {3: 2001.0}

    def test_unranked_upper_neighbour_is_open(self, resolver):
        """Unranked items always sort last, so they never bound a gap from above."""
        plan = _resolve(resolver, {1: 10.0, 2: None}, [4], Anchor.after(1))
        assert plan.renumber_triggered is False
        assert plan.placements == {4: 11.0}

    def test_ranked_item_before_unranked_is_already_placed(self, resolver):
        plan = _resolve(resolver, {1: 10.0, 2: None, 3: 30.0}, [3], Anchor.after(1))
        assert plan.is_noop

    def test_unresolvable_after_renumber(self):
        resolver = OrderResolver(OrderingConfig(min_gap=0.5, stride=1.0))
        with pytest.raises(OrderResolutionError):
            _resolve(resolver, {1: 1.0, 2: 1.1, 5: 9.0, 6: 9.5}, [5, 6], Anchor.after(1))

    def test_renumber_operations_listed_first(self, resolver):
        context = {1: 10.0, 2: 10.0 + 1e-7, 3: 30.0}
        plan = _resolve(resolver, context, [3], Anchor.after(1))
        ops = plan.to_patch_operations("rank")
        assert [op.item_id for op in ops] == [1, 2, 3]


class TestReorderPlan:
    """Tests for ReorderPlan helpers."""

    def test_to_dict(self):
        plan = ReorderPlan(placements={3: 15.0}, final_order=[1, 3, 2])
        assert plan.to_dict() == {
            "placements": {"3": 15.0},
            "renumbered": {},
            "renumber_triggered": False,
            "final_order": [1, 3, 2],
        }
