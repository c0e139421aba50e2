"""
Unit tests for production queue ranking.
"""

import pytest

from models.order import Customer, Order, Task
from models.stamp import ProductionState, Stamp
from models.states import AspireSubstate, FabricationState, TaskStatus
from modules.ranking import (
    SortCriterion,
    SortDirection,
    SortField,
    compare,
    default_priority_order,
    make_comparator,
    order_rank,
    parse_criteria,
    priority_order_from_config,
    sort_orders,
    sort_queue,
)


# Fixtures

def make_stamp(stamp_id, production=None, order_id="order-1", **changes):
    return Stamp(
        id=stamp_id,
        order_id=order_id,
        production=production or ProductionState(),
        **changes,
    )


@pytest.fixture
def mixed_queue():
    """One stamp per fabrication state, in scrambled order."""
    return [
        make_stamp("done", ProductionState(FabricationState.DONE)),
        make_stamp("scheduled", ProductionState.scheduled()),
        make_stamp("in-progress", ProductionState(FabricationState.IN_PROGRESS)),
        make_stamp("aspire-c", ProductionState.scheduled(AspireSubstate.ASPIRE_C)),
        make_stamp("not-started", ProductionState()),
        make_stamp("verify", ProductionState(FabricationState.VERIFY)),
        make_stamp("aspire-g", ProductionState.scheduled(AspireSubstate.ASPIRE_G)),
    ]


# Tests for priority lists

class TestPriorityOrder:
    """Default and configured rank-key lists."""

    def test_default_order(self):
        assert default_priority_order() == [
            "SIN_HACER",
            "ASPIRE_Aspire_G",
            "ASPIRE_Aspire_G_Check",
            "ASPIRE_Aspire_C",
            "ASPIRE_Aspire_C_Check",
            "ASPIRE_Aspire_XL",
            "HACIENDO",
            "REHACER",
            "RETOCAR",
            "VERIFICAR",
            "HECHO",
            "PROGRAMADO",
        ]

    def test_custom_aspire_order(self):
        order = default_priority_order(["Aspire XL", "ASPIRE_Aspire_C", "bogus"])

        assert order[:4] == ["SIN_HACER", "ASPIRE_Aspire_XL", "ASPIRE_Aspire_C", "HACIENDO"]

    def test_explicit_config_order(self):
        config = {"PRODUCTION_PRIORITY_ORDER": ["Hecho", "VERIFICAR", "HECHO", "nope"]}

        assert priority_order_from_config(config) == ["HECHO", "VERIFICAR"]

    def test_empty_config_uses_default(self):
        config = {"PRODUCTION_PRIORITY_ORDER": [], "ASPIRE_SUBSTATE_ORDER": None}

        assert priority_order_from_config(config) == default_priority_order()


# Tests for sort_queue()

class TestSortQueue:
    """Stamp ordering."""

    def test_default_queue(self, mixed_queue):
        ranked = [stamp.id for stamp in sort_queue(mixed_queue)]

        assert ranked == [
            "not-started", "aspire-g", "aspire-c", "in-progress", "verify", "done", "scheduled",
        ]

    def test_unlisted_keys_rank_last_and_stay_stable(self, mixed_queue):
        """Test keys missing from the list keep their input order at the end."""
        ranked = [stamp.id for stamp in sort_queue(mixed_queue, priority_order=["HECHO"])]

        assert ranked[0] == "done"
        assert ranked[1:] == [s.id for s in mixed_queue if s.id != "done"]

    def test_area_descending_breaks_ties(self):
        stamps = [
            make_stamp("small", width_mm=20, height_mm=20),
            make_stamp("large", width_mm=60, height_mm=40),
            make_stamp("medium", width_mm=30, height_mm=30),
        ]
        criteria = parse_criteria("medida:desc")

        assert [s.id for s in sort_queue(stamps, criteria=criteria)] == ["large", "medium", "small"]

    def test_later_criteria_only_break_ties(self):
        stamps = [
            make_stamp("b", width_mm=10, height_mm=10, created_at="2025-02-01"),
            make_stamp("a", width_mm=10, height_mm=10, created_at="2025-01-01"),
            make_stamp("c", width_mm=50, height_mm=50, created_at="2024-12-01"),
        ]
        criteria = parse_criteria("medida,fecha")

        assert [s.id for s in sort_queue(stamps, criteria=criteria)] == ["a", "b", "c"]

    def test_text_is_case_insensitive_and_blank_sorts_last(self):
        stamps = [
            make_stamp("1", design_name="zeta"),
            make_stamp("2", design_name=""),
            make_stamp("3", design_name="Alfa"),
        ]
        criteria = [SortCriterion(SortField.DESIGN)]

        assert [s.id for s in sort_queue(stamps, criteria=criteria)] == ["3", "1", "2"]

    def test_priority_flag_first(self):
        stamps = [make_stamp("plain"), make_stamp("urgent", is_priority=True)]
        criteria = [SortCriterion(SortField.PRIORITY)]

        assert sort_queue(stamps, criteria=criteria)[0].id == "urgent"

    def test_open_tasks(self):
        stamps = [make_stamp("a", order_id="busy"), make_stamp("b", order_id="idle")]
        criteria = [SortCriterion(SortField.TASKS, SortDirection.DESC)]

        ranked = sort_queue(stamps, criteria=criteria, open_tasks={"busy": 3})

        assert [s.id for s in ranked] == ["a", "b"]

    def test_comparator_is_antisymmetric(self, mixed_queue):
        comparator = make_comparator(criteria=parse_criteria("fabricacion,disenio:desc"))

        for a in mixed_queue:
            for b in mixed_queue:
                assert comparator(a, b) == -comparator(b, a)

    def test_comparator_is_transitive_with_missing_values(self, mixed_queue):
        """Test DESC criteria over gaps still give a consistent total order."""
        queue = mixed_queue + [
            make_stamp("blank-1", design_name="", deadline="2025-05-01"),
            make_stamp("blank-2", design_name="  ", machine="G"),
            make_stamp("sello-a", design_name="Sello", deadline="2025-04-01", machine="XL"),
            make_stamp("sello-b", design_name="sello", machine="C"),
            make_stamp("zeta", design_name="Zeta", deadline="2025-04-01"),
            make_stamp("done-logo", ProductionState(FabricationState.DONE), design_name="Logo"),
            make_stamp("done-none", ProductionState(FabricationState.DONE), machine="G"),
        ]
        comparator = make_comparator(criteria=parse_criteria("disenio:desc,fecha_limite,maquina:desc"))

        for a in queue:
            for b in queue:
                for c in queue:
                    if comparator(a, b) <= 0 and comparator(b, c) <= 0:
                        assert comparator(a, c) <= 0, (a.id, b.id, c.id)

        ranked = sort_queue(queue, criteria=parse_criteria("disenio:desc,fecha_limite,maquina:desc"))
        for first, second in zip(ranked, ranked[1:]):
            assert comparator(first, second) <= 0

    def test_compare(self):
        a = make_stamp("a")
        b = make_stamp("b", ProductionState(FabricationState.DONE))

        assert compare(a, b) == -1
        assert compare(b, a) == 1
        assert compare(a, a) == 0


# Tests for parse_criteria()

class TestParseCriteria:
    """Sort query parsing."""

    def test_query_string(self):
        criteria = parse_criteria("medida:desc,fecha")

        assert criteria == [
            SortCriterion(SortField.AREA, SortDirection.DESC),
            SortCriterion(SortField.CREATED, SortDirection.ASC),
        ]

    def test_dict_items(self):
        criteria = parse_criteria([{"field": "valor", "dir": "DESC"}])

        assert criteria == [SortCriterion(SortField.VALUE, SortDirection.DESC)]

    @pytest.mark.parametrize("raw", [None, ""])
    def test_empty(self, raw):
        assert parse_criteria(raw) == []

    def test_unknown_field_raises(self):
        with pytest.raises(ValueError, match="sort field"):
            parse_criteria("colour")

    def test_unknown_direction_raises(self):
        with pytest.raises(ValueError, match="sort direction"):
            parse_criteria("valor:sideways")


# Tests for order-level ranking

class TestOrderRanking:
    """Orders ranked by their most urgent stamp."""

    def test_order_rank_is_most_urgent_stamp(self):
        stamps = [
            make_stamp("a", ProductionState(FabricationState.DONE)),
            make_stamp("b", ProductionState(FabricationState.IN_PROGRESS)),
        ]

        assert order_rank(stamps) == default_priority_order().index("HACIENDO")

    def test_sort_orders(self):
        finished = Order(id="finished", customer=Customer(first_name="Ana"))
        pending = Order(id="pending", customer=Customer(first_name="Beto"))
        entries = [
            (finished, [make_stamp("f1", ProductionState(FabricationState.DONE), order_id="finished")]),
            (pending, [
                make_stamp("p1", ProductionState(FabricationState.DONE), order_id="pending"),
                make_stamp("p2", ProductionState(), order_id="pending"),
            ]),
        ]

        ranked = sort_orders(entries)

        assert [order.id for order, _ in ranked] == ["pending", "finished"]

    def test_sort_orders_by_customer_and_tasks(self):
        open_task = Task(id="t1", order_id="b", title="Llamar")
        closed_task = Task(id="t2", order_id="a", title="Cobrar", status=TaskStatus.COMPLETED)
        a = Order(id="a", customer=Customer(first_name="zoe"), tasks=(closed_task,))
        b = Order(id="b", customer=Customer(first_name="Ana"), tasks=(open_task,))
        entries = [(a, [make_stamp("a1", order_id="a")]), (b, [make_stamp("b1", order_id="b")])]

        by_customer = sort_orders(entries, criteria=parse_criteria("cliente"))
        by_tasks = sort_orders(entries, criteria=parse_criteria("tarea:desc"))

        assert [o.id for o, _ in by_customer] == ["b", "a"]
        assert [o.id for o, _ in by_tasks] == ["b", "a"]
