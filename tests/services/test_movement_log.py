"""
Tests for StockMovementLog: every counter change is paired with exactly one
appended movement, and replaying the log reproduces the counter.
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from stock_kernel.domain.dtos import MovementSpec
from stock_kernel.domain.movement_rules import StockMovementType
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.models.stock_movement import StockMovement


def _spec(catalog, movement_type, quantity, product="concha", source=None, dest=None, **kw):
    return MovementSpec(
        movement_type=movement_type,
        quantity=quantity,
        product_id=catalog.product(product),
        from_branch_id=catalog.branch(source) if source else None,
        to_branch_id=catalog.branch(dest) if dest else None,
        **kw,
    )


def _movement_count(session) -> int:
    return session.execute(select(func.count()).select_from(StockMovement)).scalar_one()


class TestRecord:

    def test_purchase_appends_and_increases(self, movement_log, ledger, catalog, actor):
        movement = movement_log.record(
            _spec(catalog, StockMovementType.COMPRA, 10, dest="centro", note="supplier"),
            actor,
        )

        assert movement.seq >= 1
        assert movement.movement_type == "COMPRA"
        assert movement.created_by == actor.user_id
        assert movement.note == "supplier"
        assert ledger.get_available(catalog.product("concha"), catalog.branch("centro")) == 10

    def test_seq_is_strictly_increasing(self, movement_log, catalog, actor):
        first = movement_log.record(_spec(catalog, StockMovementType.COMPRA, 1, dest="centro"), actor)
        second = movement_log.record(_spec(catalog, StockMovementType.PRODUCCION, 1, dest="norte"), actor)
        third = movement_log.record(_spec(catalog, StockMovementType.MERMA, 1, source="centro"), actor)
        assert first.seq < second.seq < third.seq

    @pytest.mark.parametrize(
        "movement_type",
        [StockMovementType.VENTA, StockMovementType.MERMA, StockMovementType.PERDIDA_ROBO],
    )
    def test_decrease_beyond_available_appends_nothing(
        self, movement_log, ledger, catalog, actor, session, movement_type
    ):
        movement_log.record(_spec(catalog, StockMovementType.COMPRA, 2, dest="centro"), actor)
        before = _movement_count(session)

        with pytest.raises(InsufficientStockError):
            movement_log.record(_spec(catalog, movement_type, 3, source="centro"), actor)

        assert _movement_count(session) == before
        assert ledger.get_available(catalog.product("concha"), catalog.branch("centro")) == 2

    def test_decrease_may_not_touch_reserved_units(self, movement_log, ledger, catalog, actor):
        p, b = catalog.product("concha"), catalog.branch("centro")
        movement_log.record(_spec(catalog, StockMovementType.COMPRA, 5, dest="centro"), actor)
        ledger.adjust_reserved(p, b, 4)

        with pytest.raises(InsufficientStockError):
            movement_log.record(_spec(catalog, StockMovementType.MERMA, 2, source="centro"), actor)

        record = ledger.get_record(p, b)
        assert (record.quantity, record.reserved) == (5, 4)

    def test_reference_id_is_kept(self, movement_log, catalog, actor):
        ref = uuid4()
        movement = movement_log.record(
            _spec(catalog, StockMovementType.COMPRA, 1, dest="centro", reference_id=ref), actor
        )
        assert movement.reference_id == ref


class TestTransfer:

    def test_moves_stock_in_one_row(self, movement_log, ledger, catalog, actor, session):
        movement_log.record(_spec(catalog, StockMovementType.COMPRA, 10, dest="centro"), actor)
        before = _movement_count(session)

        movement = movement_log.record(
            _spec(catalog, StockMovementType.TRANSFERENCIA, 4, source="centro", dest="norte"),
            actor,
        )

        p = catalog.product("concha")
        assert _movement_count(session) == before + 1
        assert movement.from_branch_id == catalog.branch("centro")
        assert movement.to_branch_id == catalog.branch("norte")
        assert ledger.get_available(p, catalog.branch("centro")) == 6
        assert ledger.get_available(p, catalog.branch("norte")) == 4
        assert ledger.get_available(p) == 10

    def test_short_source_leaves_both_branches_untouched(self, movement_log, ledger, catalog, actor):
        p = catalog.product("concha")
        movement_log.record(_spec(catalog, StockMovementType.COMPRA, 3, dest="centro"), actor)
        movement_log.record(_spec(catalog, StockMovementType.COMPRA, 1, dest="norte"), actor)

        with pytest.raises(InsufficientStockError):
            movement_log.record(
                _spec(catalog, StockMovementType.TRANSFERENCIA, 5, source="centro", dest="norte"),
                actor,
            )

        assert ledger.get_available(p, catalog.branch("centro")) == 3
        assert ledger.get_available(p, catalog.branch("norte")) == 1


class TestReplay:

    def test_replay_matches_stored_quantity(self, movement_log, ledger, catalog, actor):
        p = catalog.product("concha")
        movement_log.record(_spec(catalog, StockMovementType.COMPRA, 10, dest="centro"), actor)
        movement_log.record(_spec(catalog, StockMovementType.PRODUCCION, 5, dest="centro"), actor)
        movement_log.record(_spec(catalog, StockMovementType.MERMA, 2, source="centro"), actor)
        movement_log.record(
            _spec(catalog, StockMovementType.TRANSFERENCIA, 4, source="centro", dest="norte"), actor
        )
        movement_log.record(_spec(catalog, StockMovementType.SOBRANTE, 1, dest="norte"), actor)
        movement_log.record(_spec(catalog, StockMovementType.VENTA, 3, source="norte"), actor)

        for slug, expected in (("centro", 9), ("norte", 2)):
            b = catalog.branch(slug)
            assert movement_log.replay_quantity(p, b) == expected
            assert ledger.get_record(p, b).quantity == expected

    def test_movements_for_pair_in_seq_order(self, movement_log, catalog, actor):
        p, b = catalog.product("concha"), catalog.branch("centro")
        movement_log.record(_spec(catalog, StockMovementType.COMPRA, 3, dest="centro"), actor)
        movement_log.record(
            _spec(catalog, StockMovementType.TRANSFERENCIA, 1, source="centro", dest="norte"), actor
        )
        movement_log.record(_spec(catalog, StockMovementType.COMPRA, 9, dest="norte"), actor)

        rows = movement_log.movements_for(p, b)
        assert [r.movement_type for r in rows] == ["COMPRA", "TRANSFERENCIA"]
        assert rows[0].seq < rows[1].seq


class TestLogging:

    def test_movement_recorded_log(self, movement_log, catalog, actor, captured_logs):
        movement_log.record(_spec(catalog, StockMovementType.COMPRA, 2, dest="centro"), actor)

        records = [r for r in captured_logs() if r["message"] == "movement_recorded"]
        assert len(records) == 1
        assert records[0]["movement_type"] == "COMPRA"
        assert records[0]["quantity"] == 2
        assert records[0]["invariant"] == "movement_replay"
