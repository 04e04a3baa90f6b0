"""
Inventory ledger tests.

Verifies:
- Initial stock is booked as an "Initial stock" adjust movement
- record_movement keeps quantity == latest new_quantity == sum(change)
- Movements that would make stock negative write nothing
- Interleaved and retried movements each apply exactly once
- Price changes append price history; deletes cascade the ledger
- Low-stock listing order
"""

import pytest
from sqlalchemy.exc import OperationalError

from shopkeep.errors import ConflictError, DuplicateSku, NotFoundError, ValidationError
from shopkeep.extensions import db
from shopkeep.models import PriceHistory, Product, StockMovement
from shopkeep.services import concurrency, inventory_service, products_service, sales_service

from conftest import make_product


def _ledger(product_id: int) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id)
        .all()
    )


def _quantity(product_id: int) -> int:
    return db.session.get(Product, product_id).quantity


# =============================================================================
# CREATE
# =============================================================================


class TestCreateProduct:

    def test_initial_stock_is_a_movement(self, db_session):
        created = make_product(quantity=12)

        assert created["quantity"] == 12
        ledger = _ledger(created["id"])
        assert len(ledger) == 1
        assert ledger[0].change == 12
        assert ledger[0].new_quantity == 12
        assert ledger[0].reason == "adjust"
        assert ledger[0].reference == "Initial stock"

    def test_zero_initial_stock_writes_no_movement(self, db_session):
        created = make_product(quantity=0)
        assert created["quantity"] == 0
        assert _ledger(created["id"]) == []

    def test_defaults(self, db_session):
        created = products_service.create_product(patch={"sku": "D-1", "name": "Plain"})
        assert created["min_stock"] == 5
        assert created["wholesale_min"] == 10
        assert created["unit"] == "pcs"
        assert created["pieces_per_unit"] == 1
        assert created["barcode"] is None

    def test_duplicate_sku_writes_nothing(self, db_session):
        make_product(sku="DUP", quantity=3)

        with pytest.raises(DuplicateSku):
            make_product(sku="DUP", name="Other", quantity=9)

        assert db_session.query(Product).count() == 1
        assert db_session.query(StockMovement).count() == 1

    def test_duplicate_barcode_is_conflict(self, db_session):
        make_product(sku="A", barcode="123")
        with pytest.raises(ConflictError):
            make_product(sku="B", barcode="123")

    def test_failed_initial_stock_leaves_no_product(self, db_session, monkeypatch):
        def failing_movement(**kwargs):
            raise ValidationError("Ledger rejected initial stock")

        monkeypatch.setattr(products_service, "_record_movement_inner", failing_movement)

        with pytest.raises(ValidationError):
            products_service.create_product(patch={"name": "Ghost", "sku": "GHOST", "quantity": 5})

        assert db_session.query(Product).count() == 0
        assert db_session.query(StockMovement).count() == 0


# =============================================================================
# MOVEMENTS
# =============================================================================


class TestRecordMovement:

    def test_movement_updates_quantity_and_snapshot(self, db_session, product):
        movement = inventory_service.record_movement(
            product_id=product["id"], change=-5, reason="sale", reference="SALE-X"
        )

        assert movement.new_quantity == 15
        assert _quantity(product["id"]) == 15

    def test_quantity_matches_ledger_after_many_movements(self, db_session, product):
        for change, reason in [(10, "purchase"), (-3, "sale"), (-2, "damage"), (7, "adjust")]:
            inventory_service.record_movement(product_id=product["id"], change=change, reason=reason)

        ledger = _ledger(product["id"])
        quantity = _quantity(product["id"])
        assert quantity == 32
        assert ledger[-1].new_quantity == quantity
        assert sum(m.change for m in ledger) == quantity

    def test_negative_stock_is_rejected_and_nothing_written(self, db_session, product):
        before = len(_ledger(product["id"]))

        with pytest.raises(ValidationError) as exc:
            inventory_service.record_movement(product_id=product["id"], change=-21, reason="sale")

        assert "Insufficient stock" in str(exc.value)
        assert _quantity(product["id"]) == 20
        assert len(_ledger(product["id"])) == before

    def test_draining_to_zero_is_allowed(self, db_session, product):
        movement = inventory_service.record_movement(product_id=product["id"], change=-20, reason="sale")
        assert movement.new_quantity == 0

    def test_zero_change_rejected(self, db_session, product):
        with pytest.raises(ValidationError):
            inventory_service.record_movement(product_id=product["id"], change=0, reason="adjust")

    def test_unknown_reason_rejected(self, db_session, product):
        with pytest.raises(ValidationError):
            inventory_service.record_movement(product_id=product["id"], change=1, reason="gift")

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.record_movement(product_id=999999, change=1, reason="purchase")

    def test_list_movements_newest_first(self, db_session, product):
        inventory_service.record_movement(product_id=product["id"], change=1, reason="purchase")
        inventory_service.record_movement(product_id=product["id"], change=2, reason="purchase")

        movements = inventory_service.list_movements(product_id=product["id"])
        assert [m.change for m in movements] == [2, 1, 20]

    def test_interleaved_movements_and_sales_chain(self, db_session, product, cashier_user):
        inventory_service.record_movement(product_id=product["id"], change=10, reason="purchase")
        sales_service.create_sale(
            user_id=cashier_user.id,
            items=[{"product_id": product["id"], "quantity": 3}],
            payment_type="cash",
        )
        inventory_service.record_movement(product_id=product["id"], change=-2, reason="damage")
        sales_service.create_sale(
            user_id=cashier_user.id,
            items=[{"product_id": product["id"], "quantity": 4}],
            payment_type="card",
        )

        running = 0
        for movement in _ledger(product["id"]):
            running += movement.change
            assert movement.new_quantity == running
        assert _quantity(product["id"]) == running == 21

    def test_retried_movement_applies_once(self, db_session, product, monkeypatch):
        original = inventory_service._record_movement_inner
        calls = []

        def locked_once(**kwargs):
            calls.append(kwargs)
            movement = original(**kwargs)
            if len(calls) == 1:
                raise OperationalError("UPDATE products", {}, Exception("database is locked"))
            return movement

        monkeypatch.setattr(inventory_service, "_record_movement_inner", locked_once)
        monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)

        movement = inventory_service.record_movement(product_id=product["id"], change=5, reason="purchase")

        assert len(calls) == 2
        assert movement.new_quantity == 25
        assert _quantity(product["id"]) == 25
        assert [m.change for m in _ledger(product["id"])] == [20, 5]


# =============================================================================
# UPDATE / PRICE HISTORY
# =============================================================================


class TestUpdateProduct:

    def test_price_change_appends_history(self, db_session, product, admin_user):
        products_service.update_product(
            product_id=product["id"], patch={"price_cents": 175}, user_id=admin_user.id
        )

        history = db_session.query(PriceHistory).filter_by(product_id=product["id"]).all()
        assert len(history) == 1
        assert history[0].old_price_cents == 150
        assert history[0].new_price_cents == 175
        assert history[0].user_id == admin_user.id

    def test_same_price_records_nothing(self, db_session, product):
        products_service.update_product(product_id=product["id"], patch={"price_cents": 150, "name": "Renamed"})
        assert db_session.query(PriceHistory).count() == 0
        assert db.session.get(Product, product["id"]).name == "Renamed"

    def test_sku_taken_by_other_product(self, db_session, product):
        other = make_product(sku="OTHER", name="Other")
        with pytest.raises(DuplicateSku):
            products_service.update_product(product_id=other["id"], patch={"sku": product["sku"]})

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            products_service.update_product(product_id=999999, patch={"name": "x"})

    def test_get_product_includes_recent_movements_and_history(self, db_session, product):
        for _ in range(12):
            inventory_service.record_movement(product_id=product["id"], change=1, reason="purchase")
        products_service.update_product(product_id=product["id"], patch={"price_cents": 200})

        data = products_service.get_product(product["id"])
        assert len(data["recent_movements"]) == 10
        assert data["recent_movements"][0]["new_quantity"] == 32
        assert len(data["price_history"]) == 1


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteProduct:

    def test_delete_cascades_ledger(self, db_session, product):
        inventory_service.record_movement(product_id=product["id"], change=-1, reason="sale")
        products_service.update_product(product_id=product["id"], patch={"price_cents": 99})

        products_service.delete_product(product_id=product["id"])

        assert db.session.get(Product, product["id"]) is None
        assert db_session.query(StockMovement).count() == 0
        assert db_session.query(PriceHistory).count() == 0

    def test_delete_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            products_service.delete_product(product_id=999999)


# =============================================================================
# LOW STOCK
# =============================================================================


class TestLowStock:

    def test_low_stock_ordered_by_quantity(self, db_session):
        make_product(sku="OK", quantity=50, min_stock=5)
        b = make_product(sku="B", quantity=3, min_stock=5)
        c = make_product(sku="C", quantity=0, min_stock=5)
        d = make_product(sku="D", quantity=10, min_stock=10)

        low = inventory_service.get_low_stock()
        assert [p.id for p in low] == [c["id"], b["id"], d["id"]]

    def test_empty_when_all_stocked(self, db_session):
        make_product(sku="OK", quantity=50)
        assert inventory_service.get_low_stock() == []
