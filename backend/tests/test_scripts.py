from decimal import Decimal

from hotel_orders.db.init_db import init_db
from hotel_orders.models import Bill, Order
from hotel_orders.models.system_config import SystemConfig
from hotel_orders.scripts.recalculate_order_totals import recalculate_order_totals


def test_init_db_seeds_defaults_once(db):
    init_db()
    init_db()
    configs = {c.key: c.value for c in db.query(SystemConfig).all()}
    assert configs["default_tax_percentage"] == "0"
    assert configs["printer_port"] == "9100"
    assert db.query(SystemConfig).count() == len(configs)


def test_recalculate_fixes_order_and_bill(client, db, create_order, advance):
    order = create_order()
    advance(order["id"], "in_progress", "delivered")
    client.post("/api/bills/create", json={
        "hotel_id": 1, "staff_id": 7, "payment_type": "cash", "order_id": order["id"], "tax_percentage": "10",
    })
    untouched = create_order(hotel_id=2)
    db.query(Order).update({"total_amount": Decimal("1.00")})
    db.query(Bill).update({"total": Decimal("1.00"), "tax_amount": Decimal("0.10"), "final_total": Decimal("1.10")})
    db.commit()

    assert recalculate_order_totals(hotel_id=1, dry_run=True) == 1
    db.expire_all()
    assert db.query(Order).filter(Order.id == order["id"]).one().total_amount == Decimal("1.00")

    assert recalculate_order_totals(hotel_id=1) == 1
    db.expire_all()
    assert db.query(Order).filter(Order.id == order["id"]).one().total_amount == Decimal("55.00")
    assert db.query(Order).filter(Order.id == untouched["id"]).one().total_amount == Decimal("1.00")
    bill = db.query(Bill).one()
    assert bill.total == Decimal("55.00")
    assert bill.tax_amount == Decimal("5.50")
    assert bill.final_total == Decimal("60.50")

    assert recalculate_order_totals(hotel_id=1) == 0
