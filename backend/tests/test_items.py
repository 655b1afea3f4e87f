from decimal import Decimal

import pytest

from hotel_orders.services.items import items_total, merge_items, normalize_items, remove_one_unit


def test_total_is_sum_of_price_times_quantity():
    items = normalize_items([
        {"name": "Tea", "price": 20, "quantity": 2},
        {"name": "Samosa", "price": "15.00", "quantity": 1},
    ])
    assert items_total(items) == Decimal("55.00")


def test_normalize_rejects_zero_quantity():
    with pytest.raises(ValueError):
        normalize_items([{"name": "Tea", "price": 20, "quantity": 0}])


def test_merge_adds_quantity_to_existing_line():
    existing = [{"name": "Tea", "price": 20, "quantity": 2}]
    merged = merge_items(existing, [{"name": "tea ", "price": 20, "quantity": 1},
                                    {"name": "Vada", "price": 12.5, "quantity": 2}])
    assert [(i["name"], i["quantity"]) for i in merged] == [("Tea", 3), ("Vada", 2)]
    assert items_total(merged) == Decimal("85.00")


def test_merge_prefers_product_id_over_name():
    existing = [{"name": "Tea", "product_id": 3, "price": 20, "quantity": 1}]
    merged = merge_items(existing, [{"name": "Masala Tea", "product_id": 3, "price": "20.00", "quantity": 1}])
    assert len(merged) == 1
    assert merged[0]["quantity"] == 2


def test_merge_keeps_price_of_units_already_ordered():
    existing = [{"name": "Tea", "price": 20, "quantity": 2}]
    merged = merge_items(existing, [{"name": "Tea", "price": 25, "quantity": 1}])

    assert [(i["name"], i["price"], i["quantity"]) for i in merged] == [("Tea", 20.0, 2), ("Tea", 25.0, 1)]
    assert items_total(merged) == Decimal("65.00")


def test_remove_last_unit_removes_the_line():
    items = [{"name": "Tea", "price": 20, "quantity": 1}, {"name": "Samosa", "price": 15, "quantity": 2}]
    result = remove_one_unit(items, name="Tea")
    assert result == [{"name": "Samosa", "price": 15, "quantity": 2}]
    result = remove_one_unit(result, name="Samosa")
    assert result[0]["quantity"] == 1


def test_remove_unknown_item_raises():
    with pytest.raises(ValueError):
        remove_one_unit([{"name": "Tea", "price": 20, "quantity": 1}], name="Coffee")
