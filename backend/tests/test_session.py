import pytest

from hotel_orders.client import (
    EventStream, HotelOrdersClient, InMemoryStorage, SessionClosed, SessionContext, StaffView, TableSessionTokens,
)
from hotel_orders.services.state_machine import Role


def test_staff_session_requires_staff_id():
    with pytest.raises(ValueError):
        SessionContext.start("staff", hotel_id=1)
    session = SessionContext.start("customer", hotel_id="3")
    assert session.role == Role.CUSTOMER
    assert session.hotel_id == 3


def test_closing_session():
    session = SessionContext.start(Role.ADMIN, hotel_id=1, staff_id=1)
    session.ensure_active()
    session.close()
    closed_at = session.closed_at
    session.close()

    assert session.active is False
    assert session.closed_at == closed_at
    with pytest.raises(SessionClosed):
        session.ensure_active()


def test_session_headers_feed_operation_log(client, create_order):
    session = SessionContext.start(Role.STAFF, hotel_id=1, staff_id=9, username="counter")
    api = HotelOrdersClient(client, headers=session.headers())
    view = StaffView(api, session, EventStream(1))
    view.mount()
    order = create_order()

    view.accept(order["id"])

    log = client.get("/api/operation-logs", params={"action": "接单"}).json()[0]
    assert (log["username"], log["staff_id"], log["hotel_id"]) == ("counter", 9, 1)


def test_view_rejects_stream_of_other_hotel():
    session = SessionContext.start(Role.STAFF, hotel_id=1, staff_id=9)
    with pytest.raises(ValueError):
        StaffView(object(), session, EventStream(2))


def test_table_tokens_are_per_table_and_clearable():
    tokens = TableSessionTokens(InMemoryStorage())
    first = tokens.get_or_create(1, "5")

    assert tokens.get_or_create(1, 5) == first
    assert tokens.get_or_create(1, "6") != first
    assert tokens.get(2, "5") is None

    tokens.clear(1, "5")
    assert tokens.get(1, "5") is None
    assert tokens.get_or_create(1, "5") != first


def test_local_storage_json_helpers():
    storage = InMemoryStorage({"broken": "{", "not_a_list": '{"a": 1}'})

    assert storage.get_json("broken", default=[]) == []
    assert storage.get_array("not_a_list") == []
    storage.set_json("bins", [1, 2])
    assert storage.get_array("bins") == [1, 2]
    storage.remove_item("bins")
    assert storage.get_item("bins") is None
