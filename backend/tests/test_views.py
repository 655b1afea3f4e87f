import asyncio
from decimal import Decimal

import httpx
import pytest

from conftest import TEA_AND_SAMOSA
from hotel_orders.client import (
    AdminView, CustomerView, EventStream, HotelOrdersClient, InMemoryStorage, RecycleBinStore,
    RequestRejected, SessionClosed, SessionContext, StaffView, TableSessionTokens, TransientNetworkError,
)
from hotel_orders.services.state_machine import InvalidTransitionError, Role


class FakeMonotonic:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def api(client):
    return HotelOrdersClient(client)


@pytest.fixture
def clock():
    return FakeMonotonic()


@pytest.fixture
def live_stream(broadcaster):
    """接到广播器上的事件流（相当于已加入酒店房间）"""
    stream = EventStream(1)
    unsubscribe = broadcaster.subscribe(1, stream.callback())
    yield stream
    unsubscribe()


def staff_view(api, stream, clock, staff_id=7):
    session = SessionContext.start(Role.STAFF, hotel_id=1, staff_id=staff_id, username="kitchen")
    view = StaffView(api, session, stream, clock=clock)
    view.mount()
    return view


def test_poll_shows_status_change_within_two_seconds_when_event_is_dropped(api, clock):
    # 事件流没有连到广播器：所有推送都丢失
    view = staff_view(api, EventStream(1), clock)
    order = api.create_order(1, "Ravi", TEA_AND_SAMOSA, table_number="5")
    view.tick()
    assert view.orders == []

    clock.advance(2.0)
    view.tick()
    assert [o["status"] for o in view.orders] == ["pending"]

    api.accept_order(order["id"], staff_id=8)
    clock.advance(1.0)
    view.tick()
    assert view.orders[0]["status"] == "pending"

    clock.advance(1.0)
    view.tick()
    assert view.orders[0]["status"] == "in_progress"


def test_events_trigger_a_single_refresh(api, live_stream, clock):
    view = staff_view(api, live_stream, clock)
    refreshes = view.refresh_count

    order = api.create_order(1, "Ravi", TEA_AND_SAMOSA, table_number="5")
    api.accept_order(order["id"], staff_id=8)
    api.update_status(order["id"], "delivered")

    assert view.process_events() == 3
    assert view.refresh_count == refreshes + 1
    assert view.orders[0]["status"] == "delivered"


def test_other_hotel_events_are_ignored(api, broadcaster, live_stream, clock):
    broadcaster.subscribe(2, live_stream.callback())
    view = staff_view(api, live_stream, clock)

    api.create_order(2, "Other", TEA_AND_SAMOSA, table_number="1")

    assert view.process_events() == 0


def test_help_requests_reach_staff(api, live_stream, clock):
    tokens = TableSessionTokens(InMemoryStorage())
    customer_session = SessionContext.start(Role.CUSTOMER, hotel_id=1)
    customer = CustomerView(api, customer_session, live_stream, table_number=5, tokens=tokens, clock=clock)
    customer.mount()
    staff = staff_view(api, live_stream, clock)

    customer.request_help(customer_name="Asha", message="需要餐具")
    staff.process_events()

    assert staff.help_requests[0]["table_number"] == "5"
    assert staff.help_requests[0]["message"] == "需要餐具"


def test_customer_view_tracks_its_table_session(api, live_stream, clock):
    storage = InMemoryStorage()
    tokens = TableSessionTokens(storage)
    session = SessionContext.start(Role.CUSTOMER, hotel_id=1)
    view = CustomerView(api, session, live_stream, table_number=5, tokens=tokens, clock=clock)
    view.mount()

    view.place_order("Asha", [{"name": "Dosa", "price": "60", "quantity": 1}])
    api.create_order(1, "Someone else", TEA_AND_SAMOSA, table_number="6")
    view.process_events()

    assert storage.get_item("hotel_1_table_5_session") == view.session_token
    assert len(view.orders) == 1
    assert view.orders[0]["session_token"] == view.session_token

    # 同一台设备再次打开同一桌，沿用同一个会话标识
    again = CustomerView(api, session, live_stream, table_number=5, tokens=tokens, clock=clock)
    assert again.session_token == view.session_token


def test_customer_flow_with_local_validation(api, live_stream, clock):
    tokens = TableSessionTokens(InMemoryStorage())
    customer = CustomerView(api, SessionContext.start(Role.CUSTOMER, hotel_id=1), live_stream,
                            table_number=2, tokens=tokens, clock=clock)
    customer.mount()
    staff = staff_view(api, live_stream, clock)

    order = customer.place_order("Asha", [{"name": "Dosa", "price": "60", "quantity": 1}])
    order_id = order["id"]

    # 未接单前顾客不能确认上菜，本地直接拦截
    with pytest.raises(InvalidTransitionError):
        customer.mark_delivered(order_id)

    staff.process_events()
    staff.accept(order_id)
    customer.process_events()
    customer.mark_delivered(order_id)
    assert customer.mark_delivered(order_id)["changed"] is False

    with pytest.raises(InvalidTransitionError):
        customer.choose_payment(order_id, "cheque")
    customer.choose_payment(order_id, "upi")
    customer.confirm_payment(order_id)

    assert customer.orders[0]["status"] == "completed"
    assert customer.orders[0]["payment_method"] == "upi"


def test_customer_can_only_cancel_pending_orders(api, live_stream, clock):
    tokens = TableSessionTokens(InMemoryStorage())
    customer = CustomerView(api, SessionContext.start(Role.CUSTOMER, hotel_id=1), live_stream,
                            table_number=2, tokens=tokens, clock=clock)
    customer.mount()
    first = customer.place_order("Asha", [{"name": "Dosa", "price": "60", "quantity": 1}])
    second = customer.place_order("Asha", [{"name": "Idli", "price": "40", "quantity": 1}])
    api.accept_order(second["id"], staff_id=7)
    customer.refresh()

    assert customer.cancel(first["id"])["order"]["status"] == "cancelled"
    with pytest.raises(InvalidTransitionError):
        customer.cancel(second["id"])


def test_staff_edits_items(api, live_stream, clock):
    view = staff_view(api, live_stream, clock)
    order = view.create_order("Ravi", TEA_AND_SAMOSA, table_number="5")

    view.add_items(order["id"], [{"name": "Samosa", "price": "15", "quantity": 1}])
    view.remove_item_unit(order["id"], name="Tea")
    current = view.find_order(order["id"])

    assert [(i["name"], i["quantity"]) for i in current["items"]] == [("Tea", 1), ("Samosa", 2)]
    assert Decimal(current["total_amount"]) == Decimal("50")
    assert current["staff_id"] == 7

    view.remove_item_unit(order["id"], name="Tea")
    view.remove_item_unit(order["id"], name="Samosa")
    with pytest.raises(ValueError):
        view.remove_item_unit(order["id"], name="Samosa")


def test_rejected_requests_are_raised(api, live_stream, clock):
    view = staff_view(api, live_stream, clock)
    order = view.create_order("Ravi", TEA_AND_SAMOSA, table_number="5")
    view.accept(order["id"])

    with pytest.raises(RequestRejected) as exc_info:
        api.update_status(order["id"], "pending")
    assert exc_info.value.status_code == 400


def test_end_to_end_upi_scenario(api, client, live_stream, clock):
    view = staff_view(api, live_stream, clock)

    order = view.create_order("Ravi", TEA_AND_SAMOSA, table_number="5")
    assert order["status"] == "pending"
    view.accept(order["id"])
    view.mark_delivered(order["id"])
    delivered = view.find_order(order["id"])
    expected_total = sum(Decimal(i["price"]) * i["quantity"] for i in delivered["items"])

    result = view.settle_bill(order["id"], "upi")

    assert result["created"] is True
    assert api.get_order(order["id"])["status"] == "completed"
    bills = api.list_bills(1)
    assert len(bills) == 1
    assert bills[0]["order_id"] == order["id"]
    assert Decimal(bills[0]["total"]) == expected_total == Decimal("55")
    # 完成的订单不再出现在员工的进行中列表里
    assert view.orders == []


def test_settle_requires_delivered_order(api, live_stream, clock):
    view = staff_view(api, live_stream, clock)
    order = view.create_order("Ravi", TEA_AND_SAMOSA, table_number="5")
    with pytest.raises(InvalidTransitionError):
        view.settle_bill(order["id"], "cash")
    assert api.list_bills(1) == []


def test_print_failure_becomes_view_warning(api, live_stream, clock, printer):
    printer.fail = True
    view = staff_view(api, live_stream, clock)
    order = view.create_order("Ravi", TEA_AND_SAMOSA, table_number="5")
    view.accept(order["id"])
    view.mark_delivered(order["id"])

    result = view.settle_bill(order["id"], "cash")

    assert result["created"] is True
    assert len(view.warnings) == 1


def test_admin_deletes_bill_into_recycle_bin(api, live_stream, clock):
    storage = InMemoryStorage()
    session = SessionContext.start(Role.ADMIN, hotel_id=1, staff_id=1)
    admin = AdminView(api, session, live_stream, recycle_bin=RecycleBinStore(storage, hotel_id=1), clock=clock)
    admin.mount()
    order = admin.create_order("Ravi", TEA_AND_SAMOSA, table_number="5")
    admin.accept(order["id"])
    admin.mark_delivered(order["id"])
    bill = admin.settle_bill(order["id"], "cash")["bill"]
    assert [b["id"] for b in admin.bills] == [bill["id"]]

    entry = admin.delete_bill(bill["id"])

    assert entry.restore_id == bill["id"]
    assert entry.deleted_by == 1
    assert admin.bills == []
    assert [e.restore_id for e in admin.recycle_bin_entries()] == [bill["id"]]
    assert admin.export_recycle_bin().startswith(b"\xef\xbb\xbf")
    # 管理员看到全部订单（包括已完成的）
    assert admin.orders[0]["status"] == "completed"


def test_admin_delete_failure_keeps_bin_clean(api, live_stream, clock):
    storage = InMemoryStorage()
    session = SessionContext.start(Role.ADMIN, hotel_id=1, staff_id=1)
    admin = AdminView(api, session, live_stream, recycle_bin=RecycleBinStore(storage, hotel_id=1), clock=clock)
    admin.mount()
    admin.bills = [{"id": 999, "hotel_id": 1, "items": []}]

    with pytest.raises(RequestRejected):
        admin.delete_bill(999)
    assert admin.recycle_bin_entries() == []


def settled_admin(api, live_stream, clock):
    session = SessionContext.start(Role.ADMIN, hotel_id=1, staff_id=1)
    admin = AdminView(api, session, live_stream, recycle_bin=RecycleBinStore(InMemoryStorage(), hotel_id=1),
                      clock=clock)
    admin.mount()
    order = admin.create_order("Ravi", TEA_AND_SAMOSA, table_number="5")
    admin.accept(order["id"])
    admin.mark_delivered(order["id"])
    return admin, admin.settle_bill(order["id"], "cash")["bill"]


def test_admin_delete_timeout_after_server_deleted_keeps_snapshot(api, live_stream, clock):
    admin, bill = settled_admin(api, live_stream, clock)
    delete_on_server = api.delete_bill

    def delete_then_time_out(bill_id):
        delete_on_server(bill_id)
        raise TransientNetworkError("read timeout")

    api.delete_bill = delete_then_time_out

    entry = admin.delete_bill(bill["id"])

    assert entry.restore_id == bill["id"]
    assert [e.restore_id for e in admin.recycle_bin_entries()] == [bill["id"]]
    assert len(admin.warnings) == 1
    assert admin.bills == []
    with pytest.raises(RequestRejected):
        api.get_bill(bill["id"])


def test_admin_delete_timeout_before_server_deleted_drops_snapshot(api, live_stream, clock):
    admin, bill = settled_admin(api, live_stream, clock)

    def time_out(bill_id):
        raise TransientNetworkError("connect timeout")

    api.delete_bill = time_out

    assert admin.delete_bill(bill["id"]) is None
    assert admin.recycle_bin_entries() == []
    assert len(admin.warnings) == 1
    assert api.get_bill(bill["id"])["id"] == bill["id"]


class StubApi:
    """可控的假接口，用来模拟慢请求和网络错误"""

    def __init__(self):
        self.on_fetch = None
        self.orders = [{"id": 1, "status": "pending", "items": []}]

    def list_orders(self, hotel_id, **filters):
        if self.on_fetch is not None:
            self.on_fetch()
        return list(self.orders)


def test_response_after_unmount_is_dropped(clock):
    api = StubApi()
    view = StaffView(api, SessionContext.start(Role.STAFF, hotel_id=1, staff_id=7), EventStream(1), clock=clock)
    view.mount()
    assert len(view.orders) == 1

    # 请求还没返回时视图被卸载
    api.orders = [{"id": 1, "status": "pending", "items": []}, {"id": 2, "status": "pending", "items": []}]
    api.on_fetch = view.unmount
    assert view.refresh() is False
    assert len(view.orders) == 1
    assert view.mounted is False


def test_response_from_previous_mount_is_dropped(clock):
    api = StubApi()
    view = StaffView(api, SessionContext.start(Role.STAFF, hotel_id=1, staff_id=7), EventStream(1), clock=clock)
    view.mount()

    def remount():
        view.unmount()
        api.on_fetch = None
        view.mount()
        api.orders = []

    api.on_fetch = remount
    assert view.refresh() is False
    assert len(view.orders) == 1


def test_network_errors_are_warnings(clock):
    def offline(request):
        raise httpx.ConnectError("connection refused", request=request)

    http = httpx.Client(base_url="http://hotel.test", transport=httpx.MockTransport(offline))
    api = HotelOrdersClient(http)
    view = StaffView(api, SessionContext.start(Role.STAFF, hotel_id=1, staff_id=7), EventStream(1), clock=clock)

    view.mount()

    assert view.orders == []
    assert len(view.warnings) == 1
    with pytest.raises(TransientNetworkError):
        api.get_order(1)


def test_server_errors_are_transient(clock):
    http = httpx.Client(base_url="http://hotel.test",
                        transport=httpx.MockTransport(lambda request: httpx.Response(503, json={"detail": "维护中"})))
    with pytest.raises(TransientNetworkError) as exc_info:
        HotelOrdersClient(http).list_bills(1)
    assert exc_info.value.status_code == 503


def test_closed_session_blocks_commands(api, live_stream, clock):
    view = staff_view(api, live_stream, clock)
    view.session.close()

    with pytest.raises(SessionClosed):
        view.create_order("Ravi", TEA_AND_SAMOSA, table_number="5")
    view.unmount()
    with pytest.raises(SessionClosed):
        view.mount()


def test_run_loop_stops_when_requested(clock):
    api = StubApi()
    view = StaffView(api, SessionContext.start(Role.STAFF, hotel_id=1, staff_id=7), EventStream(1), clock=clock)
    view.mount()

    async def main():
        stop = asyncio.Event()
        task = asyncio.create_task(view.run(stop, step=0.01))
        await asyncio.sleep(0.05)
        clock.advance(2.0)
        await asyncio.sleep(0.05)
        stop.set()
        await task

    asyncio.run(main())

    assert view.refresh_count >= 2
