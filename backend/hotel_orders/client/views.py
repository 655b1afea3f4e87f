"""
角色视图（顾客 / 员工 / 管理员）

三种视图看的是同一批订单，能做的操作不同。共同的同步方式：
- 挂载时订阅本酒店的事件，卸载时取消订阅
- 收到事件只当作刷新提示，一批事件只刷新一次
- 每隔 poll_interval 秒（默认2秒）定时刷新，弥补丢失或乱序的事件
- 卸载后或重新挂载后才返回的旧请求结果直接丢弃
- 发送操作前先用状态机在本地校验，非法操作不会发出请求
"""
import asyncio
import logging
import time
from typing import Callable, Iterable, List, Optional
from hotel_orders.client.api_client import HotelOrdersClient, RequestRejected, TransientNetworkError
from hotel_orders.client.events import ORDER_EVENTS, EventKind, EventStream, Subscription
from hotel_orders.client.recycle_bin import RecycleBinEntry, RecycleBinStore
from hotel_orders.client.session import SessionContext, TableSessionTokens
from hotel_orders.config import POLL_INTERVAL_SECONDS
from hotel_orders.services.items import remove_one_unit
from hotel_orders.services.state_machine import (
    InvalidTransitionError, OrderStatus, Transition, is_billable, plan_transition,
)

logger = logging.getLogger(__name__)


class RoleView:
    """视图基类：事件驱动刷新 + 定时轮询"""

    EVENT_KINDS = tuple(ORDER_EVENTS)

    def __init__(
        self,
        api: HotelOrdersClient,
        session: SessionContext,
        stream: EventStream,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if stream.hotel_id != session.hotel_id:
            raise ValueError("事件流和会话不属于同一个酒店")
        self.api = api
        self.session = session
        self.stream = stream
        self.poll_interval = poll_interval
        self.clock = clock
        self.orders: List[dict] = []
        self.warnings: List[str] = []
        self.mounted = False
        self.generation = 0
        self.last_refresh_at: Optional[float] = None
        self.refresh_count = 0
        self.subscription: Optional[Subscription] = None

    @property
    def hotel_id(self) -> int:
        return self.session.hotel_id

    # ---------- 生命周期 ----------

    def mount(self) -> None:
        """挂载：订阅事件并立即加载一次"""
        self.session.ensure_active()
        if self.mounted:
            return
        self.mounted = True
        self.generation += 1
        self.subscription = self.stream.select(*self.EVENT_KINDS)
        self.refresh()

    def unmount(self) -> None:
        """卸载：取消订阅，尚未返回的请求结果作废"""
        self.mounted = False
        self.generation += 1
        if self.subscription is not None:
            self.subscription.close()
            self.subscription = None

    # ---------- 数据同步 ----------

    def fetch(self):
        raise NotImplementedError

    def apply(self, data) -> None:
        self.orders = list(data)

    def refresh(self) -> bool:
        """重新拉取数据，返回是否更新了本地状态"""
        if not self.mounted:
            return False
        generation = self.generation
        try:
            data = self.fetch()
        except TransientNetworkError as e:
            self.warn(f"刷新失败: {e}")
            self.last_refresh_at = self.clock()
            return False
        if generation != self.generation or not self.mounted:
            logger.debug("视图已卸载或重新挂载，丢弃过期的刷新结果")
            return False
        self.apply(data)
        self.last_refresh_at = self.clock()
        self.refresh_count += 1
        return True

    def on_event(self, event) -> None:
        """处理不需要刷新的事件（子类覆盖）"""

    def process_events(self) -> int:
        """处理缓冲区里的事件，多条事件只刷新一次，返回处理的事件数"""
        if not self.mounted or self.subscription is None:
            return 0
        events = self.subscription.drain()
        needs_refresh = False
        for event in events:
            self.on_event(event)
            if event.kind in ORDER_EVENTS:
                needs_refresh = True
        if needs_refresh:
            self.refresh()
        return len(events)

    def poll_due(self) -> bool:
        if self.last_refresh_at is None:
            return True
        return self.clock() - self.last_refresh_at >= self.poll_interval

    def tick(self) -> None:
        """事件循环每一轮调用：先处理事件，到时间了再轮询"""
        if not self.mounted:
            return
        self.process_events()
        if self.poll_due():
            self.refresh()

    async def run(self, stop: asyncio.Event, step: float = 0.1) -> None:
        """在事件循环中持续同步，直到 stop 被设置或视图卸载"""
        while self.mounted and not stop.is_set():
            await asyncio.to_thread(self.tick)
            try:
                await asyncio.wait_for(stop.wait(), timeout=step)
            except asyncio.TimeoutError:
                pass

    # ---------- 操作 ----------

    def warn(self, message: str) -> None:
        logger.warning("[%s] %s", self.session.role.value, message)
        self.warnings.append(message)

    def find_order(self, order_id: int) -> dict:
        for order in self.orders:
            if order["id"] == order_id:
                return order
        return self.api.get_order(order_id)

    def check_transition(self, order: dict, target: OrderStatus,
                         payment_method: Optional[str] = None) -> Transition:
        """本地预校验，非法时抛出 InvalidTransitionError，不发送请求"""
        return plan_transition(
            order["status"], target, self.session.role,
            payment_method=payment_method,
        )

    def command(self, call: Callable[[], dict]) -> Optional[dict]:
        """
        发送操作请求
        被拒绝（4xx）直接抛给调用方；网络错误只记录警告，返回None
        成功后立即刷新，不等事件
        """
        self.session.ensure_active()
        try:
            result = call()
        except TransientNetworkError as e:
            self.warn(f"操作未完成，请稍后重试: {e}")
            return None
        self.refresh()
        return result


class CustomerView(RoleView):
    """顾客视图：只看本桌会话的订单"""

    def __init__(self, api, session, stream, table_number, tokens: TableSessionTokens, **kwargs):
        super().__init__(api, session, stream, **kwargs)
        self.table_number = str(table_number)
        self.tokens = tokens
        self.session_token = tokens.get_or_create(session.hotel_id, self.table_number)

    def fetch(self):
        return self.api.list_customer_orders(
            self.hotel_id, session_token=self.session_token, include_closed=True,
        )

    def place_order(self, customer_name: str, items: Iterable, **fields) -> Optional[dict]:
        fields.setdefault("dining_type", "dine-in")
        return self.command(lambda: self.api.place_customer_order(
            self.hotel_id, customer_name, list(items),
            table_number=self.table_number, session_token=self.session_token, **fields,
        ))

    def add_items(self, order_id: int, items: Iterable) -> Optional[dict]:
        return self.command(lambda: self.api.add_customer_items(order_id, list(items)))

    def _set_status(self, order_id: int, target: OrderStatus, payment_method: Optional[str] = None):
        order = self.find_order(order_id)
        transition = self.check_transition(order, target, payment_method=payment_method)
        if not transition.changed:
            return {"message": "订单状态未变化", "changed": False, "order": order}
        return self.command(lambda: self.api.update_customer_status(
            order_id, target.value, payment_method=payment_method,
        ))

    def mark_delivered(self, order_id: int):
        return self._set_status(order_id, OrderStatus.DELIVERED)

    def choose_payment(self, order_id: int, payment_method: str):
        return self._set_status(order_id, OrderStatus.PAYMENT, payment_method=payment_method)

    def confirm_payment(self, order_id: int):
        return self._set_status(order_id, OrderStatus.COMPLETED)

    def cancel(self, order_id: int):
        return self._set_status(order_id, OrderStatus.CANCELLED)

    def request_help(self, customer_name: Optional[str] = None, message: Optional[str] = None):
        return self.command(lambda: self.api.call_staff(
            self.hotel_id, customer_name=customer_name, table_number=self.table_number, message=message,
        ))


class StaffView(RoleView):
    """员工视图：本酒店所有未完成的订单，处理呼叫服务员"""

    EVENT_KINDS = tuple(ORDER_EVENTS | {EventKind.HELP_REQUESTED})

    def __init__(self, api, session, stream, **kwargs):
        super().__init__(api, session, stream, **kwargs)
        self.help_requests: List[dict] = []

    @property
    def staff_id(self) -> Optional[int]:
        return self.session.staff_id

    def fetch(self):
        return self.api.list_orders(self.hotel_id, active_only=True)

    def on_event(self, event) -> None:
        if event.kind == EventKind.HELP_REQUESTED:
            self.help_requests.append(event.payload)

    def create_order(self, customer_name: str, items: Iterable, **fields) -> Optional[dict]:
        """员工代客下单"""
        return self.command(lambda: self.api.create_order(
            self.hotel_id, customer_name, list(items), staff_id=self.staff_id, **fields,
        ))

    def _transition(self, order_id: int, target: OrderStatus, call: Callable[[], dict]):
        order = self.find_order(order_id)
        transition = self.check_transition(order, target)
        if not transition.changed:
            return {"message": "订单状态未变化", "changed": False, "order": order}
        return self.command(call)

    def accept(self, order_id: int):
        return self._transition(order_id, OrderStatus.IN_PROGRESS,
                                lambda: self.api.accept_order(order_id, self.staff_id))

    def mark_delivered(self, order_id: int):
        return self._transition(order_id, OrderStatus.DELIVERED,
                                lambda: self.api.update_status(order_id, OrderStatus.DELIVERED.value, self.staff_id))

    def finalize(self, order_id: int):
        return self._transition(order_id, OrderStatus.PAYMENT,
                                lambda: self.api.finalize_order(order_id, self.staff_id))

    def cancel(self, order_id: int, reason: Optional[str] = None):
        return self._transition(order_id, OrderStatus.CANCELLED,
                                lambda: self.api.cancel_order(order_id, self.staff_id, reason))

    def add_items(self, order_id: int, items: Iterable):
        return self.command(lambda: self.api.add_customer_items(order_id, list(items), staff_id=self.staff_id))

    def remove_item_unit(self, order_id: int, name: Optional[str] = None, product_id: Optional[int] = None):
        """减少一份菜品；订单至少要保留一道菜，最后一道菜请直接取消订单"""
        order = self.find_order(order_id)
        items = remove_one_unit(order["items"], name=name, product_id=product_id)
        if not items:
            raise ValueError("订单至少保留一道菜，如需全部取消请取消订单")
        return self.command(lambda: self.api.update_order(order_id, items=items, staff_id=self.staff_id))

    def settle_bill(self, order_id: int, payment_type: str, tax_percentage=None):
        """结账：生成账单并把订单置为完成"""
        order = self.find_order(order_id)
        if order.get("status") != OrderStatus.COMPLETED.value and not is_billable(order["status"]):
            raise InvalidTransitionError("订单上菜后才能结账", order["status"], OrderStatus.COMPLETED.value)
        fields = {}
        if tax_percentage is not None:
            fields["tax_percentage"] = str(tax_percentage)
        result = self.command(lambda: self.api.create_bill(
            self.hotel_id, self.staff_id, payment_type, order_id=order_id, **fields,
        ))
        if result and result["print_result"].get("warning") and result["print_result"]["status"] == "failed":
            self.warn(result["print_result"]["warning"])
        return result


class AdminView(StaffView):
    """管理员视图：全部订单和账单，可以删除账单（先放入本地回收站）"""

    def __init__(self, api, session, stream, recycle_bin: RecycleBinStore, **kwargs):
        super().__init__(api, session, stream, **kwargs)
        if recycle_bin.hotel_id != session.hotel_id:
            raise ValueError("回收站和会话不属于同一个酒店")
        self.recycle_bin = recycle_bin
        self.bills: List[dict] = []

    def fetch(self):
        return {
            "orders": self.api.list_orders(self.hotel_id),
            "bills": self.api.list_bills(self.hotel_id),
        }

    def apply(self, data) -> None:
        self.orders = list(data["orders"])
        self.bills = list(data["bills"])

    def find_bill(self, bill_id: int) -> dict:
        for bill in self.bills:
            if bill["id"] == bill_id:
                return bill
        return self.api.get_bill(bill_id)

    def delete_bill(self, bill_id: int) -> Optional[RecycleBinEntry]:
        """
        删除账单：先写本地回收站快照，再删除后端账单
        网络错误时只记录警告；再查一次账单，仍然存在说明没删掉，撤销快照
        """
        self.session.ensure_active()
        bill = self.find_bill(bill_id)
        try:
            entry = self.recycle_bin.delete_bill(bill, self.api.delete_bill, deleted_by=self.staff_id)
        except TransientNetworkError as e:
            self.warn(f"账单 {bill_id} 删除结果未知，快照已保留在回收站: {e}")
            entry = self._recheck_deleted(bill_id)
        self.refresh()
        return entry

    def _recheck_deleted(self, bill_id: int) -> Optional[RecycleBinEntry]:
        entry = self.recycle_bin.latest(bill_id)
        try:
            self.api.get_bill(bill_id)
        except RequestRejected:
            # 后端已经删除
            return entry
        except TransientNetworkError:
            return entry
        if entry is not None:
            self.recycle_bin.discard(entry)
        return None

    def recycle_bin_entries(self) -> List[RecycleBinEntry]:
        return self.recycle_bin.load()

    def export_recycle_bin(self) -> bytes:
        return self.recycle_bin.export_csv()
