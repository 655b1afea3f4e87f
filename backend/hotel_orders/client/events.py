"""
客户端事件订阅

服务端推送的事件名按照界面来源分成两套（员工端 orderStatusChanged、顾客端
orderStatusUpdated 等），这里统一转换成 EventKind，视图只按种类选择自己关心的事件。
事件只是"需要刷新"的提示，不是数据本身；丢失的事件由定时轮询兜底。
"""
import json
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Dict, FrozenSet, List, Optional
from websockets.sync.client import connect
from hotel_orders.services.broadcaster import EventName

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    ORDER_CREATED = "order_created"
    ORDER_UPDATED = "order_updated"
    STATUS_CHANGED = "status_changed"
    ORDER_FINALIZED = "order_finalized"
    BILL_CREATED = "bill_created"
    HELP_REQUESTED = "help_requested"


WIRE_NAMES: Dict[str, EventKind] = {
    EventName.NEW_ORDER.value: EventKind.ORDER_CREATED,
    EventName.NEW_CUSTOMER_ORDER.value: EventKind.ORDER_CREATED,
    EventName.ORDER_UPDATED.value: EventKind.ORDER_UPDATED,
    EventName.CUSTOMER_ORDER_UPDATED.value: EventKind.ORDER_UPDATED,
    EventName.ORDER_STATUS_CHANGED.value: EventKind.STATUS_CHANGED,
    EventName.ORDER_STATUS_UPDATED.value: EventKind.STATUS_CHANGED,
    EventName.ORDER_FINALIZED.value: EventKind.ORDER_FINALIZED,
    EventName.BILL_CREATED.value: EventKind.BILL_CREATED,
    EventName.STAFF_HELP_REQUESTED.value: EventKind.HELP_REQUESTED,
}

# 影响订单列表的事件
ORDER_EVENTS = frozenset({
    EventKind.ORDER_CREATED, EventKind.ORDER_UPDATED, EventKind.STATUS_CHANGED,
    EventKind.ORDER_FINALIZED, EventKind.BILL_CREATED,
})


@dataclass(frozen=True)
class DomainEvent:
    kind: EventKind
    hotel_id: int
    wire_name: str
    payload: dict = field(default_factory=dict)
    emitted_at: Optional[str] = None

    @property
    def order_id(self) -> Optional[int]:
        return self.payload.get("order_id")


def parse_event(message) -> Optional[DomainEvent]:
    """把推送消息转换为 DomainEvent，不认识的消息（房间确认、心跳等）返回None"""
    if not isinstance(message, dict):
        return None
    kind = WIRE_NAMES.get(message.get("event"))
    if kind is None:
        return None
    try:
        hotel_id = int(message.get("hotel_id"))
    except (TypeError, ValueError):
        logger.debug("事件 %s 缺少 hotel_id，已忽略", message.get("event"))
        return None
    return DomainEvent(
        kind=kind,
        hotel_id=hotel_id,
        wire_name=message["event"],
        payload=message.get("payload") or {},
        emitted_at=message.get("emitted_at"),
    )


class Subscription:
    """按事件种类过滤的订阅，事件先放进缓冲区，由视图自己取出处理"""

    def __init__(self, stream: "EventStream", kinds: FrozenSet[EventKind]):
        self.stream = stream
        self.kinds = kinds
        self._buffer: Deque[DomainEvent] = deque()
        self._lock = threading.Lock()
        self.closed = False

    def matches(self, event: DomainEvent) -> bool:
        return not self.kinds or event.kind in self.kinds

    def put(self, event: DomainEvent) -> None:
        with self._lock:
            if not self.closed:
                self._buffer.append(event)

    def drain(self) -> List[DomainEvent]:
        """取出所有待处理事件"""
        with self._lock:
            events = list(self._buffer)
            self._buffer.clear()
        return events

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    def close(self) -> None:
        with self._lock:
            self.closed = True
            self._buffer.clear()
        self.stream.remove(self)


class EventStream:
    """单个酒店的事件流，其它酒店的事件直接丢弃"""

    def __init__(self, hotel_id: int):
        self.hotel_id = int(hotel_id)
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    def select(self, *kinds: EventKind) -> Subscription:
        """订阅指定种类的事件，不传则订阅全部"""
        subscription = Subscription(self, frozenset(EventKind(k) for k in kinds))
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, message) -> Optional[DomainEvent]:
        """接收一条推送消息（字典或 DomainEvent），返回被接受的事件"""
        event = message if isinstance(message, DomainEvent) else parse_event(message)
        if event is None:
            return None
        if event.hotel_id != self.hotel_id:
            logger.debug("丢弃酒店 %s 的事件 %s（当前酒店 %s）", event.hotel_id, event.wire_name, self.hotel_id)
            return None
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            if subscription.matches(event):
                subscription.put(event)
        return event

    def callback(self) -> Callable[[dict], None]:
        """给进程内广播器用的回调"""
        return lambda message: self.publish(message)


class HotelRoomConnection:
    """
    WebSocket 酒店房间连接
    transport 只需要提供 send_json / receive_json / close 三个方法
    """

    def __init__(self, transport, stream: EventStream):
        self.transport = transport
        self.stream = stream
        self.joined = False

    def join(self) -> dict:
        """加入酒店房间，返回服务端确认消息"""
        self.transport.send_json({"action": "joinHotelRoom", "hotel_id": self.stream.hotel_id})
        while True:
            message = self.transport.receive_json()
            if isinstance(message, dict) and message.get("event") == "joinedHotelRoom":
                self.joined = True
                logger.info("已加入酒店房间 hotel-%s", self.stream.hotel_id)
                return message
            if isinstance(message, dict) and message.get("event") == "error":
                raise ConnectionError(f"加入酒店房间失败: {message.get('detail')}")
            self.stream.publish(message)

    def receive_one(self) -> Optional[DomainEvent]:
        """接收一条消息并放入事件流"""
        return self.stream.publish(self.transport.receive_json())

    def pump(self, max_messages: Optional[int] = None) -> int:
        """持续接收消息直到连接断开（或达到 max_messages），返回接收的消息数"""
        count = 0
        while max_messages is None or count < max_messages:
            try:
                self.receive_one()
            except Exception as e:
                logger.info("酒店房间连接已断开: %s", e)
                break
            count += 1
        return count

    def leave(self) -> None:
        if self.joined:
            self.transport.send_json({"action": "leaveHotelRoom"})
            self.joined = False

    def close(self) -> None:
        try:
            self.leave()
        finally:
            self.transport.close()


class WebsocketsTransport:
    """基于 websockets 同步客户端的连接"""

    def __init__(self, url: str, timeout: Optional[float] = None):
        self.timeout = timeout
        self._ws = connect(url, open_timeout=timeout)

    def send_json(self, data: dict) -> None:
        self._ws.send(json.dumps(data, ensure_ascii=False))

    def receive_json(self):
        return json.loads(self._ws.recv(timeout=self.timeout))

    def close(self) -> None:
        self._ws.close()
