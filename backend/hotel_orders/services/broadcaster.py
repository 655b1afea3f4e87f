"""
酒店房间广播（实时推送）

每个连接加入且只加入一个酒店房间（hotel_id），订单、账单、呼叫服务员等事件
只推送给同一酒店房间内的成员。推送是"发出即不管"的：不确认、不重试，
某个成员推送失败时直接把它移出房间，不影响调用方。
客户端把事件当作"需要刷新"的提示，另有定时轮询兜底。
"""
import asyncio
import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)


class EventName(str, Enum):
    """事件目录"""
    NEW_ORDER = "newOrder"
    NEW_CUSTOMER_ORDER = "newCustomerOrder"
    ORDER_UPDATED = "orderUpdated"
    CUSTOMER_ORDER_UPDATED = "customerOrderUpdated"
    ORDER_STATUS_CHANGED = "orderStatusChanged"
    ORDER_STATUS_UPDATED = "orderStatusUpdated"
    ORDER_FINALIZED = "orderFinalized"
    BILL_CREATED = "billCreated"
    STAFF_HELP_REQUESTED = "staffHelpRequested"


class MemberGone(Exception):
    """房间成员已失效（连接关闭或事件循环已停止）"""


class RoomMember:
    """房间成员"""

    def deliver(self, message: dict) -> None:
        raise NotImplementedError


class QueueMember(RoomMember):
    """
    WebSocket 连接对应的成员
    路由函数运行在线程池里，消息通过 call_soon_threadsafe 交给连接所在的事件循环
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue()

    def deliver(self, message: dict) -> None:
        if self.loop.is_closed():
            raise MemberGone("事件循环已关闭")
        try:
            self.loop.call_soon_threadsafe(self.queue.put_nowait, message)
        except RuntimeError as e:
            raise MemberGone(str(e))


class CallbackMember(RoomMember):
    """进程内订阅者（同步回调）"""

    def __init__(self, callback: Callable[[dict], None]):
        self.callback = callback

    def deliver(self, message: dict) -> None:
        self.callback(message)


def build_message(event: EventName, hotel_id: int, payload: Optional[dict] = None) -> dict:
    """事件消息格式"""
    return {
        "event": EventName(event).value,
        "hotel_id": int(hotel_id),
        "payload": payload or {},
        "emitted_at": datetime.now(timezone.utc).isoformat(),
    }


class HotelRoomBroadcaster:
    """按酒店分组的广播器（线程安全）"""

    def __init__(self):
        self._rooms: Dict[int, Set[RoomMember]] = {}
        self._member_rooms: Dict[RoomMember, int] = {}
        self._lock = threading.Lock()

    def join(self, hotel_id: int, member: RoomMember) -> None:
        """加入酒店房间，已在其它房间时先离开"""
        hotel_id = int(hotel_id)
        with self._lock:
            self._leave_locked(member)
            self._rooms.setdefault(hotel_id, set()).add(member)
            self._member_rooms[member] = hotel_id
        logger.debug("成员加入酒店房间 hotel-%s", hotel_id)

    def leave(self, member: RoomMember) -> Optional[int]:
        """离开房间，返回原来所在的酒店ID"""
        with self._lock:
            return self._leave_locked(member)

    def _leave_locked(self, member: RoomMember) -> Optional[int]:
        hotel_id = self._member_rooms.pop(member, None)
        if hotel_id is not None:
            room = self._rooms.get(hotel_id)
            if room is not None:
                room.discard(member)
                if not room:
                    del self._rooms[hotel_id]
        return hotel_id

    def room_of(self, member: RoomMember) -> Optional[int]:
        with self._lock:
            return self._member_rooms.get(member)

    def member_count(self, hotel_id: int) -> int:
        with self._lock:
            return len(self._rooms.get(int(hotel_id), ()))

    def subscribe(self, hotel_id: int, callback: Callable[[dict], None]) -> Callable[[], None]:
        """进程内订阅，返回取消订阅函数"""
        member = CallbackMember(callback)
        self.join(hotel_id, member)
        return lambda: self.leave(member)

    def publish(self, hotel_id: int, event: EventName, payload: Optional[dict] = None) -> int:
        """
        向酒店房间推送事件，返回成功投递的成员数
        推送失败只记录日志并移除该成员，不向调用方抛出异常
        """
        message = build_message(event, hotel_id, payload)
        with self._lock:
            members = list(self._rooms.get(int(hotel_id), ()))
        delivered = 0
        for member in members:
            try:
                member.deliver(message)
                delivered += 1
            except Exception as e:
                logger.warning("推送 %s 到 hotel-%s 失败，移除该成员: %s", message["event"], hotel_id, e)
                self.leave(member)
        logger.debug("推送 %s 到 hotel-%s，共 %d 个成员", message["event"], hotel_id, delivered)
        return delivered


# 全局广播器
broadcaster = HotelRoomBroadcaster()


def get_broadcaster() -> HotelRoomBroadcaster:
    """获取广播器（FastAPI依赖，测试中可替换）"""
    return broadcaster
