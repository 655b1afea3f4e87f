"""
登录会话

角色、酒店、员工等身份信息放在显式创建的会话对象里，登录时创建、退出时关闭，
由调用方传给各个视图，不放在全局变量里。
"""
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from hotel_orders.client.local_storage import LocalStorage
from hotel_orders.services.state_machine import Role


class SessionClosed(RuntimeError):
    """会话已关闭"""


@dataclass
class SessionContext:
    role: Role
    hotel_id: int
    staff_id: Optional[int] = None
    token: Optional[str] = None
    username: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    closed_at: Optional[datetime] = None

    @classmethod
    def start(cls, role, hotel_id: int, staff_id: Optional[int] = None,
              token: Optional[str] = None, username: Optional[str] = None) -> "SessionContext":
        """登录时创建会话"""
        role = Role(role)
        if role != Role.CUSTOMER and staff_id is None:
            raise ValueError("员工和管理员登录必须提供 staff_id")
        return cls(role=role, hotel_id=int(hotel_id), staff_id=staff_id, token=token, username=username)

    @property
    def active(self) -> bool:
        return self.closed_at is None

    def ensure_active(self) -> None:
        if not self.active:
            raise SessionClosed("会话已退出，请重新登录")

    def close(self) -> None:
        """退出登录"""
        if self.closed_at is None:
            self.closed_at = datetime.now(timezone.utc)

    def headers(self) -> dict:
        """操作日志用的请求头"""
        headers = {"x-hotel-id": str(self.hotel_id)}
        if self.staff_id is not None:
            headers["x-staff-id"] = str(self.staff_id)
        if self.username:
            headers["x-username"] = self.username
        return headers


class TableSessionTokens:
    """
    顾客桌台会话标识
    同一台设备在同一张桌子上重复下单时沿用同一个标识，方便员工把订单归到一起
    """

    def __init__(self, storage: LocalStorage):
        self.storage = storage

    @staticmethod
    def key(hotel_id: int, table_number) -> str:
        return f"hotel_{hotel_id}_table_{table_number}_session"

    def get(self, hotel_id: int, table_number) -> Optional[str]:
        return self.storage.get_item(self.key(hotel_id, table_number))

    def get_or_create(self, hotel_id: int, table_number) -> str:
        token = self.get(hotel_id, table_number)
        if not token:
            token = secrets.token_urlsafe(16)
            self.storage.set_item(self.key(hotel_id, table_number), token)
        return token

    def clear(self, hotel_id: int, table_number) -> None:
        """结账完成后清除，下次来店重新生成"""
        self.storage.remove_item(self.key(hotel_id, table_number))
