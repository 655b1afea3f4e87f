"""
账单回收站（客户端本地）

删除账单前先把账单快照放进本酒店的回收站，再调用后端真正删除。
回收站只是本设备上的参考缓存，不是数据来源：
- 每条记录保留7天，读取时顺带清理过期记录
- 最多保留最近100条，超出时丢弃最早的
- 不提供恢复，只能查看和导出
"""
import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional
from hotel_orders.client.api_client import TransientNetworkError
from hotel_orders.client.local_storage import LocalStorage
from hotel_orders.config import RECYCLE_BIN_MAX_ENTRIES, RECYCLE_BIN_RETENTION_DAYS

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class RecycleBinEntry:
    """回收站记录：账单完整快照 + 删除时间 + 自动清除时间"""
    bill: dict
    deleted_at: datetime
    auto_delete_at: datetime
    restore_id: Optional[int] = None
    deleted_by: Optional[int] = None
    extra: dict = field(default_factory=dict)

    def is_expired(self, now: datetime) -> bool:
        return self.auto_delete_at < now

    def to_dict(self) -> dict:
        return {
            **self.extra,
            "bill": self.bill,
            "deleted_at": self.deleted_at.isoformat(),
            "auto_delete_at": self.auto_delete_at.isoformat(),
            "restore_id": self.restore_id,
            "deleted_by": self.deleted_by,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecycleBinEntry":
        known = {"bill", "deleted_at", "auto_delete_at", "restore_id", "deleted_by"}
        return cls(
            bill=data.get("bill") or {},
            deleted_at=_parse_datetime(data["deleted_at"]),
            auto_delete_at=_parse_datetime(data["auto_delete_at"]),
            restore_id=data.get("restore_id"),
            deleted_by=data.get("deleted_by"),
            extra={k: v for k, v in data.items() if k not in known},
        )


class RecycleBinStore:
    """单个酒店的回收站"""

    CSV_HEADERS = [
        "账单ID", "订单号", "顾客姓名", "电话", "桌号", "菜品", "合计", "税额", "应收金额",
        "支付方式", "结账员工ID", "删除人", "删除时间", "自动清除时间",
    ]

    def __init__(
        self,
        storage: LocalStorage,
        hotel_id: int,
        clock: Clock = utc_now,
        retention: timedelta = timedelta(days=RECYCLE_BIN_RETENTION_DAYS),
        max_entries: int = RECYCLE_BIN_MAX_ENTRIES,
    ):
        self.storage = storage
        self.hotel_id = hotel_id
        self.clock = clock
        self.retention = retention
        self.max_entries = max_entries

    @property
    def key(self) -> str:
        return f"hotel_{self.hotel_id}_recycle_bin"

    def _read_raw(self) -> List[RecycleBinEntry]:
        entries = []
        for raw in self.storage.get_array(self.key):
            try:
                entries.append(RecycleBinEntry.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("回收站记录格式错误，已丢弃: %s", e)
        return entries

    def _write(self, entries: List[RecycleBinEntry]) -> None:
        self.storage.set_json(self.key, [entry.to_dict() for entry in entries])

    def load(self) -> List[RecycleBinEntry]:
        """读取回收站，过期记录在读取时清除并写回"""
        now = self.clock()
        entries = self._read_raw()
        alive = [entry for entry in entries if not entry.is_expired(now)]
        if len(alive) != len(entries):
            self._write(alive)
            logger.info("酒店 %s 回收站清除 %d 条过期记录", self.hotel_id, len(entries) - len(alive))
        return alive

    def add(self, bill: dict, deleted_by: Optional[int] = None) -> RecycleBinEntry:
        """放入回收站（只保留最近的 max_entries 条）"""
        now = self.clock()
        entry = RecycleBinEntry(
            bill=dict(bill),
            deleted_at=now,
            auto_delete_at=now + self.retention,
            restore_id=bill.get("id"),
            deleted_by=deleted_by,
        )
        entries = self.load()
        entries.append(entry)
        if len(entries) > self.max_entries:
            entries = entries[-self.max_entries:]
        self._write(entries)
        return entry

    def discard(self, entry: RecycleBinEntry) -> None:
        """撤销刚放入的记录"""
        entries = [
            e for e in self._read_raw()
            if not (e.restore_id == entry.restore_id and e.deleted_at == entry.deleted_at)
        ]
        self._write(entries)

    def latest(self, restore_id) -> Optional[RecycleBinEntry]:
        """该账单最近一次放入回收站的记录"""
        matches = [entry for entry in self.load() if entry.restore_id == restore_id]
        return matches[-1] if matches else None

    def delete_bill(self, bill: dict, delete_live: Callable[[int], object],
                    deleted_by: Optional[int] = None) -> RecycleBinEntry:
        """
        删除账单：先写回收站快照，再调用后端删除
        后端明确拒绝时撤销快照；网络错误时后端可能已经删除，保留快照。
        两种情况都把异常抛给调用方
        """
        entry = self.add(bill, deleted_by=deleted_by)
        try:
            delete_live(bill["id"])
        except TransientNetworkError:
            logger.warning("账单 %s 删除结果未知，回收站快照已保留", bill.get("id"))
            raise
        except Exception:
            self.discard(entry)
            raise
        logger.info("账单 %s 已删除并放入酒店 %s 回收站", bill.get("id"), self.hotel_id)
        return entry

    def export_rows(self) -> List[list]:
        rows = []
        for entry in self.load():
            bill = entry.bill
            items = "; ".join(
                f"{item.get('name')} x{item.get('quantity')}" for item in bill.get("items") or []
            )
            rows.append([
                entry.restore_id,
                bill.get("order_number") or "",
                bill.get("customer_name") or "",
                bill.get("phone_number") or "",
                bill.get("table_number") or "",
                items,
                bill.get("total"),
                bill.get("tax_amount"),
                bill.get("final_total"),
                bill.get("payment_type") or "",
                bill.get("staff_id"),
                entry.deleted_by if entry.deleted_by is not None else "",
                entry.deleted_at.isoformat(timespec="seconds"),
                entry.auto_delete_at.isoformat(timespec="seconds"),
            ])
        return rows

    def export_csv(self) -> bytes:
        """导出回收站为CSV（带BOM，Excel可以直接打开）"""
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(self.CSV_HEADERS)
        for row in self.export_rows():
            writer.writerow(row)
        return output.getvalue().encode("utf-8-sig")
