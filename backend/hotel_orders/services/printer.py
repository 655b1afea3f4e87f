"""
小票打印

打印机属于外部设备，这里只关心"成功/失败"：
打印失败只记录日志并返回警告，不影响结账结果。
"""
import logging
import socket
from dataclasses import dataclass
from typing import Callable, Optional
from sqlalchemy.orm import Session
from hotel_orders.config import PRINTER_TIMEOUT_SECONDS
from hotel_orders.services.config_values import get_config_value
from hotel_orders.services.items import to_money

logger = logging.getLogger(__name__)

# ESC/POS 指令
ESC_INIT = b"\x1b@"
CUT_PAPER = b"\x1dV\x00"
RECEIPT_WIDTH = 32


class PrinterError(Exception):
    """打印失败"""


class ReceiptPrinter:
    """打印机接口"""

    def print_receipt(self, data: bytes) -> None:
        raise NotImplementedError


class NetworkPrinter(ReceiptPrinter):
    """网络热敏打印机（RAW 9100 端口）"""

    def __init__(self, host: str, port: int = 9100, timeout: float = PRINTER_TIMEOUT_SECONDS):
        self.host = host
        self.port = port
        self.timeout = timeout

    def print_receipt(self, data: bytes) -> None:
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout) as conn:
                conn.sendall(data)
        except OSError as e:
            raise PrinterError(f"打印机 {self.host}:{self.port} 连接失败: {e}")


@dataclass
class PrintResult:
    """打印结果：printed=已打印, skipped=未配置打印机, failed=打印失败"""
    status: str
    warning: Optional[str] = None


PrinterFactory = Callable[[Session, int], Optional[ReceiptPrinter]]


def configured_printer(db: Session, hotel_id: int) -> Optional[ReceiptPrinter]:
    """按系统配置（printer_ip / printer_port）创建打印机，未配置时返回None"""
    host = get_config_value(db, "printer_ip", hotel_id)
    if not host:
        return None
    port = get_config_value(db, "printer_port", hotel_id) or "9100"
    try:
        return NetworkPrinter(host, int(port))
    except ValueError:
        logger.warning("酒店 %s 的打印机端口配置无效: %s", hotel_id, port)
        return None


def get_printer_factory() -> PrinterFactory:
    """获取打印机工厂（FastAPI依赖，测试中可替换）"""
    return configured_printer


def _row(left: str, right: str) -> str:
    space = max(1, RECEIPT_WIDTH - len(left) - len(right))
    return f"{left}{' ' * space}{right}"


def render_receipt(bill) -> bytes:
    """生成账单小票（ESC/POS）"""
    lines = [
        f"Bill #{bill.id}",
        f"Order: {bill.order_number or '-'}",
        f"Customer: {bill.customer_name or '-'}",
    ]
    if bill.table_number:
        lines.append(f"Table: {bill.table_number}")
    if bill.dining_type:
        lines.append(f"Dining: {bill.dining_type}")
    lines.append("-" * RECEIPT_WIDTH)
    for item in bill.items or []:
        amount = to_money(item.get("price")) * int(item.get("quantity") or 0)
        name = str(item.get("name") or "")[:RECEIPT_WIDTH - 12]
        lines.append(_row(f"{name} x{item.get('quantity')}", f"{amount:.2f}"))
    lines.append("-" * RECEIPT_WIDTH)
    lines.append(_row("Subtotal", f"{to_money(bill.total):.2f}"))
    if to_money(bill.tax_amount) > 0:
        lines.append(_row(f"Tax {to_money(bill.tax_percentage)}%", f"{to_money(bill.tax_amount):.2f}"))
    lines.append(_row("Total (Rs.)", f"{to_money(bill.final_total):.2f}"))
    lines.append(f"Paid by: {bill.payment_type.upper()}")
    text = "\n".join(lines) + "\n\n\n"
    return ESC_INIT + text.encode("ascii", errors="replace") + CUT_PAPER


def print_bill(printer: Optional[ReceiptPrinter], bill) -> PrintResult:
    """打印账单小票，失败时返回警告而不是抛出异常"""
    if printer is None:
        return PrintResult(status="skipped", warning="未配置打印机，小票未打印")
    try:
        printer.print_receipt(render_receipt(bill))
    except PrinterError as e:
        logger.warning("账单 %s 小票打印失败: %s", bill.id, e)
        return PrintResult(status="failed", warning=f"账单已生成，但小票打印失败: {e}")
    return PrintResult(status="printed")
