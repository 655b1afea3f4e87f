"""
结账：把订单转换为账单
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from hotel_orders.models.bill import Bill
from hotel_orders.models.order import Order
from hotel_orders.services.config_values import get_default_tax_percentage
from hotel_orders.services.items import CENT, items_total, normalize_items, to_money
from hotel_orders.services.printer import PrintResult, PrinterFactory, configured_printer, print_bill
from hotel_orders.services.state_machine import (
    InvalidTransitionError, OrderStatus, Role, is_billable, parse_payment_method,
    parse_status, plan_transition,
)

logger = logging.getLogger(__name__)


class OrderNotFound(LookupError):
    """订单不存在"""


@dataclass
class ReconcileResult:
    """结账结果，created=False 表示订单已有账单（重复提交）"""
    bill: Bill
    order: Optional[Order]
    created: bool
    print_result: PrintResult


def calculate_tax(total: Decimal, tax_percentage: Decimal) -> Decimal:
    """税额 = 合计 × 税率 / 100，四舍五入到分"""
    return (total * tax_percentage / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)


class BillReconciler:
    """
    结账服务

    金额始终按订单当前菜品重新计算，不使用订单上缓存的合计；
    账单和订单状态变更在同一个事务中提交，打印在提交之后进行，
    打印失败不会回滚账单。
    """

    def __init__(self, db: Session, printer_factory: PrinterFactory = configured_printer):
        self.db = db
        self.printer_factory = printer_factory

    def reconcile(
        self,
        order_id: int,
        payment_type: str,
        staff_id: int,
        tax_percentage: Optional[Decimal] = None,
        role: Role = Role.STAFF,
    ) -> ReconcileResult:
        """为订单结账"""
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise OrderNotFound(f"订单 {order_id} 不存在")

        existing = self._bill_for_order(order.id)
        if existing is not None:
            logger.info("订单 %s 已有账单 %s，忽略重复结账", order.id, existing.id)
            return ReconcileResult(existing, order, False, PrintResult(status="skipped", warning="该订单已结账"))

        status = parse_status(order.status)
        if not is_billable(status):
            raise InvalidTransitionError(
                f"订单状态为 {status.value}，上菜后才能结账", status.value, OrderStatus.COMPLETED.value
            )
        payment = parse_payment_method(payment_type)

        items = normalize_items(order.items)
        bill = self._build_bill(
            hotel_id=order.hotel_id,
            staff_id=staff_id,
            payment_type=payment.value,
            items=items,
            tax_percentage=tax_percentage,
            order=order,
        )

        # delivered -> payment -> completed，每一步都经过状态机校验
        if status == OrderStatus.DELIVERED:
            plan_transition(status, OrderStatus.PAYMENT, role)
            status = OrderStatus.PAYMENT
        plan_transition(status, OrderStatus.COMPLETED, role, has_bill=True)
        order.status = OrderStatus.COMPLETED.value
        order.payment_method = payment.value
        order.staff_id = staff_id
        order.total_amount = bill.total
        order.completed_at = datetime.now(timezone.utc)

        self.db.add(bill)
        try:
            self.db.commit()
        except IntegrityError:
            # 并发结账时由 bills.order_id 唯一约束兜底
            self.db.rollback()
            existing = self._bill_for_order(order_id)
            if existing is None:
                raise
            logger.warning("订单 %s 并发结账，返回已有账单 %s", order_id, existing.id)
            order = self.db.query(Order).filter(Order.id == order_id).first()
            return ReconcileResult(existing, order, False, PrintResult(status="skipped", warning="该订单已结账"))

        self.db.refresh(bill)
        self.db.refresh(order)
        logger.info("订单 %s 结账完成，账单 %s，金额 %s", order.id, bill.id, bill.final_total)
        return ReconcileResult(bill, order, True, self._print(bill))

    def create_direct_bill(
        self,
        hotel_id: int,
        staff_id: int,
        payment_type: str,
        items: List,
        tax_percentage: Optional[Decimal] = None,
        customer_name: Optional[str] = None,
        phone_number: Optional[str] = None,
        table_number: Optional[str] = None,
        dining_type: Optional[str] = None,
    ) -> ReconcileResult:
        """柜台直接开单（没有订单）"""
        payment = parse_payment_method(payment_type)
        bill = self._build_bill(
            hotel_id=hotel_id,
            staff_id=staff_id,
            payment_type=payment.value,
            items=normalize_items(items),
            tax_percentage=tax_percentage,
        )
        bill.customer_name = customer_name
        bill.phone_number = phone_number
        bill.table_number = table_number
        bill.dining_type = dining_type
        self.db.add(bill)
        self.db.commit()
        self.db.refresh(bill)
        logger.info("直接开单完成，账单 %s，金额 %s", bill.id, bill.final_total)
        return ReconcileResult(bill, None, True, self._print(bill))

    def _bill_for_order(self, order_id: int) -> Optional[Bill]:
        return self.db.query(Bill).filter(Bill.order_id == order_id).first()

    def _build_bill(self, hotel_id, staff_id, payment_type, items, tax_percentage, order=None) -> Bill:
        total = items_total(items)
        if tax_percentage is None:
            tax_percentage = get_default_tax_percentage(self.db, hotel_id)
        tax_percentage = to_money(tax_percentage)
        tax_amount = calculate_tax(total, tax_percentage)
        bill = Bill(
            hotel_id=hotel_id,
            staff_id=staff_id,
            payment_type=payment_type,
            items=items,
            total=total,
            tax_percentage=tax_percentage,
            tax_amount=tax_amount,
            final_total=total + tax_amount,
        )
        if order is not None:
            bill.order_id = order.id
            bill.order_number = order.order_number
            bill.customer_name = order.customer_name
            bill.phone_number = order.phone_number
            bill.table_number = order.table_number
            bill.dining_type = order.dining_type
            bill.car_details = order.car_details
        return bill

    def _print(self, bill: Bill) -> PrintResult:
        try:
            printer = self.printer_factory(self.db, bill.hotel_id)
        except Exception as e:
            logger.warning("获取酒店 %s 的打印机失败: %s", bill.hotel_id, e)
            return PrintResult(status="failed", warning=f"账单已生成，但打印机不可用: {e}")
        return print_bill(printer, bill)
