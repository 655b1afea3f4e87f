"""
订单写操作和事件推送（员工端、顾客端路由共用）
"""
import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Iterable, Optional
from sqlalchemy.orm import Session
from hotel_orders.models.bill import Bill
from hotel_orders.models.order import Order
from hotel_orders.schemas.order import OrderBase, OrderResponse
from hotel_orders.services.broadcaster import EventName, HotelRoomBroadcaster
from hotel_orders.services.items import items_total, merge_items, normalize_items
from hotel_orders.services.state_machine import (
    InvalidTransitionError, OrderStatus, Role, Transition, parse_payment_method,
    parse_status, plan_transition,
)

logger = logging.getLogger(__name__)

# 这些状态下还可以修改菜品
EDITABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.IN_PROGRESS, OrderStatus.DELIVERED})


def generate_order_number() -> str:
    """生成订单号：ORD-毫秒时间戳-随机串"""
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def serialize_order(order: Order) -> dict:
    return OrderResponse.model_validate(order).model_dump(mode="json")


def create_order(
    db: Session,
    data: OrderBase,
    source: str,
    staff_id: Optional[int] = None,
    session_token: Optional[str] = None,
) -> Order:
    """创建订单，合计金额由菜品明细计算"""
    items = normalize_items(data.items)
    order = Order(
        order_number=generate_order_number(),
        hotel_id=data.hotel_id,
        source=source,
        customer_name=data.customer_name,
        phone_number=data.phone_number,
        table_number=data.table_number,
        dining_type=data.dining_type,
        car_details=data.car_details,
        items=items,
        total_amount=items_total(items),
        status=OrderStatus.PENDING.value,
        staff_id=staff_id,
        session_token=session_token,
        notes=data.notes,
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info("酒店 %s 新订单 %s（%s），金额 %s", order.hotel_id, order.order_number, source, order.total_amount)
    return order


def has_bill(db: Session, order_id: int) -> bool:
    return db.query(Bill.id).filter(Bill.order_id == order_id).first() is not None


def change_status(
    db: Session,
    order: Order,
    target,
    role: Role,
    staff_id: Optional[int] = None,
    payment_method: Optional[str] = None,
) -> Transition:
    """
    变更订单状态
    校验不通过时抛出 InvalidTransitionError，订单不做任何修改；
    重复提交同一状态时直接返回 changed=False
    """
    target = parse_status(target)
    transition = plan_transition(
        order.status, target, role,
        has_bill=has_bill(db, order.id),
        payment_method=payment_method,
    )
    if not transition.changed:
        return transition
    method = parse_payment_method(payment_method).value if payment_method else None

    now = datetime.now(timezone.utc)
    order.status = target.value
    if staff_id is not None:
        order.staff_id = staff_id
    if target == OrderStatus.IN_PROGRESS:
        order.accepted_at = now
    if target == OrderStatus.PAYMENT and method:
        order.payment_method = method
    if target == OrderStatus.COMPLETED:
        order.completed_at = now
    db.commit()
    db.refresh(order)
    logger.info("订单 %s 状态 %s -> %s（%s）", order.id, transition.source.value, target.value, role.value)
    return transition


def _ensure_editable(order: Order) -> None:
    if parse_status(order.status) not in EDITABLE_STATUSES:
        raise InvalidTransitionError("订单已进入付款阶段或已关闭，不能修改菜品", order.status)


def replace_items(db: Session, order: Order, items: Iterable) -> Order:
    """整体替换菜品"""
    _ensure_editable(order)
    normalized = normalize_items(items)
    order.items = normalized
    order.total_amount = items_total(normalized)
    return order


def add_items(db: Session, order: Order, additions: Iterable, by_staff: bool = False) -> Order:
    """追加菜品，同一道菜合并数量"""
    _ensure_editable(order)
    merged = merge_items(order.items, additions)
    order.items = merged
    order.total_amount = items_total(merged)
    if by_staff:
        order.updated_by_staff = True
    db.commit()
    db.refresh(order)
    return order


def publish_order_created(broadcaster: HotelRoomBroadcaster, order: Order) -> None:
    event = EventName.NEW_CUSTOMER_ORDER if order.source == "customer" else EventName.NEW_ORDER
    broadcaster.publish(order.hotel_id, event, {"order_id": order.id, "order": serialize_order(order)})


def publish_order_updated(broadcaster: HotelRoomBroadcaster, order: Order) -> None:
    event = EventName.CUSTOMER_ORDER_UPDATED if order.source == "customer" else EventName.ORDER_UPDATED
    broadcaster.publish(order.hotel_id, event, {"order_id": order.id, "order": serialize_order(order)})


def publish_status_change(
    broadcaster: HotelRoomBroadcaster,
    order: Order,
    transition: Transition,
    event: EventName = EventName.ORDER_STATUS_CHANGED,
) -> None:
    """推送状态变更；订单进入待付款时额外推送 orderFinalized"""
    if not transition.changed:
        return
    payload = {
        "order_id": order.id,
        "status": order.status,
        "previous_status": transition.source.value,
        "staff_id": order.staff_id,
        "order": serialize_order(order),
    }
    broadcaster.publish(order.hotel_id, event, payload)
    if transition.target == OrderStatus.PAYMENT:
        broadcaster.publish(order.hotel_id, EventName.ORDER_FINALIZED, payload)
