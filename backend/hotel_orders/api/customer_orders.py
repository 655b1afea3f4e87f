"""
顾客点单API（扫码下单、追加菜品、确认上菜、选择支付方式、呼叫服务员）
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime, timezone
from hotel_orders.db.database import get_db
from hotel_orders.models.order import Order
from hotel_orders.schemas.order import (
    CustomerOrderCreate, OrderItemsAdd, OrderResponse, OrderActionResponse,
    StatusUpdateRequest, FinalizeOrderRequest, HelpRequest,
)
from hotel_orders.services.broadcaster import EventName, HotelRoomBroadcaster, get_broadcaster
from hotel_orders.services.orders import (
    create_order, add_items, change_status,
    publish_order_created, publish_order_updated, publish_status_change,
)
from hotel_orders.services.state_machine import (
    ACTIVE_STATUSES, InvalidTransitionError, OrderStatus, Role,
)
from hotel_orders.api.orders import get_order_or_404

router = APIRouter(prefix="/api/customer-orders", tags=["顾客点单"])


@router.post("", response_model=OrderActionResponse)
def place_order(
    request: CustomerOrderCreate,
    db: Session = Depends(get_db),
    broadcaster: HotelRoomBroadcaster = Depends(get_broadcaster),
):
    """顾客下单"""
    order = create_order(db, request, source="customer", session_token=request.session_token)
    publish_order_created(broadcaster, order)
    return {"message": "下单成功", "changed": True, "order": order}


@router.get("/single/{order_id}", response_model=OrderResponse)
def get_customer_order(order_id: int, db: Session = Depends(get_db)):
    """获取单个订单（顾客跟踪订单进度）"""
    return get_order_or_404(db, order_id)


@router.get("/{hotel_id}", response_model=List[OrderResponse])
def get_live_orders(
    hotel_id: int,
    session_token: Optional[str] = Query(None, description="桌台会话标识"),
    table_number: Optional[str] = Query(None, description="桌号"),
    include_closed: bool = Query(False, description="是否包含已完成、已取消的订单"),
    db: Session = Depends(get_db),
):
    """获取顾客订单（默认只返回未完成的订单）"""
    query = db.query(Order).filter(Order.hotel_id == hotel_id, Order.source == "customer")
    if not include_closed:
        query = query.filter(Order.status.in_([s.value for s in ACTIVE_STATUSES]))
    if session_token:
        query = query.filter(Order.session_token == session_token)
    if table_number:
        query = query.filter(Order.table_number == table_number)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


@router.put("/{order_id}/items", response_model=OrderActionResponse)
def add_order_items(
    order_id: int,
    request: OrderItemsAdd,
    db: Session = Depends(get_db),
    broadcaster: HotelRoomBroadcaster = Depends(get_broadcaster),
):
    """追加菜品（顾客再点或员工代加）"""
    order = get_order_or_404(db, order_id)
    try:
        add_items(db, order, request.items, by_staff=request.staff_id is not None)
    except (InvalidTransitionError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    if request.staff_id is not None and order.staff_id is None:
        order.staff_id = request.staff_id
        db.commit()
        db.refresh(order)
    publish_order_updated(broadcaster, order)
    return {"message": "菜品已追加", "changed": True, "order": order}


@router.put("/{order_id}/status", response_model=OrderActionResponse)
def update_customer_order_status(
    order_id: int,
    request: StatusUpdateRequest,
    db: Session = Depends(get_db),
    broadcaster: HotelRoomBroadcaster = Depends(get_broadcaster),
):
    """
    顾客更新订单状态
    - 确认已上菜（delivered）
    - 选择支付方式（payment，必须提供 payment_method）
    - 确认已付款（completed）
    """
    order = get_order_or_404(db, order_id)
    try:
        transition = change_status(
            db, order, request.status, Role.CUSTOMER,
            payment_method=request.payment_method,
        )
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    publish_status_change(broadcaster, order, transition, event=EventName.ORDER_STATUS_UPDATED)
    message = "订单状态已更新" if transition.changed else "订单状态未变化"
    return {"message": message, "changed": transition.changed, "order": order}


@router.put("/finalize/{order_id}", response_model=OrderActionResponse)
def finalize_order(
    order_id: int,
    request: Optional[FinalizeOrderRequest] = None,
    db: Session = Depends(get_db),
    broadcaster: HotelRoomBroadcaster = Depends(get_broadcaster),
):
    """员工确认订单进入待付款（delivered -> payment）"""
    order = get_order_or_404(db, order_id)
    try:
        transition = change_status(
            db, order, OrderStatus.PAYMENT, Role.STAFF,
            staff_id=request.staff_id if request else None,
            payment_method=request.payment_method if request else None,
        )
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    publish_status_change(broadcaster, order, transition, event=EventName.ORDER_STATUS_UPDATED)
    return {"message": "订单已确认，等待结账", "changed": transition.changed, "order": order}


@router.post("/call-staff")
def call_staff_for_help(
    request: HelpRequest,
    broadcaster: HotelRoomBroadcaster = Depends(get_broadcaster),
):
    """呼叫服务员（只推送通知，不修改订单）"""
    broadcaster.publish(request.hotel_id, EventName.STAFF_HELP_REQUESTED, {
        "customer_name": request.customer_name,
        "table_number": request.table_number,
        "message": request.message,
        "requested_at": datetime.now(timezone.utc).isoformat(),
    })
    return {"message": "已通知服务员"}
