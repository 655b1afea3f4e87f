"""
订单管理API（员工端 / 管理端）
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
from hotel_orders.db.database import get_db
from hotel_orders.models.order import Order
from hotel_orders.schemas.order import (
    OrderCreate, OrderUpdate, OrderResponse, OrderActionResponse,
    AcceptOrderRequest, StatusUpdateRequest, CancelOrderRequest, CustomerCheckResponse,
    local_day_end, local_day_start,
)
from hotel_orders.services.broadcaster import HotelRoomBroadcaster, get_broadcaster
from hotel_orders.services.orders import (
    create_order, change_status, replace_items,
    publish_order_created, publish_order_updated, publish_status_change,
)
from hotel_orders.services.state_machine import (
    ACTIVE_STATUSES, InvalidTransitionError, OrderStatus, Role, parse_status,
)

router = APIRouter(prefix="/api/orders", tags=["订单管理"])


def get_order_or_404(db: Session, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="订单不存在")
    return order


def filter_orders(
    query,
    status: Optional[str] = None,
    staff_id: Optional[int] = None,
    session_token: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    active_only: bool = False,
):
    """订单列表通用筛选"""
    if status:
        try:
            query = query.filter(Order.status == parse_status(status).value)
        except InvalidTransitionError as e:
            raise HTTPException(status_code=400, detail=str(e))
    if active_only:
        query = query.filter(Order.status.in_([s.value for s in ACTIVE_STATUSES]))
    if staff_id is not None:
        query = query.filter(Order.staff_id == staff_id)
    if session_token:
        query = query.filter(Order.session_token == session_token)
    if start_date:
        query = query.filter(Order.created_at >= local_day_start(start_date))
    if end_date:
        query = query.filter(Order.created_at <= local_day_end(end_date))
    return query.order_by(Order.created_at.desc(), Order.id.desc())


@router.post("", response_model=OrderActionResponse)
def create_staff_order(
    request: OrderCreate,
    db: Session = Depends(get_db),
    broadcaster: HotelRoomBroadcaster = Depends(get_broadcaster),
):
    """员工代客下单"""
    order = create_order(db, request, source="staff", staff_id=request.staff_id)
    publish_order_created(broadcaster, order)
    return {"message": "订单已创建", "changed": True, "order": order}


@router.get("/check-customer", response_model=CustomerCheckResponse)
def check_customer(
    phone: Optional[str] = Query(None, description="电话"),
    hotel_id: Optional[int] = Query(None, description="酒店ID"),
    db: Session = Depends(get_db),
):
    """查询是否回头客（按电话统计来店次数）"""
    if not phone or hotel_id is None:
        return {"is_loyal": False, "visits": 0}
    visits = db.query(Order).filter(
        Order.phone_number == phone,
        Order.hotel_id == hotel_id,
    ).count()
    return {"is_loyal": visits > 0, "visits": visits}


@router.get("/hotel/{hotel_id}", response_model=List[OrderResponse])
def get_hotel_orders(
    hotel_id: int,
    status: Optional[str] = Query(None, description="状态筛选"),
    staff_id: Optional[int] = Query(None, description="员工筛选"),
    session_token: Optional[str] = Query(None, description="桌台会话筛选"),
    start_date: Optional[date] = Query(None, description="开始日期"),
    end_date: Optional[date] = Query(None, description="结束日期"),
    active_only: bool = Query(False, description="只返回未完成的订单"),
    db: Session = Depends(get_db),
):
    """获取酒店订单列表（按创建时间倒序）"""
    query = db.query(Order).filter(Order.hotel_id == hotel_id)
    query = filter_orders(query, status, staff_id, session_token, start_date, end_date, active_only)
    return query.all()


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, db: Session = Depends(get_db)):
    """获取订单详情"""
    return get_order_or_404(db, order_id)


@router.put("/{order_id}", response_model=OrderActionResponse)
def update_order(
    order_id: int,
    request: OrderUpdate,
    db: Session = Depends(get_db),
    broadcaster: HotelRoomBroadcaster = Depends(get_broadcaster),
):
    """修改订单（替换菜品、修改顾客信息）"""
    order = get_order_or_404(db, order_id)

    try:
        if request.items is not None:
            replace_items(db, order, request.items)
        else:
            # 只改顾客信息时也不允许修改已关闭的订单
            if parse_status(order.status) in (OrderStatus.COMPLETED, OrderStatus.CANCELLED):
                raise InvalidTransitionError("订单已关闭，不能修改")
    except (InvalidTransitionError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    if request.customer_name:
        order.customer_name = request.customer_name
    if request.phone_number:
        order.phone_number = request.phone_number
    if request.table_number:
        order.table_number = request.table_number
    if request.car_details:
        if order.dining_type != "takeaway":
            raise HTTPException(status_code=400, detail="只有外带订单可以填写车辆信息")
        order.car_details = request.car_details
    if request.notes:
        order.notes = request.notes
    if request.staff_id is not None:
        order.staff_id = request.staff_id
        if order.source == "customer" and request.items is not None:
            order.updated_by_staff = True

    db.commit()
    db.refresh(order)
    publish_order_updated(broadcaster, order)
    return {"message": "订单已更新", "changed": True, "order": order}


@router.put("/{order_id}/accept", response_model=OrderActionResponse)
def accept_order(
    order_id: int,
    request: AcceptOrderRequest,
    db: Session = Depends(get_db),
    broadcaster: HotelRoomBroadcaster = Depends(get_broadcaster),
):
    """员工接单（pending -> in_progress）"""
    order = get_order_or_404(db, order_id)
    try:
        transition = change_status(db, order, OrderStatus.IN_PROGRESS, Role.STAFF, staff_id=request.staff_id)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    publish_status_change(broadcaster, order, transition)
    message = "订单已接单" if transition.changed else "订单已在制作中"
    return {"message": message, "changed": transition.changed, "order": order}


@router.put("/{order_id}/status", response_model=OrderActionResponse)
def update_order_status(
    order_id: int,
    request: StatusUpdateRequest,
    db: Session = Depends(get_db),
    broadcaster: HotelRoomBroadcaster = Depends(get_broadcaster),
):
    """
    更新订单状态（员工端）
    - 重复提交当前状态不报错，也不会重复推送
    - 置为 completed 前必须先结账生成账单
    """
    order = get_order_or_404(db, order_id)
    try:
        transition = change_status(
            db, order, request.status, Role.STAFF,
            staff_id=request.staff_id,
            payment_method=request.payment_method,
        )
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    publish_status_change(broadcaster, order, transition)
    message = "订单状态已更新" if transition.changed else "订单状态未变化"
    return {"message": message, "changed": transition.changed, "order": order}


@router.put("/{order_id}/cancel", response_model=OrderActionResponse)
def cancel_order(
    order_id: int,
    request: Optional[CancelOrderRequest] = None,
    db: Session = Depends(get_db),
    broadcaster: HotelRoomBroadcaster = Depends(get_broadcaster),
):
    """取消订单（付款前）"""
    order = get_order_or_404(db, order_id)
    staff_id = request.staff_id if request else None
    try:
        transition = change_status(db, order, OrderStatus.CANCELLED, Role.STAFF, staff_id=staff_id)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if transition.changed and request and request.reason:
        order.notes = f"{order.notes or ''}\n取消原因: {request.reason}".strip()
        db.commit()
        db.refresh(order)
    publish_status_change(broadcaster, order, transition)
    return {"message": "订单已取消", "changed": transition.changed, "order": order}
