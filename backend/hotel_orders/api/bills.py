"""
账单管理API
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
from hotel_orders.db.database import get_db
from hotel_orders.models.bill import Bill
from hotel_orders.models.order import Order
from hotel_orders.schemas.bill import BillCreate, BillCreateResponse, BillResponse
from hotel_orders.schemas.order import local_day_end, local_day_start
from hotel_orders.services.broadcaster import EventName, HotelRoomBroadcaster, get_broadcaster
from hotel_orders.services.orders import serialize_order
from hotel_orders.services.printer import PrinterFactory, get_printer_factory
from hotel_orders.services.reconciler import BillReconciler, OrderNotFound
from hotel_orders.services.state_machine import InvalidTransitionError, OrderStatus, Role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bills", tags=["账单管理"])


@router.post("/create", response_model=BillCreateResponse)
def create_bill(
    request: BillCreate,
    db: Session = Depends(get_db),
    broadcaster: HotelRoomBroadcaster = Depends(get_broadcaster),
    printer_factory: PrinterFactory = Depends(get_printer_factory),
):
    """
    结账生成账单
    - 按订单当前菜品计算金额，账单生成后订单置为 completed
    - 同一订单重复结账时返回已有账单，不会生成第二张
    - 小票打印失败只返回警告，账单照常生成
    """
    if request.order_id is not None:
        order_hotel_id = db.query(Order.hotel_id).filter(Order.id == request.order_id).scalar()
        if order_hotel_id is not None and order_hotel_id != request.hotel_id:
            raise HTTPException(status_code=400, detail="订单不属于该酒店")

    reconciler = BillReconciler(db, printer_factory)
    try:
        if request.order_id is not None:
            result = reconciler.reconcile(
                request.order_id,
                request.payment_type,
                request.staff_id,
                tax_percentage=request.tax_percentage,
                role=Role.STAFF,
            )
        else:
            result = reconciler.create_direct_bill(
                hotel_id=request.hotel_id,
                staff_id=request.staff_id,
                payment_type=request.payment_type,
                items=request.items,
                tax_percentage=request.tax_percentage,
                customer_name=request.customer_name,
                phone_number=request.phone_number,
                table_number=request.table_number,
                dining_type=request.dining_type,
            )
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="订单不存在")
    except (InvalidTransitionError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    bill, order = result.bill, result.order
    if result.created:
        if order is not None:
            broadcaster.publish(order.hotel_id, EventName.ORDER_STATUS_CHANGED, {
                "order_id": order.id,
                "status": OrderStatus.COMPLETED.value,
                "staff_id": order.staff_id,
                "order": serialize_order(order),
            })
        broadcaster.publish(bill.hotel_id, EventName.BILL_CREATED, {
            "bill_id": bill.id,
            "order_id": bill.order_id,
            "customer_name": bill.customer_name,
            "total": str(bill.final_total),
            "payment_type": bill.payment_type,
            "staff_id": bill.staff_id,
        })

    return {
        "message": "账单已生成" if result.created else "该订单已结账，返回已有账单",
        "created": result.created,
        "bill": bill,
        "order": order,
        "print_result": {"status": result.print_result.status, "warning": result.print_result.warning},
    }


@router.get("/hotel/{hotel_id}", response_model=List[BillResponse])
def get_hotel_bills(
    hotel_id: int,
    start_date: Optional[date] = Query(None, description="开始日期"),
    end_date: Optional[date] = Query(None, description="结束日期"),
    staff_id: Optional[int] = Query(None, description="员工筛选"),
    payment_type: Optional[str] = Query(None, description="支付方式筛选"),
    db: Session = Depends(get_db),
):
    """获取酒店账单列表（按创建时间倒序）"""
    query = db.query(Bill).filter(Bill.hotel_id == hotel_id)
    if start_date:
        query = query.filter(Bill.created_at >= local_day_start(start_date))
    if end_date:
        query = query.filter(Bill.created_at <= local_day_end(end_date))
    if staff_id is not None:
        query = query.filter(Bill.staff_id == staff_id)
    if payment_type:
        query = query.filter(Bill.payment_type == payment_type.lower())
    return query.order_by(Bill.created_at.desc(), Bill.id.desc()).all()


@router.get("/{bill_id}", response_model=BillResponse)
def get_bill(bill_id: int, db: Session = Depends(get_db)):
    """获取账单详情"""
    bill = db.query(Bill).filter(Bill.id == bill_id).first()
    if not bill:
        raise HTTPException(status_code=404, detail="账单不存在")
    return bill


@router.delete("/{bill_id}")
def delete_bill(bill_id: int, db: Session = Depends(get_db)):
    """
    删除账单
    注意：这里是真正删除，调用方需要在删除前自行把账单快照放进回收站
    """
    bill = db.query(Bill).filter(Bill.id == bill_id).first()
    if not bill:
        raise HTTPException(status_code=404, detail="账单不存在")

    hotel_id = bill.hotel_id
    try:
        db.delete(bill)
        db.commit()
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=f"删除失败: {str(e)}")
    logger.info("账单 %s 已删除（酒店 %s）", bill_id, hotel_id)
    return {"success": True, "message": f"账单 {bill_id} 已删除"}
