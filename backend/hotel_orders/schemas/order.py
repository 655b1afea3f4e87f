"""
订单相关的Pydantic模型
"""
from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator
from typing import Optional, List, Literal
from datetime import date, datetime, time, timezone
from decimal import Decimal
from hotel_orders.config import LOCAL_TZ


def format_datetime_local(dt: datetime) -> Optional[str]:
    """将UTC时间转换为带时区偏移的本地时间字符串（ISO 8601）"""
    if dt is None:
        return None
    # 如果时间没有时区信息，假设它是 UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(LOCAL_TZ).isoformat(timespec="seconds")


def local_day_start(day: date) -> datetime:
    """本地日期的开始时刻（UTC），用于按日期筛选"""
    return datetime.combine(day, time.min, tzinfo=LOCAL_TZ).astimezone(timezone.utc)


def local_day_end(day: date) -> datetime:
    """本地日期的结束时刻（UTC）"""
    return datetime.combine(day, time.max, tzinfo=LOCAL_TZ).astimezone(timezone.utc)


class OrderItem(BaseModel):
    """订单菜品"""
    name: str = Field(..., description="菜品名称", min_length=1, max_length=100)
    product_id: Optional[int] = Field(None, description="商品ID（可选）")
    price: Decimal = Field(..., ge=0, description="单价")
    quantity: int = Field(..., ge=1, description="数量")


class OrderBase(BaseModel):
    """订单基础模型"""
    hotel_id: int = Field(..., description="酒店ID")
    customer_name: str = Field(..., description="顾客姓名", min_length=1, max_length=100)
    phone_number: Optional[str] = Field(None, description="电话", max_length=20)
    table_number: Optional[str] = Field(None, description="桌号", max_length=20)
    dining_type: Optional[Literal["dine-in", "takeaway"]] = Field(None, description="用餐方式：dine-in、takeaway")
    car_details: Optional[str] = Field(None, description="车辆信息（仅外带）", max_length=100)
    items: List[OrderItem] = Field(..., min_length=1, description="菜品明细")
    notes: Optional[str] = Field(None, description="备注")

    @field_validator("table_number", mode="before")
    @classmethod
    def table_number_to_str(cls, value):
        # 前端有时直接传数字桌号
        if value is None or value == "":
            return None
        return str(value)

    @model_validator(mode="after")
    def check_placement(self):
        if not self.table_number and not self.dining_type:
            raise ValueError("桌号和用餐方式至少填写一项")
        if self.car_details and self.dining_type != "takeaway":
            raise ValueError("只有外带订单可以填写车辆信息")
        return self


class OrderCreate(OrderBase):
    """员工创建订单"""
    staff_id: Optional[int] = Field(None, description="下单员工ID")


class CustomerOrderCreate(OrderBase):
    """顾客扫码下单"""
    session_token: Optional[str] = Field(None, description="桌台会话标识", max_length=100)


class OrderUpdate(BaseModel):
    """修改订单（菜品整体替换或修改顾客信息）"""
    customer_name: Optional[str] = Field(None, description="顾客姓名", min_length=1, max_length=100)
    phone_number: Optional[str] = Field(None, description="电话", max_length=20)
    table_number: Optional[str] = Field(None, description="桌号", max_length=20)
    car_details: Optional[str] = Field(None, description="车辆信息", max_length=100)
    items: Optional[List[OrderItem]] = Field(None, min_length=1, description="菜品明细（整体替换）")
    notes: Optional[str] = Field(None, description="备注")
    staff_id: Optional[int] = Field(None, description="操作员工ID")


class OrderItemsAdd(BaseModel):
    """追加菜品"""
    items: List[OrderItem] = Field(..., min_length=1, description="追加的菜品，同名菜品合并数量")
    staff_id: Optional[int] = Field(None, description="操作员工ID（员工代加时填写）")


class AcceptOrderRequest(BaseModel):
    """接单请求"""
    staff_id: int = Field(..., description="接单员工ID")


class StatusUpdateRequest(BaseModel):
    """更新订单状态请求"""
    status: str = Field(..., description="目标状态（兼容 confirmed、ready 等旧名称）")
    staff_id: Optional[int] = Field(None, description="操作员工ID")
    payment_method: Optional[str] = Field(None, description="支付方式：cash、upi、card、online")


class FinalizeOrderRequest(BaseModel):
    """员工确认待结账请求"""
    staff_id: Optional[int] = Field(None, description="操作员工ID")
    payment_method: Optional[str] = Field(None, description="支付方式（可选）")


class CancelOrderRequest(BaseModel):
    """取消订单请求"""
    staff_id: Optional[int] = Field(None, description="操作员工ID")
    reason: Optional[str] = Field(None, description="取消原因")


class HelpRequest(BaseModel):
    """呼叫服务员"""
    hotel_id: int = Field(..., description="酒店ID")
    customer_name: Optional[str] = Field(None, description="顾客姓名", max_length=100)
    table_number: Optional[str] = Field(None, description="桌号", max_length=20)
    message: Optional[str] = Field(None, description="留言", max_length=500)

    @field_validator("table_number", mode="before")
    @classmethod
    def table_number_to_str(cls, value):
        if value is None or value == "":
            return None
        return str(value)


class OrderItemResponse(BaseModel):
    """订单菜品响应模型"""
    name: str
    product_id: Optional[int] = None
    price: Decimal
    quantity: int


class OrderResponse(BaseModel):
    """订单响应模型"""
    id: int
    order_number: str
    hotel_id: int
    source: str
    customer_name: str
    phone_number: Optional[str] = None
    table_number: Optional[str] = None
    dining_type: Optional[str] = None
    car_details: Optional[str] = None
    items: List[OrderItemResponse]
    total_amount: Decimal
    status: str
    payment_method: Optional[str] = None
    staff_id: Optional[int] = None
    session_token: Optional[str] = None
    updated_by_staff: bool = False
    notes: Optional[str] = None
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @field_serializer('accepted_at', 'completed_at', 'created_at', 'updated_at')
    def serialize_datetime(self, dt: datetime) -> Optional[str]:
        return format_datetime_local(dt)


class OrderActionResponse(BaseModel):
    """订单操作结果"""
    message: str
    changed: bool = Field(True, description="False 表示重复提交，订单未发生变化")
    order: OrderResponse


class CustomerCheckResponse(BaseModel):
    """回头客查询结果"""
    is_loyal: bool
    visits: int
