"""
账单相关的Pydantic模型
"""
from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator
from typing import Optional, List, Literal
from datetime import datetime
from decimal import Decimal
from hotel_orders.schemas.order import OrderItem, OrderItemResponse, OrderResponse, format_datetime_local


class BillCreate(BaseModel):
    """
    结账请求
    - 提供 order_id 时按订单当前菜品重新计算金额，忽略请求中的 items
    - 不提供 order_id 时为柜台直接开单，必须提供 items
    """
    hotel_id: int = Field(..., description="酒店ID")
    staff_id: int = Field(..., description="结账员工ID")
    payment_type: Literal["cash", "upi", "card", "online"] = Field("cash", description="支付方式")
    order_id: Optional[int] = Field(None, description="订单ID")
    tax_percentage: Optional[Decimal] = Field(None, ge=0, le=100, description="税率（百分比），不填使用酒店默认税率")
    customer_name: Optional[str] = Field(None, description="顾客姓名", max_length=100)
    phone_number: Optional[str] = Field(None, description="电话", max_length=20)
    table_number: Optional[str] = Field(None, description="桌号", max_length=20)
    dining_type: Optional[Literal["dine-in", "takeaway"]] = Field(None, description="用餐方式")
    items: Optional[List[OrderItem]] = Field(None, description="菜品明细（仅直接开单）")

    @field_validator("payment_type", mode="before")
    @classmethod
    def lower_payment_type(cls, value):
        return str(value).strip().lower() if value is not None else "cash"

    @field_validator("table_number", mode="before")
    @classmethod
    def table_number_to_str(cls, value):
        if value is None or value == "":
            return None
        return str(value)

    @model_validator(mode="after")
    def check_source(self):
        if self.order_id is None and not self.items:
            raise ValueError("直接开单必须提供菜品明细")
        return self


class BillResponse(BaseModel):
    """账单响应模型"""
    id: int
    hotel_id: int
    order_id: Optional[int] = None
    order_number: Optional[str] = None
    customer_name: Optional[str] = None
    phone_number: Optional[str] = None
    table_number: Optional[str] = None
    dining_type: Optional[str] = None
    car_details: Optional[str] = None
    items: List[OrderItemResponse]
    total: Decimal
    tax_percentage: Decimal
    tax_amount: Decimal
    final_total: Decimal
    payment_type: str
    staff_id: int
    created_at: datetime

    class Config:
        from_attributes = True

    @field_serializer('created_at')
    def serialize_datetime(self, dt: datetime) -> Optional[str]:
        return format_datetime_local(dt)


class PrintResultResponse(BaseModel):
    """小票打印结果"""
    status: Literal["printed", "skipped", "failed"]
    warning: Optional[str] = None


class BillCreateResponse(BaseModel):
    """结账结果"""
    message: str
    created: bool = Field(True, description="False 表示该订单已有账单，本次为重复提交")
    bill: BillResponse
    order: Optional[OrderResponse] = None
    print_result: PrintResultResponse
