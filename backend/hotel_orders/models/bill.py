"""
账单模型
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from hotel_orders.db.database import Base


class Bill(Base):
    """账单表（结账时由订单生成的快照，生成后不再修改）"""
    __tablename__ = "bills"

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, nullable=False, index=True, comment="酒店ID")
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=True, comment="订单ID（一个订单最多一张账单）")
    order_number = Column(String(50), comment="订单号")
    customer_name = Column(String(100), comment="顾客姓名")
    phone_number = Column(String(20), comment="电话")
    table_number = Column(String(20), comment="桌号")
    dining_type = Column(String(20), comment="用餐方式")
    car_details = Column(String(100), comment="车辆信息")
    items = Column(JSON, nullable=False, comment="菜品快照")
    total = Column(Numeric(10, 2), nullable=False, comment="菜品合计")
    tax_percentage = Column(Numeric(5, 2), nullable=False, default=0, comment="税率（百分比）")
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0, comment="税额")
    final_total = Column(Numeric(10, 2), nullable=False, comment="应收金额（合计+税额）")
    payment_type = Column(String(20), nullable=False, default="cash", comment="支付方式：cash、upi、card、online")
    staff_id = Column(Integer, nullable=False, index=True, comment="结账员工ID")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")

    # 关系
    order = relationship("Order", back_populates="bill")

    __table_args__ = (
        Index("idx_bills_hotel_created", "hotel_id", "created_at"),
    )
