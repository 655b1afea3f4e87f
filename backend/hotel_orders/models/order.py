"""
订单模型
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, Boolean, JSON, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from hotel_orders.db.database import Base


class Order(Base):
    """订单表（员工代客下单和顾客扫码下单共用）"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, nullable=False, comment="订单号")
    hotel_id = Column(Integer, nullable=False, index=True, comment="酒店ID")
    source = Column(String(20), default="staff", nullable=False, comment="来源：staff=员工下单, customer=顾客下单")
    customer_name = Column(String(100), nullable=False, comment="顾客姓名")
    phone_number = Column(String(20), comment="电话")
    table_number = Column(String(20), comment="桌号")
    dining_type = Column(String(20), comment="用餐方式：dine-in=堂食, takeaway=外带")
    car_details = Column(String(100), comment="车辆信息（仅外带）")
    items = Column(JSON, nullable=False, default=list, comment="菜品明细：name、product_id、price、quantity")
    total_amount = Column(Numeric(10, 2), nullable=False, default=0, comment="订单金额（由明细计算）")
    status = Column(String(20), default="pending", nullable=False, index=True,
                    comment="状态：pending、in_progress、delivered、payment、completed、cancelled")
    payment_method = Column(String(20), comment="支付方式：cash、upi、card、online")
    staff_id = Column(Integer, index=True, comment="处理员工ID")
    session_token = Column(String(100), index=True, comment="顾客桌台会话标识")
    updated_by_staff = Column(Boolean, default=False, comment="员工是否追加过菜品")
    notes = Column(Text, comment="备注")
    accepted_at = Column(DateTime(timezone=True), comment="接单时间")
    completed_at = Column(DateTime(timezone=True), comment="完成时间")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, comment="更新时间")

    # 关系
    bill = relationship("Bill", back_populates="order", uselist=False)

    __table_args__ = (
        Index("idx_orders_hotel_status", "hotel_id", "status"),
        Index("idx_orders_phone_number", "phone_number"),
    )
