"""
系统配置模型
"""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from hotel_orders.db.database import Base


class SystemConfig(Base):
    """系统配置表（键名带 hotel_<id>_ 前缀时只对该酒店生效）"""
    __tablename__ = "system_configs"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False, index=True, comment="配置键")
    value = Column(String(500), comment="配置值")
    description = Column(String(200), comment="配置说明")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, comment="更新时间")
