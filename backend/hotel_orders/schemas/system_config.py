"""
系统配置相关的Pydantic模型
"""
from pydantic import BaseModel, Field, field_serializer
from typing import Optional
from datetime import datetime
from hotel_orders.schemas.order import format_datetime_local


class SystemConfigUpdate(BaseModel):
    """更新系统配置模型"""
    value: Optional[str] = Field(None, description="配置值", max_length=500)
    description: Optional[str] = Field(None, description="配置说明", max_length=200)


class SystemConfigResponse(BaseModel):
    """系统配置响应模型"""
    id: int
    key: str
    value: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @field_serializer('created_at', 'updated_at')
    def serialize_datetime(self, dt: datetime) -> Optional[str]:
        return format_datetime_local(dt)
