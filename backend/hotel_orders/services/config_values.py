"""
系统配置读取
"""
from decimal import Decimal, InvalidOperation
from typing import Optional
from sqlalchemy.orm import Session
from hotel_orders.models.system_config import SystemConfig

# 未配置时的默认值
DEFAULT_CONFIG = {
    "default_tax_percentage": "0",
    "printer_ip": "",
    "printer_port": "9100",
}


def hotel_key(key: str, hotel_id: int) -> str:
    """酒店专属配置键"""
    return f"hotel_{hotel_id}_{key}"


def get_config_value(db: Session, key: str, hotel_id: Optional[int] = None) -> str:
    """读取配置：酒店专属配置 > 全局配置 > 默认值"""
    keys = [key]
    if hotel_id is not None:
        keys.insert(0, hotel_key(key, hotel_id))
    for candidate in keys:
        config = db.query(SystemConfig).filter(SystemConfig.key == candidate).first()
        if config is not None and config.value not in (None, ""):
            return config.value
    return DEFAULT_CONFIG.get(key, "")


def get_default_tax_percentage(db: Session, hotel_id: int) -> Decimal:
    value = get_config_value(db, "default_tax_percentage", hotel_id)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError):
        return Decimal("0")
