"""
数据库模型
"""
from hotel_orders.models.order import Order
from hotel_orders.models.bill import Bill
from hotel_orders.models.operation_log import OperationLog
from hotel_orders.models.system_config import SystemConfig

__all__ = [
    "Order",
    "Bill",
    "OperationLog",
    "SystemConfig",
]
