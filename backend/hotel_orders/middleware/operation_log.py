"""
操作日志中间件
用于记录所有写操作（接单、改状态、结账、删除账单等）
"""
import logging
import time
from urllib.parse import unquote
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy.orm import Session
from hotel_orders.db import database
from hotel_orders.models.operation_log import OperationLog

logger = logging.getLogger(__name__)


def _int_header(request: Request, name: str):
    value = request.headers.get(name, "").strip()
    try:
        return int(value) if value else None
    except ValueError:
        return None


class OperationLogMiddleware(BaseHTTPMiddleware):
    """操作日志中间件"""

    # 不需要记录日志的路径
    EXCLUDED_PATHS = [
        "/",
        "/health",
        "/docs",
        "/redoc",
        "/openapi.json",
        "/ws",
    ]

    # 操作日志查询本身不记录
    EXCLUDED_PREFIXES = ["/api/operation-logs"]

    # 模块映射：根据路径判断操作模块
    MODULE_MAP = {
        "/api/orders": "订单管理",
        "/api/customer-orders": "顾客点单",
        "/api/bills": "账单管理",
        "/api/system-configs": "系统配置",
    }

    # 操作类型映射：根据HTTP方法判断操作类型
    ACTION_MAP = {
        "GET": "查询",
        "POST": "创建",
        "PUT": "更新",
        "DELETE": "删除",
        "PATCH": "修改",
    }

    # 路径片段 -> 更具体的操作名称
    PATH_ACTIONS = [
        ("/accept", "接单"),
        ("/status", "更新订单状态"),
        ("/cancel", "取消订单"),
        ("/finalize", "确认待结账"),
        ("/items", "追加菜品"),
        ("/call-staff", "呼叫服务员"),
        ("/create", "结账"),
    ]

    # 只记录写操作，查询和轮询请求太多
    LOGGED_METHODS = ("POST", "PUT", "PATCH", "DELETE")

    def resolve_module(self, path: str) -> str:
        for path_prefix, module_name in self.MODULE_MAP.items():
            if path == path_prefix or path.startswith(path_prefix + "/"):
                return module_name
        return "未知模块"

    def resolve_action(self, method: str, path: str) -> str:
        for fragment, action in self.PATH_ACTIONS:
            if fragment in path:
                return action
        if method == "DELETE" and path.startswith("/api/bills"):
            return "删除账单"
        return self.ACTION_MAP.get(method, method)

    async def dispatch(self, request: Request, call_next):
        """处理请求并记录日志"""
        start_time = time.time()
        method = request.method
        path = request.url.path

        if method not in self.LOGGED_METHODS:
            return await call_next(request)
        if path in self.EXCLUDED_PATHS or any(path.startswith(p) for p in self.EXCLUDED_PREFIXES):
            return await call_next(request)

        ip_address = request.client.host if request.client else None
        # 前端在请求头里传递操作人（中文名需要URI编码）
        username = unquote(request.headers.get("x-username", "")) or "未知用户"
        staff_id = _int_header(request, "x-staff-id")
        hotel_id = _int_header(request, "x-hotel-id")

        request_data = None
        if method in ("POST", "PUT", "PATCH"):
            try:
                body = await request.body()
                if body:
                    request_data = body.decode("utf-8", errors="replace")[:2000]  # 限制长度
            except Exception as e:
                logger.debug("读取请求体失败: %s", e)

        response = await call_next(request)

        execution_time = int((time.time() - start_time) * 1000)
        status_code = response.status_code
        error_message = f"HTTP {status_code} 错误" if status_code >= 400 else None

        db: Session = database.SessionLocal()
        try:
            db.add(OperationLog(
                hotel_id=hotel_id,
                staff_id=staff_id,
                username=username[:100],
                action=self.resolve_action(method, path),
                module=self.resolve_module(path),
                method=method,
                path=path[:500],
                ip_address=ip_address,
                request_data=request_data,
                status_code=status_code,
                error_message=error_message,
                execution_time=execution_time,
            ))
            db.commit()
        except Exception as e:
            db.rollback()
            logger.warning("记录操作日志失败: %s", e)
        finally:
            db.close()

        return response
