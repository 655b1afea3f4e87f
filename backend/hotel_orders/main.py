"""
FastAPI主应用入口
"""
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from hotel_orders.config import LOG_LEVEL
from hotel_orders.db.database import engine, Base
from hotel_orders.middleware.operation_log import OperationLogMiddleware

# 导入所有模型以确保表被创建
from hotel_orders.models import Order, Bill, OperationLog, SystemConfig  # noqa: F401

logging.basicConfig(
    level=LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# 创建数据库表
Base.metadata.create_all(bind=engine)

# 创建FastAPI应用
app = FastAPI(
    title="酒店点单系统API",
    description="多酒店餐厅点单、出餐、结账后端API",
    version="1.0.0"
)

# 操作日志中间件
app.add_middleware(OperationLogMiddleware)

# 配置CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 开发环境允许所有来源，生产环境需要限制
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 全局异常处理
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """全局异常处理器，确保所有错误都返回CORS头"""
    logger.exception("未处理的异常: %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": f"内部服务器错误: {exc}"},
        headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "*",
            "Access-Control-Allow-Headers": "*",
        }
    )


@app.get("/")
async def root():
    """根路径"""
    return {"message": "酒店点单系统API", "version": "1.0.0"}


@app.get("/health")
async def health():
    """健康检查"""
    return {"status": "ok"}


# 注册API路由
from hotel_orders.api import orders, customer_orders, bills, realtime, system_configs, operation_logs  # noqa: E402
app.include_router(orders.router)
app.include_router(customer_orders.router)
app.include_router(bills.router)
app.include_router(realtime.router)
app.include_router(system_configs.router)
app.include_router(operation_logs.router)
