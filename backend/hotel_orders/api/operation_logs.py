"""
操作日志API
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import List, Optional
from datetime import datetime, date, timedelta, timezone
from pydantic import BaseModel, field_serializer
from hotel_orders.db.database import get_db
from hotel_orders.models.operation_log import OperationLog
from hotel_orders.schemas.order import format_datetime_local, local_day_end, local_day_start

router = APIRouter(prefix="/api/operation-logs", tags=["操作日志"])


class OperationLogResponse(BaseModel):
    """操作日志响应模型"""
    id: int
    hotel_id: Optional[int] = None
    staff_id: Optional[int] = None
    username: str
    action: str
    module: str
    method: str
    path: str
    ip_address: Optional[str] = None
    request_data: Optional[str] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    execution_time: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True

    @field_serializer('created_at')
    def serialize_datetime(self, dt: datetime) -> Optional[str]:
        return format_datetime_local(dt)


@router.get("", response_model=List[OperationLogResponse])
def get_operation_logs(
    skip: int = Query(0, ge=0, description="跳过记录数"),
    limit: int = Query(50, ge=1, le=1000, description="返回记录数"),
    hotel_id: Optional[int] = Query(None, description="酒店筛选"),
    username: Optional[str] = Query(None, description="操作人筛选"),
    action: Optional[str] = Query(None, description="操作类型筛选"),
    module: Optional[str] = Query(None, description="模块筛选"),
    start_date: Optional[date] = Query(None, description="开始日期"),
    end_date: Optional[date] = Query(None, description="结束日期"),
    db: Session = Depends(get_db),
):
    """获取操作日志列表"""
    query = db.query(OperationLog)

    if hotel_id is not None:
        query = query.filter(OperationLog.hotel_id == hotel_id)
    if username:
        query = query.filter(OperationLog.username.like(f"%{username}%"))
    if action:
        query = query.filter(OperationLog.action.like(f"%{action}%"))
    if module:
        query = query.filter(OperationLog.module.like(f"%{module}%"))
    if start_date:
        query = query.filter(OperationLog.created_at >= local_day_start(start_date))
    if end_date:
        query = query.filter(OperationLog.created_at <= local_day_end(end_date))

    return query.order_by(desc(OperationLog.created_at), desc(OperationLog.id)).offset(skip).limit(limit).all()


@router.get("/{log_id}", response_model=OperationLogResponse)
def get_operation_log(log_id: int, db: Session = Depends(get_db)):
    """获取操作日志详情"""
    log = db.query(OperationLog).filter(OperationLog.id == log_id).first()
    if not log:
        raise HTTPException(status_code=404, detail="操作日志不存在")
    return log


@router.delete("")
def clear_operation_logs(
    days: int = Query(30, ge=1, le=365, description="保留最近N天的日志"),
    db: Session = Depends(get_db),
):
    """清理操作日志（保留最近N天的日志）"""
    cutoff = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=days)
    deleted_count = db.query(OperationLog).filter(
        OperationLog.created_at < cutoff
    ).delete(synchronize_session=False)
    db.commit()
    return {"message": f"已删除 {deleted_count} 条操作日志"}
