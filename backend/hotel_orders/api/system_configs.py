"""
系统配置管理API
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime, timezone
from hotel_orders.db.database import get_db
from hotel_orders.models.system_config import SystemConfig
from hotel_orders.schemas.system_config import SystemConfigUpdate, SystemConfigResponse
from hotel_orders.services.config_values import DEFAULT_CONFIG, hotel_key

router = APIRouter(prefix="/api/system-configs", tags=["系统配置"])


def _scoped_key(config_key: str, hotel_id: Optional[int]) -> str:
    return hotel_key(config_key, hotel_id) if hotel_id is not None else config_key


@router.get("", response_model=List[SystemConfigResponse])
def get_system_configs(
    hotel_id: Optional[int] = Query(None, description="只返回该酒店的专属配置和全局配置"),
    db: Session = Depends(get_db),
):
    """获取系统配置"""
    configs = db.query(SystemConfig).order_by(SystemConfig.key).all()
    if hotel_id is None:
        return configs
    prefix = hotel_key("", hotel_id)
    return [c for c in configs if c.key.startswith(prefix) or not c.key.startswith("hotel_")]


@router.get("/{config_key}", response_model=SystemConfigResponse)
def get_system_config(
    config_key: str,
    hotel_id: Optional[int] = Query(None, description="酒店ID，优先读取酒店专属配置"),
    db: Session = Depends(get_db),
):
    """获取系统配置（酒店专属 > 全局；都不存在则返回默认值）"""
    keys = [config_key]
    if hotel_id is not None:
        keys.insert(0, hotel_key(config_key, hotel_id))
    for key in keys:
        config = db.query(SystemConfig).filter(SystemConfig.key == key).first()
        if config:
            return config

    # 配置不存在时返回默认值而不是404
    now = datetime.now(timezone.utc)
    return SystemConfigResponse(
        id=0,  # 临时ID，表示这是默认值
        key=config_key,
        value=DEFAULT_CONFIG.get(config_key, ""),
        description="",
        created_at=now,
        updated_at=now,
    )


@router.put("/{config_key}", response_model=SystemConfigResponse)
def update_system_config(
    config_key: str,
    config: SystemConfigUpdate,
    hotel_id: Optional[int] = Query(None, description="酒店ID，传入时写入酒店专属配置"),
    db: Session = Depends(get_db),
):
    """更新系统配置（如果不存在则创建）"""
    key = _scoped_key(config_key, hotel_id)
    db_config = db.query(SystemConfig).filter(SystemConfig.key == key).first()
    if not db_config:
        db_config = SystemConfig(
            key=key,
            value=config.value or "",
            description=config.description,
        )
        db.add(db_config)
    else:
        if config.value is not None:
            db_config.value = config.value
        if config.description is not None:
            db_config.description = config.description

    db.commit()
    db.refresh(db_config)
    return db_config


@router.delete("/{config_key}")
def delete_system_config(
    config_key: str,
    hotel_id: Optional[int] = Query(None, description="酒店ID"),
    db: Session = Depends(get_db),
):
    """删除系统配置"""
    key = _scoped_key(config_key, hotel_id)
    config = db.query(SystemConfig).filter(SystemConfig.key == key).first()
    if not config:
        raise HTTPException(status_code=404, detail="配置不存在")

    db.delete(config)
    db.commit()
    return {"message": "配置已删除"}
