"""
数据库配置和连接
"""
from sqlalchemy import create_engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
import os

# 默认使用SQLite数据库
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./database.db")

engine_kwargs = {"echo": False}  # 设置为True可以看到SQL语句
if DATABASE_URL.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}  # SQLite需要这个参数
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        # 内存数据库必须共享同一个连接，否则每个连接都是一个空库
        engine_kwargs["poolclass"] = StaticPool

# 创建数据库引擎
engine = create_engine(DATABASE_URL, **engine_kwargs)

# 创建会话工厂
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 创建基础模型类
Base = declarative_base()


def get_db():
    """获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
