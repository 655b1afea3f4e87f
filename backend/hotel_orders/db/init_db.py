"""
数据库初始化脚本
"""
from hotel_orders.db.database import engine, Base
from hotel_orders.db.database import SessionLocal
from hotel_orders.models import Order, Bill, OperationLog, SystemConfig  # noqa: F401
from hotel_orders.services.config_values import DEFAULT_CONFIG


def init_db(seed_defaults: bool = True):
    """初始化数据库，创建所有表，并写入默认配置"""
    Base.metadata.create_all(bind=engine)
    print("数据库表创建完成！")
    if not seed_defaults:
        return

    db = SessionLocal()
    try:
        created = 0
        for key, value in DEFAULT_CONFIG.items():
            if db.query(SystemConfig).filter(SystemConfig.key == key).first() is None:
                db.add(SystemConfig(key=key, value=value, description="默认配置"))
                created += 1
        db.commit()
        print(f"写入默认配置 {created} 项")
    except Exception as e:
        db.rollback()
        print(f"写入默认配置失败: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    init_db()
