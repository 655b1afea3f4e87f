import os

# 测试使用内存数据库，必须在导入应用之前设置
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from hotel_orders.db.database import Base, SessionLocal, engine  # noqa: E402
from hotel_orders.main import app  # noqa: E402
from hotel_orders.services.broadcaster import HotelRoomBroadcaster, get_broadcaster  # noqa: E402
from hotel_orders.services.printer import get_printer_factory  # noqa: E402
from helpers import FakePrinter  # noqa: E402

HOTEL_ID = 1

TEA_AND_SAMOSA = [
    {"name": "Tea", "price": "20", "quantity": 2},
    {"name": "Samosa", "price": "15", "quantity": 1},
]


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def broadcaster():
    return HotelRoomBroadcaster()


@pytest.fixture
def printer():
    return FakePrinter()


@pytest.fixture
def client(broadcaster, printer):
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_printer_factory] = lambda: (lambda db, hotel_id: printer)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def events(broadcaster):
    """订阅酒店1的所有推送消息"""
    received = []
    unsubscribe = broadcaster.subscribe(HOTEL_ID, received.append)
    yield received
    unsubscribe()


@pytest.fixture
def create_order(client):
    """员工创建订单，返回订单字典"""

    def _create(items=None, hotel_id=HOTEL_ID, **fields):
        body = {
            "hotel_id": hotel_id,
            "customer_name": "Ravi",
            "table_number": "5",
            "items": items or TEA_AND_SAMOSA,
            **fields,
        }
        response = client.post("/api/orders", json=body)
        assert response.status_code == 200, response.text
        return response.json()["order"]

    return _create


@pytest.fixture
def advance(client):
    """把订单推进到指定状态（员工操作）"""

    def _advance(order_id, *statuses, staff_id=7):
        for status in statuses:
            if status == "in_progress":
                response = client.put(f"/api/orders/{order_id}/accept", json={"staff_id": staff_id})
            else:
                response = client.put(f"/api/orders/{order_id}/status",
                                      json={"status": status, "staff_id": staff_id})
            assert response.status_code == 200, response.text
        return client.get(f"/api/orders/{order_id}").json()

    return _advance
