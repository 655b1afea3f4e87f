from datetime import datetime

from hotel_orders.models.operation_log import OperationLog

STAFF_HEADERS = {"x-username": "kitchen", "x-staff-id": "7", "x-hotel-id": "1"}


def test_write_requests_are_logged(client, create_order):
    order = create_order()
    client.put(f"/api/orders/{order['id']}/accept", json={"staff_id": 7}, headers=STAFF_HEADERS)
    client.get(f"/api/orders/{order['id']}")

    logs = client.get("/api/operation-logs").json()

    assert [log["action"] for log in logs] == ["接单", "创建"]
    accept = logs[0]
    assert accept["username"] == "kitchen"
    assert accept["staff_id"] == 7
    assert accept["hotel_id"] == 1
    assert accept["module"] == "订单管理"
    assert accept["status_code"] == 200
    assert '"staff_id": 7' in accept["request_data"] or '"staff_id":7' in accept["request_data"]
    # 没有请求头时记为未知用户
    assert logs[1]["username"] == "未知用户"


def test_failed_requests_record_error(client, create_order, advance):
    order = create_order()
    advance(order["id"], "in_progress")
    client.post("/api/bills/create", headers=STAFF_HEADERS,
                json={"hotel_id": 1, "staff_id": 7, "payment_type": "cash", "order_id": order["id"]})

    log = client.get("/api/operation-logs", params={"action": "结账"}).json()[0]

    assert log["module"] == "账单管理"
    assert log["status_code"] == 400
    assert log["error_message"] == "HTTP 400 错误"


def test_filters_and_detail(client, create_order):
    create_order()
    create_order(hotel_id=2)
    client.post("/api/customer-orders/call-staff", json={"hotel_id": 1, "table_number": "3"},
                headers=STAFF_HEADERS)

    by_hotel = client.get("/api/operation-logs", params={"hotel_id": 1}).json()
    assert [log["action"] for log in by_hotel] == ["呼叫服务员"]
    assert by_hotel[0]["module"] == "顾客点单"

    detail = client.get(f"/api/operation-logs/{by_hotel[0]['id']}")
    assert detail.json()["path"] == "/api/customer-orders/call-staff"
    assert client.get("/api/operation-logs/9999").status_code == 404


def test_reads_and_log_queries_are_not_logged(client):
    client.get("/api/orders/hotel/1")
    client.get("/health")
    client.delete("/api/operation-logs", params={"days": 30})
    assert client.get("/api/operation-logs").json() == []


def test_clear_old_logs(client, db):
    db.add(OperationLog(username="old", action="创建", module="订单管理", method="POST",
                        path="/api/orders", created_at=datetime(2020, 1, 1)))
    db.commit()
    client.put("/api/system-configs/printer_ip", json={"value": "10.0.0.5"})

    response = client.delete("/api/operation-logs", params={"days": 30})

    assert response.json()["message"] == "已删除 1 条操作日志"
    assert [log["username"] for log in client.get("/api/operation-logs").json()] == ["未知用户"]
