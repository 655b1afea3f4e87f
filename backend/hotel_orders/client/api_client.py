"""
后端REST接口客户端

错误分两类：
- RequestRejected：4xx，校验失败或非法状态变更，直接提示用户，不重试
- TransientNetworkError：网络错误或5xx，只作为警告显示，不自动重试
"""
import logging
from typing import Any, Dict, Iterable, List, Optional
import httpx

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """接口调用失败"""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class RequestRejected(ApiError):
    """请求被后端拒绝（4xx）"""


class TransientNetworkError(ApiError):
    """网络错误或服务端错误（5xx），可以由用户手动重试"""


def _error_detail(response: httpx.Response):
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "detail" in body:
        return body["detail"]
    return body


def _items_payload(items: Iterable) -> List[dict]:
    payload = []
    for item in items:
        line = dict(item)
        if line.get("price") is not None:
            line["price"] = str(line["price"])
        payload.append(line)
    return payload


class HotelOrdersClient:
    """
    酒店点单后端客户端
    http 可以是指向服务地址的 httpx.Client，也可以是测试用的 TestClient
    """

    def __init__(self, http: httpx.Client, headers: Optional[Dict[str, str]] = None):
        self.http = http
        self.headers = dict(headers or {})

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = {**self.headers, **kwargs.pop("headers", {})}
        try:
            response = self.http.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as e:
            logger.warning("%s %s 网络错误: %s", method, path, e)
            raise TransientNetworkError(f"网络错误: {e}")

        if response.status_code >= 500:
            detail = _error_detail(response)
            logger.warning("%s %s 服务端错误 %s: %s", method, path, response.status_code, detail)
            raise TransientNetworkError(f"服务端错误: {detail}", response.status_code, detail)
        if response.status_code >= 400:
            detail = _error_detail(response)
            raise RequestRejected(str(detail), response.status_code, detail)
        return response.json()

    # ---------- 员工端订单 ----------

    def create_order(self, hotel_id: int, customer_name: str, items: Iterable, **fields) -> dict:
        body = {"hotel_id": hotel_id, "customer_name": customer_name, "items": _items_payload(items), **fields}
        return self._request("POST", "/api/orders", json=body)["order"]

    def list_orders(self, hotel_id: int, **filters) -> List[dict]:
        params = {k: v for k, v in filters.items() if v is not None}
        return self._request("GET", f"/api/orders/hotel/{hotel_id}", params=params)

    def get_order(self, order_id: int) -> dict:
        return self._request("GET", f"/api/orders/{order_id}")

    def update_order(self, order_id: int, items: Optional[Iterable] = None, **fields) -> dict:
        body = dict(fields)
        if items is not None:
            body["items"] = _items_payload(items)
        return self._request("PUT", f"/api/orders/{order_id}", json=body)

    def accept_order(self, order_id: int, staff_id: int) -> dict:
        return self._request("PUT", f"/api/orders/{order_id}/accept", json={"staff_id": staff_id})

    def update_status(self, order_id: int, status: str, staff_id: Optional[int] = None,
                      payment_method: Optional[str] = None) -> dict:
        body = {"status": status, "staff_id": staff_id, "payment_method": payment_method}
        return self._request("PUT", f"/api/orders/{order_id}/status", json=body)

    def cancel_order(self, order_id: int, staff_id: Optional[int] = None, reason: Optional[str] = None) -> dict:
        return self._request("PUT", f"/api/orders/{order_id}/cancel", json={"staff_id": staff_id, "reason": reason})

    # ---------- 顾客端订单 ----------

    def place_customer_order(self, hotel_id: int, customer_name: str, items: Iterable, **fields) -> dict:
        body = {"hotel_id": hotel_id, "customer_name": customer_name, "items": _items_payload(items), **fields}
        return self._request("POST", "/api/customer-orders", json=body)["order"]

    def list_customer_orders(self, hotel_id: int, **filters) -> List[dict]:
        params = {k: v for k, v in filters.items() if v is not None}
        return self._request("GET", f"/api/customer-orders/{hotel_id}", params=params)

    def get_customer_order(self, order_id: int) -> dict:
        return self._request("GET", f"/api/customer-orders/single/{order_id}")

    def add_customer_items(self, order_id: int, items: Iterable, staff_id: Optional[int] = None) -> dict:
        body = {"items": _items_payload(items), "staff_id": staff_id}
        return self._request("PUT", f"/api/customer-orders/{order_id}/items", json=body)

    def update_customer_status(self, order_id: int, status: str, payment_method: Optional[str] = None) -> dict:
        body = {"status": status, "payment_method": payment_method}
        return self._request("PUT", f"/api/customer-orders/{order_id}/status", json=body)

    def finalize_order(self, order_id: int, staff_id: Optional[int] = None) -> dict:
        return self._request("PUT", f"/api/customer-orders/finalize/{order_id}", json={"staff_id": staff_id})

    def call_staff(self, hotel_id: int, customer_name: Optional[str] = None,
                   table_number: Optional[str] = None, message: Optional[str] = None) -> dict:
        body = {"hotel_id": hotel_id, "customer_name": customer_name,
                "table_number": table_number, "message": message}
        return self._request("POST", "/api/customer-orders/call-staff", json=body)

    # ---------- 账单 ----------

    def create_bill(self, hotel_id: int, staff_id: int, payment_type: str,
                    order_id: Optional[int] = None, **fields) -> dict:
        body = {"hotel_id": hotel_id, "staff_id": staff_id, "payment_type": payment_type,
                "order_id": order_id, **fields}
        if body.get("items") is not None:
            body["items"] = _items_payload(body["items"])
        return self._request("POST", "/api/bills/create", json=body)

    def list_bills(self, hotel_id: int, **filters) -> List[dict]:
        params = {k: v for k, v in filters.items() if v is not None}
        return self._request("GET", f"/api/bills/hotel/{hotel_id}", params=params)

    def get_bill(self, bill_id: int) -> dict:
        return self._request("GET", f"/api/bills/{bill_id}")

    def delete_bill(self, bill_id: int) -> dict:
        return self._request("DELETE", f"/api/bills/{bill_id}")
