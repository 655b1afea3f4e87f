from hotel_orders.client.api_client import ApiError, HotelOrdersClient, RequestRejected, TransientNetworkError
from hotel_orders.client.events import (
    DomainEvent, EventKind, EventStream, HotelRoomConnection, Subscription, WebsocketsTransport, parse_event,
)
from hotel_orders.client.local_storage import FileStorage, InMemoryStorage, LocalStorage
from hotel_orders.client.recycle_bin import RecycleBinEntry, RecycleBinStore
from hotel_orders.client.session import SessionClosed, SessionContext, TableSessionTokens
from hotel_orders.client.views import AdminView, CustomerView, RoleView, StaffView

__all__ = [
    "ApiError", "HotelOrdersClient", "RequestRejected", "TransientNetworkError",
    "DomainEvent", "EventKind", "EventStream", "HotelRoomConnection", "Subscription",
    "WebsocketsTransport", "parse_event",
    "FileStorage", "InMemoryStorage", "LocalStorage",
    "RecycleBinEntry", "RecycleBinStore",
    "SessionClosed", "SessionContext", "TableSessionTokens",
    "AdminView", "CustomerView", "RoleView", "StaffView",
]
