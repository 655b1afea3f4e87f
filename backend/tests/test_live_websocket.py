import socket
import threading
import time

import pytest
import uvicorn

from hotel_orders.client.events import EventKind, EventStream, HotelRoomConnection, WebsocketsTransport
from hotel_orders.main import app
from hotel_orders.services.broadcaster import EventName, HotelRoomBroadcaster, get_broadcaster


@pytest.fixture
def live_server():
    """在后台线程里启动真实的 uvicorn 服务"""
    broadcaster = HotelRoomBroadcaster()
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    server = uvicorn.Server(uvicorn.Config(app, log_level="warning", lifespan="off"))
    thread = threading.Thread(target=server.run, kwargs={"sockets": [sock]}, daemon=True)
    thread.start()
    deadline = time.monotonic() + 10
    while not server.started:
        if time.monotonic() > deadline:
            pytest.fail("uvicorn 启动超时")
        time.sleep(0.05)
    yield f"ws://127.0.0.1:{port}/ws", broadcaster
    server.should_exit = True
    thread.join(timeout=10)
    sock.close()
    app.dependency_overrides.clear()


def test_websockets_transport_receives_hotel_events(live_server):
    url, broadcaster = live_server
    stream = EventStream(1)
    created = stream.select(EventKind.ORDER_CREATED)
    connection = HotelRoomConnection(WebsocketsTransport(url, timeout=5), stream)
    try:
        assert connection.join() == {"event": "joinedHotelRoom", "hotel_id": 1}
        assert broadcaster.member_count(1) == 1

        broadcaster.publish(2, EventName.NEW_ORDER, {"order_id": 1})
        broadcaster.publish(1, EventName.NEW_ORDER, {"order_id": 2})

        event = connection.receive_one()
    finally:
        connection.close()

    assert event.order_id == 2
    assert [e.order_id for e in created.drain()] == [2]
