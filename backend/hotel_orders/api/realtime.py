"""
实时推送（WebSocket）

客户端连接后发送 {"action": "joinHotelRoom", "hotel_id": 1} 加入酒店房间，
服务端回复 joinedHotelRoom，之后推送该酒店的所有事件；断开连接即离开房间。
"""
import asyncio
import logging
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from hotel_orders.services.broadcaster import HotelRoomBroadcaster, QueueMember, get_broadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["实时推送"])


async def _forward(websocket: WebSocket, member: QueueMember):
    """把房间消息发送给客户端"""
    while True:
        message = await member.queue.get()
        await websocket.send_json(message)


@router.websocket("/ws")
async def hotel_room_socket(
    websocket: WebSocket,
    broadcaster: HotelRoomBroadcaster = Depends(get_broadcaster),
):
    await websocket.accept()
    member = QueueMember(asyncio.get_running_loop())
    sender = asyncio.create_task(_forward(websocket, member))
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                member.deliver({"event": "error", "detail": "消息不是有效的JSON"})
                continue
            action = message.get("action") if isinstance(message, dict) else None
            if action == "joinHotelRoom":
                try:
                    hotel_id = int(message.get("hotel_id"))
                except (TypeError, ValueError):
                    member.deliver({"event": "error", "detail": "hotel_id 无效"})
                    continue
                broadcaster.join(hotel_id, member)
                member.deliver({"event": "joinedHotelRoom", "hotel_id": hotel_id})
            elif action == "leaveHotelRoom":
                hotel_id = broadcaster.leave(member)
                member.deliver({"event": "leftHotelRoom", "hotel_id": hotel_id})
            elif action == "ping":
                member.deliver({"event": "pong"})
            else:
                member.deliver({"event": "error", "detail": f"未知操作: {action}"})
    except WebSocketDisconnect:
        logger.debug("WebSocket 连接断开")
    finally:
        broadcaster.leave(member)
        sender.cancel()
        try:
            await sender
        except (asyncio.CancelledError, WebSocketDisconnect):
            pass
        except Exception as e:
            logger.debug("推送任务结束: %s", e)
