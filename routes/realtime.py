import asyncio
from typing import Any, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError

from models.enums import ContentType
from models.message_model import ReactionCreate
from repos.message_repo import MessageRepository
from repos.profile_repo import ProfileRepository
from services.chat_session import ChatListSession, ChatRoomSession
from services.message_service import MessageService
from dependencies.auth import resolve_profile_from_token
from dependencies.chat import TypingHubDep
from dependencies.db import DB
from config import MESSAGE_PAGE_LIMIT, TYPING_TIMEOUT_SECONDS
from logger.logger import logger

router = APIRouter()

def _queue_listener(outbox: asyncio.Queue):
    def listener(kind: str, payload: Any) -> None:
        outbox.put_nowait({"type": kind, "data": jsonable_encoder(payload)})
    return listener

async def _pump(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    """Forward session notifications to the client"""
    while True:
        await websocket.send_json(await outbox.get())

async def _authenticate(websocket: WebSocket, token: Optional[str], profile_repo: ProfileRepository):
    current_user = await resolve_profile_from_token(token, profile_repo)
    if current_user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
    return current_user

async def _handle_action(session: ChatRoomSession, data: dict) -> Optional[str]:
    """Run one client action, returning an error message for bad input"""
    action = data.get("action")
    if action == "send":
        try:
            content_type = ContentType(data.get("content_type", ContentType.TEXT.value))
        except ValueError:
            return "Unknown content type"
        await session.send_message(
            data.get("content", ""),
            content_type=content_type,
            file_url=data.get("file_url"),
            file_type=data.get("file_type"),
        )
    elif action == "typing":
        session.notify_typing()
    elif action == "read":
        await session.mark_as_read()
    elif action == "react":
        try:
            reaction = ReactionCreate(reaction=data.get("reaction", ""))
        except ValidationError:
            return "Invalid reaction"
        await session.react(str(data.get("message_id", "")), reaction.reaction)
    else:
        return f"Unknown action: {action}"
    return None

@router.websocket("/chats/{other_user_id}")
async def chat_room_socket(
    websocket: WebSocket,
    other_user_id: str,
    db: DB,
    typing_hub: TypingHubDep,
    token: Optional[str] = Query(None)
):
    """
    Live conversation with one user.
    Pushes snapshot, event, read, typing and error notifications; accepts
    send, typing, read and react actions.
    """
    profile_repo = ProfileRepository(db)
    current_user = await _authenticate(websocket, token, profile_repo)
    if current_user is None:
        return

    counterparty = await profile_repo.find_by_id(other_user_id)
    if counterparty is None or counterparty.id == current_user.id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    outbox: asyncio.Queue = asyncio.Queue()
    session = ChatRoomSession(
        current_user.id,
        counterparty.id,
        MessageRepository(db),
        typing_hub,
        typing_timeout=TYPING_TIMEOUT_SECONDS,
        page_size=MESSAGE_PAGE_LIMIT,
        listener=_queue_listener(outbox),
    )

    async with session:
        sender = asyncio.create_task(_pump(websocket, outbox))
        try:
            while True:
                try:
                    data = await websocket.receive_json()
                except ValueError:
                    outbox.put_nowait({"type": "error", "data": "Invalid JSON"})
                    continue
                if not isinstance(data, dict):
                    outbox.put_nowait({"type": "error", "data": "Expected an object"})
                    continue
                error = await _handle_action(session, data)
                if error:
                    outbox.put_nowait({"type": "error", "data": error})
        except WebSocketDisconnect:
            logger.info(f"Chat socket closed for {current_user.id} -> {counterparty.id}")
        finally:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)

@router.websocket("/chats")
async def chat_list_socket(websocket: WebSocket, db: DB, token: Optional[str] = Query(None)):
    """Live conversation list: one rooms notification, then a room notification per change"""
    profile_repo = ProfileRepository(db)
    current_user = await _authenticate(websocket, token, profile_repo)
    if current_user is None:
        return

    await websocket.accept()
    outbox: asyncio.Queue = asyncio.Queue()
    message_service = MessageService(MessageRepository(db), profile_repo)

    async with ChatListSession(current_user.id, message_service, listener=_queue_listener(outbox)):
        sender = asyncio.create_task(_pump(websocket, outbox))
        try:
            # The client only listens; incoming frames are ignored
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info(f"Chat list socket closed for {current_user.id}")
        finally:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
