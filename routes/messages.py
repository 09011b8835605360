from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile, status
from typing import List, Optional

from models.enums import AttachmentKind
from models.message_model import (
    AttachmentResponse,
    ChatRoom,
    MarkReadRequest,
    MarkReadResponse,
    Message,
    MessageCreate,
    ReactionCreate,
)
from services.storage_service import upload_attachment
from dependencies.auth import CurrentUser
from dependencies.chat import MessageServiceDep
from dependencies.db import ObjectStorage
from config import MESSAGE_PAGE_LIMIT

router = APIRouter()

@router.post("/", response_model=Message)
async def send_message(
    message: MessageCreate,
    current_user: CurrentUser,
    message_service: MessageServiceDep
):
    """Send a new message"""
    message.sender_id = current_user.id
    return await message_service.send_message(message)

@router.get("/conversations/", response_model=List[ChatRoom])
async def get_conversations(
    current_user: CurrentUser,
    message_service: MessageServiceDep,
    q: Optional[str] = Query(None, description="Filter by counterparty name")
):
    """Get all chat rooms for the current user, most recent first"""
    return await message_service.get_chat_rooms(current_user.id, q)

@router.get("/conversations/{other_user_id}/messages", response_model=List[Message])
async def get_messages(
    other_user_id: str,
    current_user: CurrentUser,
    message_service: MessageServiceDep,
    skip: int = Query(0, ge=0),
    limit: int = Query(MESSAGE_PAGE_LIMIT, ge=1, le=200)
):
    """Get messages with a specific user, newest first"""
    return await message_service.get_messages(current_user.id, other_user_id, skip, limit)

@router.post("/read", response_model=MarkReadResponse)
async def mark_messages_as_read(
    request: MarkReadRequest,
    current_user: CurrentUser,
    message_service: MessageServiceDep
):
    """Mark a batch of received messages as read"""
    return await message_service.mark_messages_as_read(current_user.id, request.message_ids)

@router.post("/conversations/{other_user_id}/read", response_model=MarkReadResponse)
async def mark_conversation_as_read(
    other_user_id: str,
    current_user: CurrentUser,
    message_service: MessageServiceDep
):
    """Mark every unread message from a user as read"""
    return await message_service.mark_conversation_as_read(current_user.id, other_user_id)

@router.post("/{message_id}/reactions", response_model=Message)
async def add_reaction(
    message_id: str,
    reaction: ReactionCreate,
    current_user: CurrentUser,
    message_service: MessageServiceDep
):
    """Add a reaction to a message"""
    return await message_service.react_to_message(current_user.id, message_id, reaction.reaction)

@router.post("/attachments", response_model=AttachmentResponse)
async def upload_message_attachment(
    current_user: CurrentUser,
    minio_client: ObjectStorage,
    file: UploadFile = File(...),
    kind: AttachmentKind = Form(AttachmentKind.FILE)
):
    """
    Upload an attachment and return its public URL.
    Send the message afterwards with the URL as file_url.
    """
    if kind == AttachmentKind.IMAGE and file.content_type and not file.content_type.startswith("image/"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file must be an image")

    data = await file.read()
    return upload_attachment(
        data=data,
        filename=file.filename,
        kind=kind,
        minio_client=minio_client,
        content_type=file.content_type
    )
