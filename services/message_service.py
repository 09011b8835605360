from typing import List, Optional
from fastapi import HTTPException, status

from repos.message_repo import MessageRepository
from repos.profile_repo import ProfileRepository
from mappers.profiles_mapper import profile_db_to_response
from models.message_model import ChatRoom, MarkReadResponse, Message, MessageCreate
from services.conversation_aggregator import ConversationIndex
from logger.logger import logger

class MessageService:
    def __init__(self, message_repo: MessageRepository, profile_repo: ProfileRepository):
        self.message_repo = message_repo
        self.profile_repo = profile_repo

    async def send_message(self, message: MessageCreate) -> Message:
        """Send a new message"""
        if message.sender_id == message.receiver_id:
            raise HTTPException(status_code=400, detail="Cannot send message to yourself")

        if await self.profile_repo.find_by_id(message.receiver_id) is None:
            raise HTTPException(status_code=404, detail="Receiver not found")

        return await self.message_repo.create_message(message)

    async def build_conversation_index(self, user_id: str) -> ConversationIndex:
        """Aggregate the user's whole message log into a conversation index with profiles attached"""
        messages = await self.message_repo.list_messages(user_id)
        index = ConversationIndex(user_id).rebuild(messages)
        await self.attach_profiles(index)
        return index

    async def attach_profiles(self, index: ConversationIndex) -> None:
        missing = index.missing_profiles()
        if not missing:
            return
        profiles = await self.profile_repo.find_by_ids(missing)
        index.attach_profiles({key: profile_db_to_response(p) for key, p in profiles.items()})

    async def get_chat_rooms(self, user_id: str, query: Optional[str] = None) -> List[ChatRoom]:
        """Chat rooms of a user, most recent first, optionally filtered by counterparty name"""
        index = await self.build_conversation_index(user_id)
        rooms = index.sorted_rooms()
        if query:
            needle = query.casefold()
            rooms = [room for room in rooms if room.profile and needle in room.profile.full_name.casefold()]
        return rooms

    async def get_messages(self, user_id: str, other_user_id: str, skip: int = 0, limit: int = 50) -> List[Message]:
        """Get messages with another user, newest first"""
        if user_id == other_user_id:
            raise HTTPException(status_code=400, detail="Cannot get messages with yourself")

        return await self.message_repo.get_conversation_messages(user_id, other_user_id, skip, limit)

    async def mark_messages_as_read(self, user_id: str, message_ids: List[str]) -> MarkReadResponse:
        """Mark a batch of received messages as read"""
        modified = await self.message_repo.mark_read(message_ids, user_id)
        logger.debug(f"Marked {modified} of {len(message_ids)} messages read for {user_id}")
        return MarkReadResponse(message_ids=message_ids, modified_count=modified)

    async def mark_conversation_as_read(self, user_id: str, other_user_id: str) -> MarkReadResponse:
        """Mark every unread message from other_user_id as read"""
        if user_id == other_user_id:
            raise HTTPException(status_code=400, detail="Cannot mark messages as read with yourself")

        unread_ids = await self.message_repo.find_unread_ids(user_id, other_user_id)
        if not unread_ids:
            return MarkReadResponse(message_ids=[], modified_count=0)
        return await self.mark_messages_as_read(user_id, unread_ids)

    async def react_to_message(self, user_id: str, message_id: str, reaction: str) -> Message:
        """Add a reaction to a message the user takes part in"""
        message = await self.message_repo.get_message(message_id)
        if message is None or user_id not in (message.sender_id, message.receiver_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")

        updated = await self.message_repo.add_reaction(message_id, reaction)
        if updated is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
        return updated
