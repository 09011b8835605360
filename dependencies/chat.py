from fastapi import Depends
from typing import Annotated

from repos.message_repo import MessageRepository
from services.contact_service import ContactService
from services.message_service import MessageService
from services.typing_service import TypingHub, typing_hub
from .auth import ProfileRepositoryDep
from .db import DB

def get_message_repository(db: DB) -> MessageRepository:
    """
    Dependency to get a message repository instance.
    """
    return MessageRepository(db)

MessageRepositoryDep = Annotated[MessageRepository, Depends(get_message_repository)]

def get_message_service(message_repo: MessageRepositoryDep, profile_repo: ProfileRepositoryDep) -> MessageService:
    """
    Dependency to get a message service instance.
    """
    return MessageService(message_repo, profile_repo)

def get_contact_service(profile_repo: ProfileRepositoryDep) -> ContactService:
    return ContactService(profile_repo)

def get_typing_hub() -> TypingHub:
    return typing_hub

# Create annotated types for cleaner dependency injection
MessageServiceDep = Annotated[MessageService, Depends(get_message_service)]
ContactServiceDep = Annotated[ContactService, Depends(get_contact_service)]
TypingHubDep = Annotated[TypingHub, Depends(get_typing_hub)]
