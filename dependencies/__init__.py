"""
Import common dependencies to make them available from the package level.
This allows imports like: from dependencies import get_current_user
"""
from .auth import get_current_user, get_profile_repository
from .chat import get_message_repository, get_message_service, get_contact_service, get_typing_hub
from .db import get_db, get_object_storage
