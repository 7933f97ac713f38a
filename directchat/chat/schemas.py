from enum import Enum
from pydantic import BaseModel, field_validator
from uuid import UUID
from datetime import datetime
from typing import List, Optional

from directchat.core.schemas import Identity


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VOICE = "voice"
    FILE = "file"


ATTACHMENT_TYPES = (MessageType.IMAGE, MessageType.VOICE, MessageType.FILE)


class Message(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    message_type: MessageType
    content: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    created_at: datetime


# Append payloads
class TextPayload(BaseModel):
    content: Optional[str] = None

    @property
    def message_type(self) -> MessageType:
        return MessageType.TEXT


class AttachmentPayload(BaseModel):
    message_type: MessageType
    file_url: Optional[str] = None
    file_name: Optional[str] = None

    @field_validator("message_type")
    @classmethod
    def validate_message_type(cls, message_type: MessageType) -> MessageType:
        if message_type not in ATTACHMENT_TYPES:
            raise ValueError("Attachments must be an image, voice note or file.")
        return message_type


# Conversations
class FindOrCreateResult(BaseModel):
    conversation_id: UUID
    is_new: bool


class LastMessagePreview(BaseModel):
    message_type: MessageType
    preview: str
    created_at: datetime


class ConversationSummary(BaseModel):
    conversation_id: UUID
    participant: Identity
    last_message: Optional[LastMessagePreview] = None
    created_at: datetime


# Send messages
class SendMessageModel(BaseModel):
    conversation_id: UUID
    content: str


class SendMessageResponseModel(BaseModel):
    message: Message


# Direct conversations
class CreateDirectConversationModel(BaseModel):
    receiver_id: UUID


# Get conversations
class GetConversationsResponseModel(BaseModel):
    conversations: List[ConversationSummary]


# Get messages
class GetMessagesResponseModel(BaseModel):
    messages: List[Message]


# Participants
class GetConversationParticipantResponseModel(BaseModel):
    participant: Identity
    is_friend: bool
