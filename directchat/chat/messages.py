import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import PureWindowsPath
from typing import List, Optional, Union
from uuid import UUID

from directchat.core.blob_store import BlobStore
from directchat.core.errors import EmptyContent, MissingAttachment
from directchat.core.locks import KeyedLock
from directchat.core.store import ObjectStore

from .schemas import (
    ATTACHMENT_TYPES,
    AttachmentPayload,
    Message,
    MessageType,
    TextPayload,
)

logger = logging.getLogger(__name__)

NO_MESSAGES_PREVIEW = "No messages yet"

ATTACHMENT_PREVIEWS = {
    MessageType.IMAGE: "📷 Image",
    MessageType.VOICE: "🎤 Voice note",
    MessageType.FILE: "📎 File",
}


def preview(message: Optional[Message]) -> str:
    """Short list-view summary. Attachment URLs never appear in it."""
    if message is None:
        return NO_MESSAGES_PREVIEW
    if message.message_type in ATTACHMENT_PREVIEWS:
        return ATTACHMENT_PREVIEWS[message.message_type]
    return message.content or NO_MESSAGES_PREVIEW


class MessageLog:
    """
    Append-only, time-ordered messages of every conversation.

    ``created_at`` is always stamped here, never by the client. Stamps are
    strictly increasing within one log. Appends to the same conversation
    stamp and insert one at a time, so the order rows of a conversation
    reach the store (and therefore the live delivery channel) is the order
    of their timestamps. Appends to different conversations never wait on
    each other.
    """

    def __init__(self, store: ObjectStore, blobs: BlobStore | None = None) -> None:
        self.store = store
        self.blobs = blobs
        self._conversation_locks = KeyedLock()
        self._stamp_lock = threading.Lock()
        self._last_stamp: Optional[datetime] = None

    def _stamp(self) -> str:
        with self._stamp_lock:
            now = datetime.now(timezone.utc)
            if self._last_stamp is not None and now <= self._last_stamp:
                now = self._last_stamp + timedelta(microseconds=1)
            self._last_stamp = now
        return now.isoformat(timespec="microseconds")

    def append(
        self,
        conversation_id: UUID | str,
        sender_id: UUID | str,
        payload: Union[TextPayload, AttachmentPayload],
    ) -> Message:
        row = {
            "conversation_id": str(conversation_id),
            "sender_id": str(sender_id),
            "message_type": payload.message_type.value,
            "content": None,
            "file_url": None,
            "file_name": None,
        }

        if isinstance(payload, TextPayload):
            if payload.content is None or not payload.content.strip():
                raise EmptyContent()
            row["content"] = payload.content
        else:
            if not payload.file_url:
                raise MissingAttachment("Attachment URL is missing.")
            row["file_url"] = payload.file_url
            row["file_name"] = payload.file_name

        with self._conversation_locks.hold(row["conversation_id"]):
            row["created_at"] = self._stamp()
            created = self.store.insert("messages", row)

        message = Message.model_validate(created[0])
        logger.info(
            f"message_appended id={message.id} conversation={message.conversation_id} "
            f"type={message.message_type.value}"
        )
        return message

    def attach(
        self,
        conversation_id: UUID | str,
        sender_id: UUID | str,
        message_type: MessageType | str,
        file_name: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> Message:
        """Upload an attachment to the blob store, then append it."""
        message_type = MessageType(message_type)
        if message_type not in ATTACHMENT_TYPES:
            raise MissingAttachment("Text messages cannot carry attachments.")

        # keys stay at the bucket root whatever the client sends
        file_name = PureWindowsPath(file_name or "").name.strip()
        if not data or not file_name or file_name in (".", ".."):
            raise MissingAttachment()
        if self.blobs is None:
            raise MissingAttachment("Attachments are not configured.")

        key = f"{int(time.time() * 1000)}-{file_name}"
        path = self.blobs.upload(key, data, content_type)
        url = self.blobs.public_url(path)

        return self.append(
            conversation_id,
            sender_id,
            AttachmentPayload(message_type=message_type, file_url=url, file_name=file_name),
        )

    def load_history(self, conversation_id: UUID | str) -> List[Message]:
        rows = self.store.select(
            "messages",
            eq={"conversation_id": str(conversation_id)},
            order="created_at",
        )
        return [Message.model_validate(row) for row in rows]

    def latest(self, conversation_id: UUID | str) -> Optional[Message]:
        row = self.store.select_one(
            "messages",
            eq={"conversation_id": str(conversation_id)},
            order="created_at",
            desc=True,
        )
        return Message.model_validate(row) if row else None

    @staticmethod
    def preview(message: Optional[Message]) -> str:
        return preview(message)
