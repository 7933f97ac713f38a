from functools import lru_cache

from directchat.chat.delivery import LiveDeliveryChannel
from directchat.chat.directory import ConversationDirectory, PairArbiter
from directchat.chat.messages import MessageLog
from directchat.core import config
from directchat.core.blob_store import BlobStore, MemoryBlobStore, SupabaseBlobStore
from directchat.core.identity import ProfileDirectory
from directchat.core.store import MemoryStore, ObjectStore, SupabaseStore
from directchat.core.supabase_client import get_supabase
from directchat.friendship.service import FriendshipLedger


class ChatServices:
    """The four core components wired to one store and one blob store."""

    def __init__(
        self,
        store: ObjectStore,
        blobs: BlobStore,
        serialize_creation: bool = True,
    ) -> None:
        self.store = store
        self.blobs = blobs
        self.profiles = ProfileDirectory(store)
        self.friendships = FriendshipLedger(store, self.profiles)
        self.messages = MessageLog(store, blobs)
        self.conversations = ConversationDirectory(
            store,
            self.profiles,
            self.messages,
            arbiter=PairArbiter() if serialize_creation else None,
        )
        self.delivery = LiveDeliveryChannel(store)


@lru_cache(maxsize=1)
def get_services() -> ChatServices:
    if config.STORE_BACKEND == "memory":
        store, blobs = MemoryStore(), MemoryBlobStore(config.ATTACHMENTS_BUCKET)
    else:
        client = get_supabase()
        store = SupabaseStore(client)
        blobs = SupabaseBlobStore(client, config.ATTACHMENTS_BUCKET)

    return ChatServices(
        store, blobs, serialize_creation=config.SERIALIZE_CONVERSATION_CREATION
    )
