"""
Live delivery of newly appended messages to open conversation views.

The channel listens to committed inserts on the ``messages`` table and fans
each one out to the subscribers of its conversation. Inserts can reach it
twice (once from this process and once from the realtime feed), so recently
seen message ids are remembered and repeats are dropped. Nothing is stored
or replayed: a subscriber only sees messages inserted after ``subscribe``
returned, exactly once each and in insert order. Use ``open_conversation``
to combine history and live delivery without a gap.
"""

import logging
import queue
import threading
from collections import defaultdict, deque
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from directchat.core.store import ObjectStore, Row

from .messages import MessageLog
from .schemas import Message

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Message], None]

RECENT_MESSAGE_WINDOW = 4096


class StreamClosed(Exception):
    """Raised by ``MessageStream.get`` once the stream has been closed."""


class Subscription:
    """
    One view's interest in one conversation.

    The callback runs while the subscription's own lock is held, so
    ``cancel`` waits for an in-flight callback to finish and no callback can
    start once it has returned. Other subscriptions never wait on it.
    """

    def __init__(
        self,
        channel: "LiveDeliveryChannel",
        conversation_id: str,
        on_message: MessageCallback,
    ) -> None:
        self.channel = channel
        self.conversation_id = conversation_id
        self.on_message = on_message
        self.active = True
        self._lock = threading.RLock()

    def deliver(self, message: Message) -> None:
        with self._lock:
            if self.active:
                self.on_message(message)

    def deactivate(self) -> None:
        with self._lock:
            self.active = False

    def cancel(self) -> None:
        self.channel.unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.cancel()


class LiveDeliveryChannel:
    """
    Per-conversation broadcast of inserted messages.

    The channel lock only guards the subscriber registry; callbacks run
    outside it, so a slow view on one conversation never holds up another.
    A callback may cancel its own subscription.
    """

    def __init__(self, store: ObjectStore, recent_window: int = RECENT_MESSAGE_WINDOW) -> None:
        self.store = store
        self._subscriptions: dict[str, List[Subscription]] = defaultdict(list)
        self._lock = threading.Lock()
        self._recent: deque = deque(maxlen=recent_window)
        self._recent_ids: set = set()
        store.on_insert("messages", self._dispatch)

    def subscribe(
        self, conversation_id: UUID | str, on_message: MessageCallback
    ) -> Subscription:
        subscription = Subscription(self, str(conversation_id), on_message)
        with self._lock:
            self._subscriptions[subscription.conversation_id].append(subscription)

        logger.debug(f"subscribed conversation={subscription.conversation_id}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.deactivate()
        with self._lock:
            subscribers = self._subscriptions.get(subscription.conversation_id)
            if subscribers and subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscriptions.pop(subscription.conversation_id, None)

        logger.debug(f"unsubscribed conversation={subscription.conversation_id}")

    def subscriber_count(self, conversation_id: UUID | str) -> int:
        with self._lock:
            return len(self._subscriptions.get(str(conversation_id), ()))

    def stream(self, conversation_id: UUID | str) -> "MessageStream":
        return MessageStream(self, conversation_id)

    def close(self) -> None:
        """Detach from the store and drop every subscription."""
        self.store.remove_insert_listener("messages", self._dispatch)
        with self._lock:
            subscriptions = [
                subscription
                for subscribers in self._subscriptions.values()
                for subscription in subscribers
            ]
            self._subscriptions.clear()

        for subscription in subscriptions:
            subscription.deactivate()

    def _first_sighting(self, message_id: str) -> bool:
        with self._lock:
            if message_id in self._recent_ids:
                return False
            if len(self._recent) == self._recent.maxlen:
                self._recent_ids.discard(self._recent[0])
            self._recent.append(message_id)
            self._recent_ids.add(message_id)
            return True

    def _dispatch(self, row: Row) -> None:
        message = Message.model_validate(row)
        conversation_id = str(message.conversation_id)

        if not self._first_sighting(str(message.id)):
            logger.debug(f"duplicate_insert_skipped message={message.id}")
            return

        with self._lock:
            subscribers = list(self._subscriptions.get(conversation_id, ()))

        for subscription in subscribers:
            try:
                subscription.deliver(message)
            except Exception:
                # the row is committed, remaining subscribers still get it
                logger.exception(
                    f"delivery_callback_failed conversation={conversation_id} "
                    f"message={message.id}"
                )


_CLOSED = object()


class MessageStream:
    """
    Blocking iterator over a conversation's live feed.

    Not restartable: once closed it stays exhausted and anything still
    queued is dropped.
    """

    def __init__(self, channel: LiveDeliveryChannel, conversation_id: UUID | str) -> None:
        self._queue: queue.Queue = queue.Queue()
        self._closed = False
        self.subscription = channel.subscribe(conversation_id, self._queue.put)

    def __iter__(self):
        return self

    def __next__(self) -> Message:
        try:
            return self.get()
        except StreamClosed:
            raise StopIteration from None

    def get(self, timeout: Optional[float] = None) -> Message:
        """
        Next message.

        Raises ``queue.Empty`` after ``timeout`` seconds and ``StreamClosed``
        once the stream is closed.
        """
        if self._closed:
            raise StreamClosed()
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED or self._closed:
            raise StreamClosed()
        return item

    def close(self) -> None:
        self.subscription.cancel()
        self._closed = True
        self._queue.put(_CLOSED)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def open_conversation(
    log: MessageLog,
    channel: LiveDeliveryChannel,
    conversation_id: UUID | str,
    on_message: MessageCallback,
) -> Tuple[List[Message], Subscription]:
    """
    Load a conversation's history and follow it live without losing messages.

    The subscription is opened first and buffers while the history loads;
    buffered messages missing from the history are appended to it (matched
    by id) and everything after that goes straight to ``on_message``.
    """
    buffered: List[Message] = []
    live = False
    guard = threading.Lock()

    def relay(message: Message) -> None:
        with guard:
            if not live:
                buffered.append(message)
                return
        on_message(message)

    subscription = channel.subscribe(conversation_id, relay)
    try:
        history = log.load_history(conversation_id)
    except Exception:
        subscription.cancel()
        raise

    with guard:
        live = True
        pending = list(buffered)
        buffered.clear()

    seen = {message.id for message in history}
    history.extend(message for message in pending if message.id not in seen)
    return history, subscription
