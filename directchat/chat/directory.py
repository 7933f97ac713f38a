import logging
from typing import List, Optional, Tuple
from uuid import UUID

from directchat.core.errors import NotAuthorized, NotFound, SelfReference
from directchat.core.identity import ProfileDirectory
from directchat.core.locks import KeyedLock
from directchat.core.schemas import Identity
from directchat.core.store import ObjectStore, utc_now

from .messages import MessageLog, preview
from .schemas import ConversationSummary, FindOrCreateResult, LastMessagePreview

logger = logging.getLogger(__name__)


def pair_key(user_a: UUID | str, user_b: UUID | str) -> Tuple[str, str]:
    """Canonical (sorted) key of an unordered user pair."""
    u1, u2 = sorted([str(user_a), str(user_b)])
    return u1, u2


class PairArbiter(KeyedLock):
    """
    Single writer per unordered user pair.

    Only serializes callers inside this process; two server processes can
    still race each other.
    """

    def hold(self, user_a: UUID | str, user_b: UUID | str):
        return super().hold(pair_key(user_a, user_b))


def sort_conversations(summaries: List[ConversationSummary]) -> List[ConversationSummary]:
    """
    Most recent activity first.

    Conversations without messages come after every conversation that has
    one, newest conversation first among themselves.
    """
    with_messages = sorted(
        (summary for summary in summaries if summary.last_message),
        key=lambda summary: (summary.last_message.created_at, summary.created_at),
        reverse=True,
    )
    without_messages = sorted(
        (summary for summary in summaries if not summary.last_message),
        key=lambda summary: summary.created_at,
        reverse=True,
    )
    return with_messages + without_messages


class ConversationDirectory:
    """
    Maps an unordered pair of users to their one direct conversation.

    ``find_or_create`` is check-then-act on top of a non-transactional
    store. With an arbiter, concurrent calls for the same pair inside this
    process are serialized; without one, two racing calls may both create a
    conversation.
    """

    def __init__(
        self,
        store: ObjectStore,
        profiles: ProfileDirectory,
        messages: MessageLog,
        arbiter: Optional[PairArbiter] = None,
    ) -> None:
        self.store = store
        self.profiles = profiles
        self.messages = messages
        self.arbiter = arbiter

    def find_existing(self, user_a: UUID | str, user_b: UUID | str) -> Optional[str]:
        mine = self.store.select(
            "conversation_participants",
            "conversation_id",
            eq={"profile_id": str(user_a)},
        )
        conversation_ids = [row["conversation_id"] for row in mine]

        match = self.store.select_one(
            "conversation_participants",
            "conversation_id",
            eq={"profile_id": str(user_b)},
            in_={"conversation_id": conversation_ids},
        )
        return match["conversation_id"] if match else None

    def find_or_create(self, user_a: UUID | str, user_b: UUID | str) -> FindOrCreateResult:
        user_a, user_b = str(user_a), str(user_b)
        if user_a == user_b:
            raise SelfReference("Cannot start a conversation with yourself.")

        if self.arbiter is None:
            return self._find_or_create(user_a, user_b)

        with self.arbiter.hold(user_a, user_b):
            return self._find_or_create(user_a, user_b)

    def _find_or_create(self, user_a: str, user_b: str) -> FindOrCreateResult:
        existing = self.find_existing(user_a, user_b)
        if existing:
            return FindOrCreateResult(conversation_id=existing, is_new=False)

        conversation = self.store.insert("conversations", {"created_at": utc_now()})[0]
        conversation_id = conversation["id"]

        self.store.insert(
            "conversation_participants",
            [
                {"conversation_id": conversation_id, "profile_id": user_a},
                {"conversation_id": conversation_id, "profile_id": user_b},
            ],
        )

        logger.info(
            f"conversation_created id={conversation_id} members={user_a},{user_b}"
        )
        return FindOrCreateResult(conversation_id=conversation_id, is_new=True)

    def participant_ids(self, conversation_id: UUID | str) -> List[str]:
        rows = self.store.select(
            "conversation_participants",
            "profile_id",
            eq={"conversation_id": str(conversation_id)},
        )
        return [row["profile_id"] for row in rows]

    def participants(self, conversation_id: UUID | str) -> List[Identity]:
        ids = self.participant_ids(conversation_id)
        people = self.profiles.get_many(ids)
        return [people[pid] for pid in ids if pid in people]

    def is_member(self, conversation_id: UUID | str, user: UUID | str) -> bool:
        row = self.store.select_one(
            "conversation_participants",
            "id",
            eq={"conversation_id": str(conversation_id), "profile_id": str(user)},
        )
        return row is not None

    def other_participant(self, conversation_id: UUID | str, user: UUID | str) -> Identity:
        ids = self.participant_ids(conversation_id)
        if not ids:
            raise NotFound("Conversation not found.")
        if str(user) not in ids:
            raise NotAuthorized("You are not a member of this conversation.")

        other = next((pid for pid in ids if pid != str(user)), None)
        if other is None:
            raise NotFound("Participant could not be found.")
        return self.profiles.get_by_id(other)

    def list_for_user(self, user: UUID | str) -> List[ConversationSummary]:
        user_id = str(user)

        memberships = self.store.select(
            "conversation_participants",
            "conversation_id",
            eq={"profile_id": user_id},
        )
        conversation_ids = list(dict.fromkeys(row["conversation_id"] for row in memberships))

        conversations = {
            row["id"]: row
            for row in self.store.select(
                "conversations", "id, created_at", in_={"id": conversation_ids}
            )
        }

        others = {}
        for row in self.store.select(
            "conversation_participants",
            "conversation_id, profile_id",
            in_={"conversation_id": conversation_ids},
        ):
            if row["profile_id"] != user_id:
                others.setdefault(row["conversation_id"], row["profile_id"])

        people = self.profiles.get_many(set(others.values()))

        summaries = []
        for conversation_id in conversation_ids:
            participant = people.get(others.get(conversation_id))
            conversation = conversations.get(conversation_id)
            if participant is None or conversation is None:
                continue

            last = self.messages.latest(conversation_id)
            summaries.append(
                ConversationSummary(
                    conversation_id=conversation_id,
                    participant=participant,
                    last_message=(
                        LastMessagePreview(
                            message_type=last.message_type,
                            preview=preview(last),
                            created_at=last.created_at,
                        )
                        if last
                        else None
                    ),
                    created_at=conversation["created_at"],
                )
            )

        return sort_conversations(summaries)
