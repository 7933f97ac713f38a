import logging
from uuid import UUID

from directchat.core.errors import (
    AlreadyConnected,
    InvalidState,
    NotAuthorized,
    NotFound,
    SelfReference,
)
from directchat.core.identity import ProfileDirectory
from directchat.core.store import ObjectStore, utc_now

from .schemas import FriendEntry, FriendList, Friendship, FriendshipStatus

logger = logging.getLogger(__name__)


class FriendshipLedger:
    """
    Pairwise relationship state between two users.

    Rows are stored directionally (requester -> addressee) but at most one
    row may exist per unordered pair. That rule is a read-then-write check,
    so two concurrent requests between the same users can both be inserted.
    """

    def __init__(self, store: ObjectStore, profiles: ProfileDirectory) -> None:
        self.store = store
        self.profiles = profiles

    def _get(self, friendship_id: UUID | str) -> Friendship:
        row = self.store.select_one("friendships", eq={"id": str(friendship_id)})
        if not row:
            raise NotFound("Friend request doesn't exist.")
        return Friendship.model_validate(row)

    def _between(self, user_a: UUID | str, user_b: UUID | str) -> list[Friendship]:
        pair = [str(user_a), str(user_b)]
        rows = self.store.select(
            "friendships", in_={"requester_id": pair, "addressee_id": pair}
        )
        return [Friendship.model_validate(row) for row in rows]

    @staticmethod
    def _require_addressee(friendship: Friendship, acting_user: UUID | str) -> None:
        if str(friendship.addressee_id) != str(acting_user):
            raise NotAuthorized("Only the receiver can answer a friend request.")

    @staticmethod
    def _require_pending(friendship: Friendship) -> None:
        if friendship.status != FriendshipStatus.PENDING:
            raise InvalidState()

    def send_request(self, from_id: UUID | str, to_username: str) -> Friendship:
        receiver = self.profiles.find_by_username(to_username)
        sender_id, receiver_id = str(from_id), str(receiver.id)

        if sender_id == receiver_id:
            raise SelfReference("Cannot send friend request to yourself.")

        if self._between(sender_id, receiver_id):
            raise AlreadyConnected()

        created = self.store.insert(
            "friendships",
            {
                "requester_id": sender_id,
                "addressee_id": receiver_id,
                "status": FriendshipStatus.PENDING.value,
                "created_at": utc_now(),
            },
        )

        logger.info(f"friend_request_sent requester={sender_id} addressee={receiver_id}")
        return Friendship.model_validate(created[0])

    def accept(self, friendship_id: UUID | str, acting_user: UUID | str) -> Friendship:
        """Accept a pending request. Accepting twice is an error, not a no-op."""
        friendship = self._get(friendship_id)
        self._require_addressee(friendship, acting_user)
        self._require_pending(friendship)

        updated = self.store.update(
            "friendships",
            {"status": FriendshipStatus.ACCEPTED.value},
            eq={"id": str(friendship.id), "status": FriendshipStatus.PENDING.value},
        )
        if not updated:
            # answered by someone else between the read and the update
            raise InvalidState()

        logger.info(f"friend_request_accepted id={friendship.id}")
        return Friendship.model_validate(updated[0])

    def reject(self, friendship_id: UUID | str, acting_user: UUID | str) -> None:
        friendship = self._get(friendship_id)
        self._require_addressee(friendship, acting_user)
        self._require_pending(friendship)

        self.store.delete("friendships", eq={"id": str(friendship.id)})
        logger.info(f"friend_request_rejected id={friendship.id}")

    def cancel(self, friendship_id: UUID | str, acting_user: UUID | str) -> None:
        """Withdraw a pending request. Only the requester can cancel."""
        friendship = self._get(friendship_id)
        if str(friendship.requester_id) != str(acting_user):
            raise NotAuthorized("Only the sender can cancel a friend request.")
        self._require_pending(friendship)

        self.store.delete("friendships", eq={"id": str(friendship.id)})
        logger.info(f"friend_request_canceled id={friendship.id}")

    def are_friends(self, user_a: UUID | str, user_b: UUID | str) -> bool:
        return any(
            friendship.status == FriendshipStatus.ACCEPTED
            for friendship in self._between(user_a, user_b)
        )

    def list(self, user: UUID | str) -> FriendList:
        user_id = str(user)

        rows = self.store.select("friendships", eq={"requester_id": user_id})
        rows += self.store.select("friendships", eq={"addressee_id": user_id})
        friendships = sorted(
            (Friendship.model_validate(row) for row in rows),
            key=lambda friendship: (friendship.created_at, str(friendship.id)),
        )

        def other_side(friendship: Friendship) -> str:
            if str(friendship.requester_id) == user_id:
                return str(friendship.addressee_id)
            return str(friendship.requester_id)

        people = self.profiles.get_many({other_side(f) for f in friendships})

        result = FriendList()
        for friendship in friendships:
            friend = people.get(other_side(friendship))
            if friend is None:
                continue

            is_requester = str(friendship.requester_id) == user_id
            entry = FriendEntry(
                friendship_id=friendship.id,
                friend=friend,
                status=friendship.status,
                is_requester=is_requester,
                created_at=friendship.created_at,
            )

            if friendship.status == FriendshipStatus.ACCEPTED:
                result.accepted.append(entry)
            elif is_requester:
                result.outgoing_pending.append(entry)
            else:
                result.incoming_pending.append(entry)

        return result
