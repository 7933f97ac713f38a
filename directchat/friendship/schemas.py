from enum import Enum
from pydantic import BaseModel
from typing import List
from datetime import datetime
from uuid import UUID

from directchat.core.schemas import Identity


class FriendshipStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class Friendship(BaseModel):
    id: UUID
    requester_id: UUID
    addressee_id: UUID
    status: FriendshipStatus
    created_at: datetime


class FriendEntry(BaseModel):
    friendship_id: UUID
    friend: Identity
    status: FriendshipStatus
    is_requester: bool
    created_at: datetime


class FriendList(BaseModel):
    accepted: List[FriendEntry] = []
    incoming_pending: List[FriendEntry] = []
    outgoing_pending: List[FriendEntry] = []


# Friend search
class FriendsSearchResponseModel(BaseModel):
    usernames: List[Identity]


# friend request
class FriendRequestModel(BaseModel):
    receiver_username: str


class FriendRequestResponseModel(BaseModel):
    message: str
    request: Friendship


# accept friend request
class AcceptFriendRequestResponseModel(BaseModel):
    friendship_accept: bool
    details: Friendship


# reject friend request
class RejectFriendRequestResponseModel(BaseModel):
    request_declined: bool


# cancel sent friend request
class CancelFriendRequestResponseModel(BaseModel):
    request_canceled: bool
