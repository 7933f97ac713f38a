from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from directchat.core.dependencies import get_current_user_id
from directchat.services import ChatServices, get_services

from .schemas import (
    AcceptFriendRequestResponseModel,
    CancelFriendRequestResponseModel,
    FriendList,
    FriendRequestModel,
    FriendRequestResponseModel,
    FriendsSearchResponseModel,
    RejectFriendRequestResponseModel,
)


router = APIRouter()


@router.get(
    "/search/{username}", response_model=FriendsSearchResponseModel, status_code=200
)
def username_search(
    username: str,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """
    Search for users by username (prefix matching).

    Performs a case-insensitive prefix match and returns up to 10 results
    ordered alphabetically. The caller is never part of the results.

    **Errors**
    - `400`: Search term is shorter than 3 characters.
    - `404`: No users matched the search prefix.
    """
    if len(username) < 3:
        raise HTTPException(
            status_code=400, detail="Search term must be at least 3 characters."
        )

    matches = [
        identity
        for identity in services.profiles.search(username)
        if str(identity.id) != user_id
    ]
    if not matches:
        raise HTTPException(status_code=404, detail="No matching usernames.")

    return {"usernames": matches}


@router.get("", response_model=FriendList, status_code=200)
def list_friends(
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """
    Friends and pending requests of the authenticated user.

    **Returns**
    - `accepted`: accepted friendships, whichever side sent the request.
    - `incoming_pending`: requests waiting for the user's answer.
    - `outgoing_pending`: requests the user sent that are still pending.
    """
    return services.friendships.list(user_id)


@router.post("/request", response_model=FriendRequestResponseModel, status_code=201)
def create_friend_request_using_username(
    data: FriendRequestModel,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """
    Send a friend request to another user using their username.

    **Errors**
    - `404`: No user found with the provided username.
    - `400`: Attempt to send a friend request to yourself.
    - `409`: A request or friendship already exists between both users.
    """
    friendship = services.friendships.send_request(user_id, data.receiver_username)
    return {"message": "Friend request sent.", "request": friendship}


@router.post(
    "/request/{friendship_id}/accept",
    response_model=AcceptFriendRequestResponseModel,
    status_code=200,
)
def accept_friend_request(
    friendship_id: UUID,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """
    Accept a pending friend request. Only the receiver can accept.

    **Errors**
    - `404`: No such friend request exists.
    - `403`: The caller is not the receiver.
    - `409`: Request already accepted.
    """
    friendship = services.friendships.accept(friendship_id, user_id)
    return {"friendship_accept": True, "details": friendship}


@router.delete(
    "/request/{friendship_id}/reject",
    response_model=RejectFriendRequestResponseModel,
    status_code=200,
)
def reject_friend_request(
    friendship_id: UUID,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """Decline a pending friend request. Only the receiver can decline."""
    services.friendships.reject(friendship_id, user_id)
    return {"request_declined": True}


# Only the sender can cancel
@router.delete(
    "/request/{friendship_id}/cancel",
    response_model=CancelFriendRequestResponseModel,
    status_code=200,
)
def cancel_friend_request(
    friendship_id: UUID,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """Withdraw a friend request that is still pending."""
    services.friendships.cancel(friendship_id, user_id)
    return {"request_canceled": True}
