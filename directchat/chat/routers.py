import asyncio
import logging
from uuid import UUID

import anyio
from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.concurrency import run_in_threadpool

from directchat.core import config
from directchat.core.dependencies import get_current_user_id, get_websocket_user_id
from directchat.services import ChatServices, get_services

from .schemas import (
    ATTACHMENT_TYPES,
    CreateDirectConversationModel,
    FindOrCreateResult,
    GetConversationParticipantResponseModel,
    GetConversationsResponseModel,
    GetMessagesResponseModel,
    Message,
    MessageType,
    SendMessageModel,
    SendMessageResponseModel,
    TextPayload,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def require_membership(services: ChatServices, conversation_id, user_id: str) -> None:
    if not services.conversations.is_member(conversation_id, user_id):
        raise HTTPException(
            status_code=403, detail="You are not a member of this conversation"
        )


@router.post(
    "/conversations/direct",
    response_model=FindOrCreateResult,
    status_code=200,
)
def get_or_create_direct_conversation(
    data: CreateDirectConversationModel,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """
    Get or create a direct (1-on-1) conversation with another user.

    If a conversation between the two users already exists, it is returned.
    Otherwise a new conversation is created and both users are added as
    participants.

    **Returns**
    - `conversation_id`: UUID of the direct conversation
    - `is_new`: Whether the conversation was newly created

    **Errors**
    - 400: Conversation with yourself
    - 403: Users are not friends
    - 404: Receiver does not exist
    """
    receiver = services.profiles.get_by_id(data.receiver_id)

    if config.REQUIRE_FRIENDSHIP_FOR_CHAT and str(receiver.id) != user_id:
        if not services.friendships.are_friends(user_id, receiver.id):
            raise HTTPException(
                status_code=403,
                detail="You can only message users you are friends with.",
            )

    return services.conversations.find_or_create(user_id, receiver.id)


@router.get(
    "/conversations",
    response_model=GetConversationsResponseModel,
    status_code=200,
)
def get_conversations(
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """
    Retrieve all conversations of the authenticated user, most recent first.

    Each entry carries the other participant and a preview of the last
    message. Conversations without messages are listed last.
    """
    return {"conversations": services.conversations.list_for_user(user_id)}


@router.get(
    "/conversations/{conversation_id}/participant",
    response_model=GetConversationParticipantResponseModel,
    status_code=200,
)
def get_conversation_participant_info(
    conversation_id: UUID,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """The other participant of a direct conversation and whether you are still friends."""
    participant = services.conversations.other_participant(conversation_id, user_id)
    is_friend = services.friendships.are_friends(user_id, participant.id)
    return {"participant": participant, "is_friend": is_friend}


@router.get(
    "/messages/{conversation_id}",
    response_model=GetMessagesResponseModel,
    status_code=200,
)
def get_messages(
    conversation_id: UUID,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """
    Retrieve the full message history of a conversation, oldest first.

    **Errors**
    - 403: User is not a member of the conversation
    """
    require_membership(services, conversation_id, user_id)
    return {"messages": services.messages.load_history(conversation_id)}


@router.post(
    "/messages",
    response_model=SendMessageResponseModel,
    status_code=201,
)
def send_message(
    data: SendMessageModel,
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """
    Send a text message to a conversation the user is a member of.

    **Errors**
    - 400: Empty message
    - 403: User is not a member of the conversation
    """
    require_membership(services, data.conversation_id, user_id)
    message = services.messages.append(
        data.conversation_id, user_id, TextPayload(content=data.content)
    )
    return {"message": message}


@router.post(
    "/messages/{conversation_id}/attachments",
    response_model=SendMessageResponseModel,
    status_code=201,
)
def send_attachment(
    conversation_id: UUID,
    message_type: MessageType = Form(...),
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
):
    """
    Upload an image, voice note or file and send it as a message.

    **Errors**
    - 400: Missing file or `message_type` is `text`
    - 403: User is not a member of the conversation
    - 502: Attachment storage failed, no message was sent
    """
    if message_type not in ATTACHMENT_TYPES:
        raise HTTPException(
            status_code=400, detail="message_type must be image, voice or file."
        )

    require_membership(services, conversation_id, user_id)
    message = services.messages.attach(
        conversation_id,
        user_id,
        message_type,
        file.filename or "",
        file.file.read(),
        content_type=file.content_type,
    )
    return {"message": message}


@router.websocket("/ws/{conversation_id}")
async def conversation_feed(
    websocket: WebSocket,
    conversation_id: UUID,
    user_id: str = Depends(get_websocket_user_id),
    services: ChatServices = Depends(get_services),
):
    """
    Push every message appended to the conversation after the socket opened.

    History is not replayed; load `/messages/{conversation_id}` for that.
    Store and channel calls block, so they run in the threadpool.
    """
    is_member = await run_in_threadpool(
        services.conversations.is_member, conversation_id, user_id
    )
    if not is_member:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue = asyncio.Queue()

    def forward(message: Message) -> None:
        # runs on the appending thread
        loop.call_soon_threadsafe(outbox.put_nowait, message)

    async def pump() -> None:
        while True:
            message = await outbox.get()
            await websocket.send_json(message.model_dump(mode="json"))

    # subscribed before accept, so nothing sent once the client is connected is missed
    subscription = await run_in_threadpool(
        services.delivery.subscribe, conversation_id, forward
    )
    sender = None

    try:
        await websocket.accept()
        sender = asyncio.create_task(pump())
        logger.info(f"ws_opened conversation={conversation_id} user={user_id}")

        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        with anyio.CancelScope(shield=True):
            await run_in_threadpool(subscription.cancel)
            if sender is not None:
                sender.cancel()
                (error,) = await asyncio.gather(sender, return_exceptions=True)
                if not isinstance(error, (asyncio.CancelledError, type(None))):
                    logger.warning(
                        f"ws_send_failed conversation={conversation_id} error={error!r}"
                    )
        logger.info(f"ws_closed conversation={conversation_id} user={user_id}")
