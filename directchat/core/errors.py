"""
Error taxonomy shared by the friendship, directory and message components.

Every error carries the HTTP status the API layer answers with, so routers
never translate them by hand.
"""


class ChatError(Exception):
    status_code = 500
    default_detail = "Unexpected server error."

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(ChatError):
    status_code = 404
    default_detail = "Not found."


class AlreadyConnected(ChatError):
    status_code = 409
    default_detail = "You already have a connection with this user."


class InvalidState(ChatError):
    status_code = 409
    default_detail = "Friend request is no longer pending."


class NotAuthorized(ChatError):
    status_code = 403
    default_detail = "You are not allowed to act on this record."


class SelfReference(ChatError):
    status_code = 400
    default_detail = "Cannot target yourself."


class EmptyContent(ChatError):
    status_code = 400
    default_detail = "Message content cannot be empty."


class MissingAttachment(ChatError):
    status_code = 400
    default_detail = "Attachment is missing."


class UploadFailed(ChatError):
    status_code = 502
    default_detail = "Could not upload attachment."


class TransientIO(ChatError):
    status_code = 503
    default_detail = "Storage backend is unavailable."
