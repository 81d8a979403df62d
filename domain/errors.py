"""Typed failures raised by the chat core.

None of them are transient, so nothing in the core retries them. The HTTP
layer translates them to status codes in one place (see ``main.py``).
"""


class ChatError(Exception):
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(ChatError):
    status_code = 404
    default_message = "Not found"


class Conflict(ChatError):
    status_code = 409
    default_message = "Conflict"


class Forbidden(ChatError):
    status_code = 403
    default_message = "You don't have access to this chat"


class InvalidInput(ChatError):
    status_code = 400
    default_message = "Invalid input"


class SessionClaimed(Conflict):
    default_message = "This conversation was already taken"


class SessionEnded(Conflict):
    default_message = "This conversation has ended"
