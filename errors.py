"""Failures reported back to the connection that caused them.

Every error carries the message sent to the client in the `error` event.
"""


class CoreError(Exception):
    default_message = "Request failed"
    status_code = 400

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CoreError):
    default_message = "Invalid data"
    status_code = 400


class AuthenticationError(CoreError):
    default_message = "Invalid token"
    status_code = 401


class AuthorizationError(CoreError):
    default_message = "Access denied"
    status_code = 403


class NotFoundError(CoreError):
    default_message = "Not found"
    status_code = 404


class PersistenceError(CoreError):
    default_message = "Failed to save message"
    status_code = 500
