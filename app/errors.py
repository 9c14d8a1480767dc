"""Domain exceptions raised by the service layer.

Blueprints translate them into JSON error responses using ``status_code``.
"""


class HelpdeskError(Exception):
    """Base class for expected, user-facing errors."""
    status_code = 400

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class ValidationError(HelpdeskError):
    """Invalid input."""
    status_code = 400


class PermissionDenied(HelpdeskError):
    """Access denied."""
    status_code = 403


class NotFound(HelpdeskError):
    """Not found."""
    status_code = 404


class NotificationRequestError(HelpdeskError):
    """Missing 'ticket_id' or 'message'"""
    status_code = 400


class RecipientLookupError(HelpdeskError):
    """Failed to fetch user chat IDs"""
    status_code = 500


class TicketLookupError(HelpdeskError):
    """Failed to fetch ticket data"""
    status_code = 500


class TelegramError(HelpdeskError):
    """Failed to contact Telegram API"""
    status_code = 500


class TelegramNotVerifiedError(HelpdeskError):
    """Telegram user not verified. Message the bot with /start."""
    status_code = 400
