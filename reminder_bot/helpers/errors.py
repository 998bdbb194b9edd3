class ReminderError(Exception):
    """
    Base error of the reminder engine.

    The message is meant for logs, never for the end user. Transports map the error type to their own wording.
    """


class ReminderParseError(ReminderError):
    """Command text does not follow the `<month>/<day> <hour>:<minute> <body>` grammar."""


class ReminderValidationError(ReminderError):
    """Reminder fields are not acceptable, like an empty body."""


class InvalidDateTimeError(ReminderValidationError):
    """Date and time components do not resolve to an instant, like February 30th."""


class ReminderNotFoundError(ReminderError):
    """
    Reminder does not exist, was deleted, or is owned by someone else.

    Cases are not distinguished to avoid leaking existence to non-owners.
    """


class UnauthorizedError(ReminderError):
    """Scan trigger secret does not match."""


class BackendUnavailableError(ReminderError):
    """Store or outbound transport failed, the operation can be retried later."""
