"""Exception types raised by SchoolBell."""


class SchoolBellError(Exception):
    """Base class for SchoolBell errors."""


class CronExpressionError(SchoolBellError, ValueError):
    """A scheduled task carries a cron expression that cannot be parsed."""

    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(f"Invalid cron expression {expression!r}: {reason}")
        self.expression = expression


class MissingRecipientError(SchoolBellError):
    """A reminder has no child to deliver to."""

    def __init__(self, reminder_id: str) -> None:
        super().__init__(f"Reminder {reminder_id} has no child name and cannot be sent")
        self.reminder_id = reminder_id


class TemplateError(SchoolBellError):
    """A recurring-reminder task points at a missing or non-template reminder."""


class DeliveryError(SchoolBellError):
    """A notification could not be handed to its channel."""


def require(**dependencies: object) -> None:
    """Raise ValueError naming the first dependency that is None."""
    for name, value in dependencies.items():
        if value is None:
            msg = f"{name} is required"
            raise ValueError(msg)
