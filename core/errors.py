"""Errors raised by table commands.

Every error is reported to the caller that issued the command and leaves the
table untouched.
"""


class TableError(Exception):
    """Base class for rejected table commands."""

    default_message = "Command rejected"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return self.args[0]


class InvalidCommandForPhase(TableError):
    default_message = "Command not allowed in the current phase"


class NotYourTurn(TableError):
    default_message = "It is not your turn"


class InvalidBetAmount(TableError):
    default_message = "Invalid bet amount"


class InsufficientBalance(TableError):
    default_message = "Insufficient balance"


class Unauthorized(TableError):
    default_message = "Admin only!"


class UnknownPlayer(TableError):
    default_message = "Join the table first"


class InvalidAction(TableError):
    """The phase and turn are right but the hand or round forbids the action."""

    default_message = "Action not allowed"
