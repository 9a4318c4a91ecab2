"""
Domain errors.

Raised by the service modules before any store mutation begins and
translated into JSON responses by the handler registered in main.py.
The message is meant to be shown to the user verbatim.
"""


class DomainError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    status_code = 404


class SelfActionError(DomainError):
    """Self-booking, self-reposting, self-following."""

    status_code = 400


class DuplicateActionError(DomainError):
    status_code = 409


class NotPermittedError(DomainError):
    status_code = 403


class SlotUnavailableError(DomainError):
    status_code = 409


class InvalidScheduleError(DomainError):
    status_code = 422
