"""Domain exceptions raised by taskguard components."""

from __future__ import annotations


class TaskguardError(Exception):
    """Base class for all taskguard domain errors."""


class RequestValidationError(TaskguardError):
    """Inbound request is missing required fields; nothing was created."""


class InvalidAmountError(TaskguardError, ValueError):
    """Credit amount is not a positive integer."""


class InsufficientCreditsError(TaskguardError):
    """Available balance does not cover the requested amount."""

    def __init__(self, *, required: int, available: int) -> None:
        super().__init__(f"Insufficient credits. Required: {required}, Available: {available}")
        self.required = required
        self.available = available


class ReservationStateError(TaskguardError):
    """Reservation is missing or already settled."""


class TaskNotFoundError(TaskguardError):
    """Task id does not exist in the store."""


class SpecialistError(TaskguardError):
    """Specialist execution failed."""


class UnknownSpecialistError(SpecialistError):
    """No specialist is registered for the requested agent id."""
