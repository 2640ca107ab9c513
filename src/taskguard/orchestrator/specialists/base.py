"""Specialist interface and registry used by the scheduler and facade."""

from __future__ import annotations

from typing import Any, Protocol

from taskguard.errors import UnknownSpecialistError


class Specialist(Protocol):
    """Protocol implemented by content-generation workers.

    Implementations may raise; they must be safe to re-run for the same
    input because local failures are retried.
    """

    def execute(self, task_type: str, data: dict[str, Any]) -> dict[str, Any]:
        """Run one task and return its structured result."""


class SpecialistRegistry:
    """Resolve an agent id to the specialist that executes it."""

    def __init__(self, *, default: Specialist | None = None) -> None:
        self._specialists: dict[str, Specialist] = {}
        self._default = default

    def register(self, agent_id: str, specialist: Specialist) -> None:
        self._specialists[agent_id] = specialist

    def get(self, agent_id: str) -> Specialist:
        specialist = self._specialists.get(agent_id, self._default)
        if specialist is None:
            raise UnknownSpecialistError(f"No specialist registered for agent: {agent_id}")
        return specialist

    def execute(self, agent_id: str, task_type: str, data: dict[str, Any]) -> dict[str, Any]:
        result = self.get(agent_id).execute(task_type, data)
        if not isinstance(result, dict):
            raise TypeError(
                f"Specialist {agent_id} returned {type(result).__name__}, expected dict",
            )
        return result
