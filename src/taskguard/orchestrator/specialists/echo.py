"""Deterministic local specialist for CLI runs and tests."""

from __future__ import annotations

from typing import Any

from taskguard.errors import SpecialistError

FAIL_MARKER_KEY = "simulate_error"


class EchoSpecialist:
    """Echo the task input back as a structured result.

    A ``simulate_error`` key in the task data makes the call raise with that
    message, which lets operators exercise the containment path.
    """

    def __init__(self, *, name: str = "echo") -> None:
        self.name = name

    def execute(self, task_type: str, data: dict[str, Any]) -> dict[str, Any]:
        error = data.get(FAIL_MARKER_KEY)
        if error:
            raise SpecialistError(str(error))
        topic = str(data.get("topic") or data.get("prompt") or task_type)
        return {
            "specialist": self.name,
            "task_type": task_type,
            "content": f"{task_type} output: {topic}",
            "validation": {"approved": True, "score": 100},
        }
