"""Structured command recovery from free-text model output.

This is the only place that reads model prose. Everything downstream works
with `SpecialistCommand` objects.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from taskguard.errors import SpecialistError
from taskguard.orchestrator.models import TaskType

logger = logging.getLogger(__name__)

COMMAND_PARSER_VERSION = "v1"

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)


class CommandAction(str, Enum):
    """Follow-up actions a model may request."""

    GENERATE_COPY = "generate_copy"
    GENERATE_IMAGE = "generate_image"
    SEND_AUDIO = "send_audio"
    MARKET_REPORT = "market_report"
    FINANCE_REPORT = "finance_report"

    @property
    def task_type(self) -> TaskType:
        return _ACTION_TASK_TYPES[self]


_ACTION_TASK_TYPES = {
    CommandAction.GENERATE_COPY: TaskType.COPY,
    CommandAction.GENERATE_IMAGE: TaskType.DESIGN,
    CommandAction.SEND_AUDIO: TaskType.CHAT,
    CommandAction.MARKET_REPORT: TaskType.MONITOR,
    CommandAction.FINANCE_REPORT: TaskType.PERFORMANCE,
}


@dataclass(slots=True)
class SpecialistCommand:
    action: CommandAction
    topic: str = ""
    content_format: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "topic": self.topic,
            "format": self.content_format,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> SpecialistCommand | None:
        try:
            action = CommandAction(str(raw.get("action", "")).strip().lower())
        except ValueError:
            return None
        details = raw.get("details")
        return cls(
            action=action,
            topic=str(raw.get("topic") or "").strip(),
            content_format=str(raw.get("format") or "").strip(),
            details=details if isinstance(details, dict) else {},
        )


@dataclass(slots=True)
class ModelOutput:
    text: str
    commands: list[SpecialistCommand]


def parse_model_output(raw_text: str) -> ModelOutput:
    """Split model output into user-facing text and structured commands.

    Accepts a JSON object directly, inside a fenced ```json block, or as the
    outermost braces in surrounding prose. Anything else is plain text with
    no commands.
    """

    text = raw_text.strip()
    if not text:
        return ModelOutput(text="", commands=[])

    payload = _parse_json_payload(text)
    if payload is None:
        return ModelOutput(text=text, commands=[])

    commands: list[SpecialistCommand] = []
    raw_commands = payload.get("commands")
    if isinstance(raw_commands, list):
        for item in raw_commands:
            if not isinstance(item, dict):
                continue
            command = SpecialistCommand.from_dict(item)
            if command is None:
                logger.warning("Dropping unknown model command: %r", item.get("action"))
                continue
            commands.append(command)

    body = payload.get("text")
    return ModelOutput(text=body.strip() if isinstance(body, str) else "", commands=commands)


def _parse_json_payload(text: str) -> dict[str, Any] | None:
    direct = _try_load_dict(text)
    if direct is not None:
        return direct

    fenced = _FENCED_JSON.search(text)
    if fenced is not None:
        payload = _try_load_dict(fenced.group(1))
        if payload is not None:
            return payload

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return _try_load_dict(text[start : end + 1])


def _try_load_dict(raw: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


class TextModel(Protocol):
    """Third-party model client boundary."""

    def complete(self, prompt: str) -> str:
        """Return raw model text for a prompt."""


class ModelSpecialist:
    """Specialist backed by a text model whose output goes through the adapter."""

    def __init__(self, *, model: TextModel, name: str) -> None:
        self.model = model
        self.name = name

    def execute(self, task_type: str, data: dict[str, Any]) -> dict[str, Any]:
        prompt = str(data.get("prompt") or data.get("topic") or "").strip()
        if not prompt:
            raise SpecialistError(f"{self.name}: task {task_type} has no prompt")
        output = parse_model_output(self.model.complete(prompt))
        if not output.text and not output.commands:
            raise SpecialistError(f"{self.name}: empty model output")
        return {
            "specialist": self.name,
            "task_type": task_type,
            "content": output.text,
            "commands": [command.to_dict() for command in output.commands],
            "parser_version": COMMAND_PARSER_VERSION,
        }
