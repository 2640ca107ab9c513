"""Specialist implementations and the model output adapter."""

from taskguard.orchestrator.specialists.base import Specialist, SpecialistRegistry
from taskguard.orchestrator.specialists.echo import EchoSpecialist
from taskguard.orchestrator.specialists.output_adapter import (
    CommandAction,
    ModelSpecialist,
    SpecialistCommand,
    parse_model_output,
)

__all__ = [
    "CommandAction",
    "EchoSpecialist",
    "ModelSpecialist",
    "Specialist",
    "SpecialistCommand",
    "SpecialistRegistry",
    "parse_model_output",
]
