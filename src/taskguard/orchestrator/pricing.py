"""Credit price table for task types."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from taskguard.orchestrator.models import TaskType

logger = logging.getLogger(__name__)

DEFAULT_TASK_PRICES: dict[TaskType, int] = {
    TaskType.MONITOR: 25,
    TaskType.DESIGN: 12,
    TaskType.COPY: 5,
    TaskType.BRAND: 2,
    TaskType.PUBLISH: 15,
    TaskType.PERFORMANCE: 15,
    TaskType.EMAIL: 5,
    TaskType.STRATEGY: 5,
    TaskType.CHAT: 2,
    TaskType.PROPOSED_OPPORTUNITY: 0,
}


class TaskPricing:
    """Resolve the credit price of a task type, with optional overrides."""

    def __init__(self, overrides: dict[TaskType, int] | None = None) -> None:
        self._prices = dict(DEFAULT_TASK_PRICES)
        if overrides:
            self._prices.update(overrides)

    @classmethod
    def from_mapping(cls, raw: str) -> TaskPricing:
        return cls(parse_pricing_mapping(raw))

    def price_for(self, task_type: TaskType) -> int:
        return self._prices.get(task_type, 0)

    def estimate(self, task_types: Iterable[TaskType]) -> int:
        """Total price of a batch of task types."""

        return sum(self.price_for(task_type) for task_type in task_types)


def parse_pricing_mapping(raw: str) -> dict[TaskType, int]:
    """Parse `TASKGUARD_TASK_PRICING` mapping.

    Format:
    - `task_type:price`
    - multiple entries separated by `,`
    - unknown task types and malformed prices are skipped
    """

    parsed: dict[TaskType, int] = {}
    if not raw.strip():
        return parsed

    for entry in raw.split(","):
        value = entry.strip()
        if not value:
            continue
        parts = [part.strip() for part in value.split(":")]
        if len(parts) != 2:
            logger.warning("Skipping malformed pricing entry: %r", value)
            continue
        raw_type, raw_price = parts
        try:
            task_type = TaskType(raw_type.lower())
            price = int(raw_price)
        except ValueError:
            logger.warning("Skipping invalid pricing entry: %r", value)
            continue
        if price < 0:
            logger.warning("Skipping negative price for %s", task_type.value)
            continue
        parsed[task_type] = price
    return parsed
