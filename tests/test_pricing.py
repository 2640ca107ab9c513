from __future__ import annotations

import allure

from taskguard.orchestrator.models import TaskType
from taskguard.orchestrator.pricing import TaskPricing, parse_pricing_mapping

pytestmark = [
    allure.epic("Credits"),
    allure.feature("Task Pricing"),
]


def test_default_prices_follow_task_type_table() -> None:
    pricing = TaskPricing()

    assert pricing.price_for(TaskType.MONITOR) == 25
    assert pricing.price_for(TaskType.DESIGN) == 12
    assert pricing.price_for(TaskType.COPY) == 5
    assert pricing.price_for(TaskType.BRAND) == 2
    assert pricing.price_for(TaskType.PUBLISH) == 15
    assert pricing.price_for(TaskType.PROPOSED_OPPORTUNITY) == 0


def test_estimate_sums_prices() -> None:
    pricing = TaskPricing()

    assert pricing.estimate([TaskType.MONITOR, TaskType.DESIGN, TaskType.COPY]) == 42
    assert pricing.estimate([]) == 0


def test_overrides_replace_single_entries() -> None:
    pricing = TaskPricing.from_mapping("copy:9, design:0")

    assert pricing.price_for(TaskType.COPY) == 9
    assert pricing.price_for(TaskType.DESIGN) == 0
    assert pricing.price_for(TaskType.MONITOR) == 25


def test_parse_pricing_mapping_skips_invalid_entries() -> None:
    parsed = parse_pricing_mapping("copy:3,unknown:4,design:x,brand:-1,monitor,chat:1")

    assert parsed == {TaskType.COPY: 3, TaskType.CHAT: 1}


def test_parse_pricing_mapping_empty() -> None:
    assert parse_pricing_mapping("   ") == {}
