from __future__ import annotations

import allure
import pytest

from taskguard.orchestrator.models import TaskType
from taskguard.orchestrator.routing import (
    DEFAULT_CAPABILITY,
    REQUEST_CAPABILITIES,
    resolve,
    specialized_agent_id,
    task_type_for_capability,
)

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Capability Routing"),
]


@pytest.mark.parametrize(
    ("request_type", "capability"),
    [
        ("CREATE_SOCIAL_POST", "CopySocialShort"),
        ("create_email", "CopyCRMAgent"),
        (" ANALYZE_TRENDS ", "TrendAgent"),
        ("AGENT_MANAGE_META_ADS", "MetaAdsManager"),
        ("MANAGE_LEADS", "CloserAgent"),
        ("SYSTEM_MONITOR", "SystemMonitor"),
    ],
)
def test_resolve_known_types(request_type: str, capability: str) -> None:
    assert resolve(request_type) == capability


def test_resolve_unknown_type_falls_back_to_chat() -> None:
    assert resolve("ORDER_PIZZA") == DEFAULT_CAPABILITY
    assert resolve("AGENT_UNKNOWN") == DEFAULT_CAPABILITY


def test_every_capability_has_a_billing_category() -> None:
    for capability in REQUEST_CAPABILITIES.values():
        assert isinstance(task_type_for_capability(capability), TaskType)

    assert task_type_for_capability("CopyCRMAgent") == TaskType.EMAIL
    assert task_type_for_capability("DesignAdsAgent") == TaskType.DESIGN
    assert task_type_for_capability("SomethingNew") == TaskType.CHAT


@pytest.mark.parametrize(
    ("task_type", "platform", "content_format", "agent_id"),
    [
        (TaskType.COPY, "instagram", "post", "copy-social-short"),
        (TaskType.COPY, "linkedin", "article", "copy-social-long"),
        (TaskType.COPY, "email", "newsletter", "copy-email-crm"),
        (TaskType.EMAIL, "", "", "copy-email-crm"),
        (TaskType.DESIGN, "tiktok", "video", "design-social-static"),
        (TaskType.MONITOR, "", "", "monitor-agent"),
        (TaskType.BRAND, "", "", "brand-agent"),
    ],
)
def test_specialized_agent_id(
    task_type: TaskType,
    platform: str,
    content_format: str,
    agent_id: str,
) -> None:
    assert (
        specialized_agent_id(task_type, platform=platform, content_format=content_format)
        == agent_id
    )
