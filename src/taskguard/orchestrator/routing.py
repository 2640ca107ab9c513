"""Request-type to capability routing."""

from __future__ import annotations

from taskguard.orchestrator.models import TaskType

DEFAULT_CAPABILITY = "ChatAgent"

REQUEST_CAPABILITIES: dict[str, str] = {
    "CREATE_SOCIAL_POST": "CopySocialShort",
    "CREATE_LONG_FORM": "CopySocialLong",
    "CREATE_AD_COPY": "CopyAdsAgent",
    "CREATE_EMAIL": "CopyCRMAgent",
    "CREATE_STRATEGY": "StrategyAgent",
    "ANALYZE_MARKET": "TrendAgent",
    "ANALYZE_COMPETITORS": "CompetitorAgent",
    "CREATE_DESIGN": "DesignSocialAgent",
    "CREATE_AD_DESIGN": "DesignAdsAgent",
    "CREATE_LANDING_PAGE": "DesignLandingAgent",
    "CREATE_VIDEO_SCRIPT": "VideoScriptAgent",
    "MANAGE_META_ADS": "MetaAdsManager",
    "MANAGE_GOOGLE_ADS": "GoogleAdsManager",
    "MANAGE_TIKTOK_ADS": "TikTokAdsManager",
    "MANAGE_LINKEDIN_ADS": "LinkedInAdsManager",
    "GENERATE_BI_REPORT": "BIAgent",
    "ANALYZE_TRENDS": "TrendAgent",
    "MANAGE_LEADS": "CloserAgent",
    "CUSTOMER_SUCCESS": "SuccessAgent",
    "ENRICH_DATA": "EnricherAgent",
    "CHAT_SUPPORT": "ChatAgent",
    "SYSTEM_MONITOR": "SystemMonitor",
    "CHAT": "ChatAgent",
}

CAPABILITY_TASK_TYPES: dict[str, TaskType] = {
    "CopySocialShort": TaskType.COPY,
    "CopySocialLong": TaskType.COPY,
    "CopyAdsAgent": TaskType.COPY,
    "VideoScriptAgent": TaskType.COPY,
    "CopyCRMAgent": TaskType.EMAIL,
    "StrategyAgent": TaskType.STRATEGY,
    "TrendAgent": TaskType.MONITOR,
    "CompetitorAgent": TaskType.MONITOR,
    "SystemMonitor": TaskType.MONITOR,
    "DesignSocialAgent": TaskType.DESIGN,
    "DesignAdsAgent": TaskType.DESIGN,
    "DesignLandingAgent": TaskType.DESIGN,
    "MetaAdsManager": TaskType.PERFORMANCE,
    "GoogleAdsManager": TaskType.PERFORMANCE,
    "TikTokAdsManager": TaskType.PERFORMANCE,
    "LinkedInAdsManager": TaskType.PERFORMANCE,
    "BIAgent": TaskType.PERFORMANCE,
    "CloserAgent": TaskType.CHAT,
    "SuccessAgent": TaskType.CHAT,
    "EnricherAgent": TaskType.CHAT,
    "ChatAgent": TaskType.CHAT,
}

_AGENT_PREFIX = "AGENT_"


def resolve(request_type: str) -> str:
    """Map a request type to a capability id; unknown types go to chat."""

    key = request_type.strip().upper()
    if key.startswith(_AGENT_PREFIX):
        key = key[len(_AGENT_PREFIX) :]
    return REQUEST_CAPABILITIES.get(key, DEFAULT_CAPABILITY)


def task_type_for_capability(capability_id: str) -> TaskType:
    """Billing category of a capability; unknown capabilities bill as chat."""

    return CAPABILITY_TASK_TYPES.get(capability_id, TaskType.CHAT)


def specialized_agent_id(
    task_type: TaskType,
    *,
    platform: str = "",
    content_format: str = "",
) -> str:
    """Specialist id for plan-generated tasks."""

    fmt = content_format.strip().lower()
    if task_type == TaskType.COPY:
        if fmt in {"long", "long_form", "article", "blog"}:
            return "copy-social-long"
        if fmt == "email" or platform.strip().lower() == "email":
            return "copy-email-crm"
        return "copy-social-short"
    if task_type == TaskType.EMAIL:
        return "copy-email-crm"
    if task_type == TaskType.DESIGN:
        return "design-social-static"
    return f"{task_type.value.replace('_', '-')}-agent"
