"""Runtime configuration for the task scheduler, ledger and guards."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class SchedulerSettings:
    """Batch scheduler settings."""

    batch_size: int = 5
    interval_seconds: float = 60.0
    max_attempts: int = 3


@dataclass(slots=True)
class FinanceSettings:
    """Hard and soft limits applied by the finance guard."""

    max_cpa: float = 50.0
    min_roas: float = 2.0
    min_ctr: float = 0.8
    max_frequency: float = 4.0
    stop_loss_min_spend: float = 100.0


@dataclass(slots=True)
class HealthSettings:
    """Agent health thresholds."""

    snapshot_threshold: int = 90
    reset_threshold: int = 40


@dataclass(slots=True)
class NotificationSettings:
    """Outbound notification delivery."""

    enabled: bool = True
    webhook_url: str | None = None
    timeout_seconds: float = 10.0


@dataclass(slots=True)
class UserContextSettings:
    """Actor used by CLI commands when no user is given."""

    user_id: str = "default_user"
    user_name: str = "Default User"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".taskguard.db")
    sqlite_busy_timeout_ms: int = 5_000
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    finance: FinanceSettings = field(default_factory=FinanceSettings)
    health: HealthSettings = field(default_factory=HealthSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    user_context: UserContextSettings = field(default_factory=UserContextSettings)
    pricing_overrides: str = ""

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("TASKGUARD_DB_PATH", ".taskguard.db")),
            sqlite_busy_timeout_ms=int(os.getenv("TASKGUARD_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            scheduler=SchedulerSettings(
                batch_size=int(os.getenv("TASKGUARD_SCHEDULER_BATCH_SIZE", "5")),
                interval_seconds=float(os.getenv("TASKGUARD_SCHEDULER_INTERVAL_SECONDS", "60")),
                max_attempts=int(os.getenv("TASKGUARD_TASK_MAX_ATTEMPTS", "3")),
            ),
            finance=FinanceSettings(
                max_cpa=float(os.getenv("TASKGUARD_FINANCE_MAX_CPA", "50")),
                min_roas=float(os.getenv("TASKGUARD_FINANCE_MIN_ROAS", "2.0")),
                min_ctr=float(os.getenv("TASKGUARD_FINANCE_MIN_CTR", "0.8")),
                max_frequency=float(os.getenv("TASKGUARD_FINANCE_MAX_FREQUENCY", "4.0")),
                stop_loss_min_spend=float(
                    os.getenv("TASKGUARD_FINANCE_STOP_LOSS_MIN_SPEND", "100"),
                ),
            ),
            health=HealthSettings(
                snapshot_threshold=int(os.getenv("TASKGUARD_HEALTH_SNAPSHOT_THRESHOLD", "90")),
                reset_threshold=int(os.getenv("TASKGUARD_HEALTH_RESET_THRESHOLD", "40")),
            ),
            notifications=NotificationSettings(
                enabled=_env_bool("TASKGUARD_NOTIFY_ENABLED", default=True),
                webhook_url=os.getenv("TASKGUARD_NOTIFY_WEBHOOK_URL", "").strip() or None,
                timeout_seconds=float(os.getenv("TASKGUARD_NOTIFY_TIMEOUT_SECONDS", "10")),
            ),
            user_context=UserContextSettings(
                user_id=os.getenv("TASKGUARD_USER_ID", "default_user"),
                user_name=os.getenv("TASKGUARD_USER_NAME", "Default User"),
            ),
            pricing_overrides=os.getenv("TASKGUARD_TASK_PRICING", ""),
        )

    def validate(self) -> None:
        """Raise configuration error for values the scheduler or guards cannot use."""

        if self.scheduler.batch_size <= 0:
            raise ValueError("TASKGUARD_SCHEDULER_BATCH_SIZE must be > 0.")
        if self.scheduler.interval_seconds <= 0:
            raise ValueError("TASKGUARD_SCHEDULER_INTERVAL_SECONDS must be > 0.")
        if self.scheduler.max_attempts <= 0:
            raise ValueError("TASKGUARD_TASK_MAX_ATTEMPTS must be > 0.")
        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("TASKGUARD_SQLITE_BUSY_TIMEOUT_MS must be > 0.")

        finance_limits = {
            "TASKGUARD_FINANCE_MAX_CPA": self.finance.max_cpa,
            "TASKGUARD_FINANCE_MIN_ROAS": self.finance.min_roas,
            "TASKGUARD_FINANCE_MIN_CTR": self.finance.min_ctr,
            "TASKGUARD_FINANCE_MAX_FREQUENCY": self.finance.max_frequency,
        }
        for name, value in finance_limits.items():
            if value <= 0:
                raise ValueError(f"{name} must be > 0.")
        if self.finance.stop_loss_min_spend < 0:
            raise ValueError("TASKGUARD_FINANCE_STOP_LOSS_MIN_SPEND must be >= 0.")

        if not 0 <= self.health.reset_threshold < self.health.snapshot_threshold <= 100:
            raise ValueError(
                "Health thresholds must satisfy 0 <= TASKGUARD_HEALTH_RESET_THRESHOLD "
                "< TASKGUARD_HEALTH_SNAPSHOT_THRESHOLD <= 100.",
            )
        if self.notifications.timeout_seconds <= 0:
            raise ValueError("TASKGUARD_NOTIFY_TIMEOUT_SECONDS must be > 0.")
        if self.notifications.webhook_url is not None and not (
            self.notifications.webhook_url.startswith(("http://", "https://"))
        ):
            raise ValueError(
                f"Invalid TASKGUARD_NOTIFY_WEBHOOK_URL: {self.notifications.webhook_url!r}",
            )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
