"""
Centralized configuration with environment variable overrides.

Business details, operator allow-list, timing windows and transport
settings are configurable here. Nothing is hardcoded in store or
dispatcher logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from repairdesk.logging_context import install_event_filter

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_id_list(env_var: str, default: str = "") -> tuple[int, ...]:
    """Parse a comma-separated list of integer user ids."""
    raw = os.getenv(env_var, default)
    ids = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            ids.append(int(chunk))
        except ValueError:
            raise ValueError(
                f"Invalid user id in {env_var}: {chunk!r}"
            ) from None
    return tuple(ids)


@dataclass(frozen=True)
class BusinessConfig:
    """Business-specific settings loaded from environment or defaults."""

    name: str = os.getenv("BUSINESS_NAME", "PC Repair Desk")
    phone: str = os.getenv("BUSINESS_PHONE", "+7 (495) 000-00-00")
    email: str = os.getenv("BUSINESS_EMAIL", "support@pcrepair.example")
    address: str = os.getenv("BUSINESS_ADDRESS", "1 Primernaya St, Moscow")
    hours_weekday: str = os.getenv("BUSINESS_HOURS_WEEKDAY", "Mon-Fri 9:00 - 20:00")
    hours_weekend: str = os.getenv("BUSINESS_HOURS_WEEKEND", "Sat-Sun 10:00 - 18:00")
    currency: str = os.getenv("CURRENCY_SYMBOL", "₽")
    timezone: str = os.getenv("BUSINESS_TIMEZONE", "Europe/Moscow")


@dataclass(frozen=True)
class BotConfig:
    """Messaging transport settings and the operator allow-list."""

    telegram_token: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    operator_ids: tuple[int, ...] = _safe_id_list("OPERATOR_IDS")
    notify_timeout_sec: float = _safe_float("NOTIFY_TIMEOUT", "10.0")
    max_message_length: int = _safe_int("MAX_MESSAGE_LENGTH", "4096")


@dataclass(frozen=True)
class TimingConfig:
    """Rate-limit window, reminder lead times and conversation expiry."""

    rate_limit_window_sec: float = _safe_float("RATE_LIMIT_WINDOW", "2.0")
    reminder_delay_hours: float = _safe_float("REMINDER_DELAY_HOURS", "24")
    pre_schedule_lead_hours: float = _safe_float("PRE_SCHEDULE_LEAD_HOURS", "2")
    conversation_ttl_sec: int = _safe_int("CONVERSATION_TTL", "3600")
    scheduler_poll_sec: float = _safe_float("SCHEDULER_POLL_INTERVAL", "1.0")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    bot: BotConfig = field(default_factory=BotConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    bot_name: str = os.getenv("BOT_NAME", "repair-desk")

    def is_operator(self, user_id: int) -> bool:
        """Check a user against the static operator allow-list."""
        return user_id in self.bot.operator_ids


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.timing.rate_limit_window_sec <= 0:
        raise ValueError(
            f"RATE_LIMIT_WINDOW must be > 0, got {config.timing.rate_limit_window_sec}"
        )
    if config.timing.reminder_delay_hours <= 0:
        raise ValueError(
            f"REMINDER_DELAY_HOURS must be > 0, got {config.timing.reminder_delay_hours}"
        )
    if config.timing.pre_schedule_lead_hours < 0:
        raise ValueError(
            "PRE_SCHEDULE_LEAD_HOURS must be >= 0, "
            f"got {config.timing.pre_schedule_lead_hours}"
        )
    if config.timing.conversation_ttl_sec < 1:
        raise ValueError(
            f"CONVERSATION_TTL must be >= 1, got {config.timing.conversation_ttl_sec}"
        )
    if config.timing.scheduler_poll_sec <= 0:
        raise ValueError(
            f"SCHEDULER_POLL_INTERVAL must be > 0, got {config.timing.scheduler_poll_sec}"
        )
    if config.bot.notify_timeout_sec <= 0:
        raise ValueError(
            f"NOTIFY_TIMEOUT must be > 0, got {config.bot.notify_timeout_sec}"
        )
    if config.bot.max_message_length < 64:
        raise ValueError(
            f"MAX_MESSAGE_LENGTH must be >= 64, got {config.bot.max_message_length}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] [chat=%(conversation_id)s user=%(user_id)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    install_event_filter(logging.getLogger().handlers)
    if not config.bot.operator_ids:
        logger.warning("OPERATOR_IDS is empty; the operator panel is unreachable")
    logger.info("Configuration loaded for '%s'", config.business.name)
    return config


# Singleton instance
settings = load_config()
