import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, time as dtime, timedelta
from typing import Mapping

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

logger = logging.getLogger("wisdombot.config")

DEFAULT_DAILY_TIME = "12:00"
PREPARATION_LEAD_MINUTES = 5
WEEKLY_NICKNAME_WEEKDAY = 0  # Monday
WEEKLY_NICKNAME_TIME = dtime(hour=3, minute=0)


def parse_int(value: str | None, name: str = "value") -> int | None:
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError:
        logger.warning("config_invalid_int name=%s value=%r", name, value)
        return None


def parse_id_set(value: str | None) -> set[int]:
    ids: set[int] = set()
    for part in (value or "").split(","):
        parsed = parse_int(part, "BLACKLISTED_GUILDS")
        if parsed is not None:
            ids.add(parsed)
    return ids


def load_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as e:
        raise RuntimeError(
            f"ZoneInfo timezone '{name}' not found. On Windows, install tzdata:\n"
            f"  python -m pip install tzdata\n"
            f"Then restart."
        ) from e


def parse_daily_time(value: str, tz: ZoneInfo) -> dtime:
    try:
        hour_text, minute_text = value.strip().split(":")
        parsed = dtime(hour=int(hour_text), minute=int(minute_text), tzinfo=tz)
    except ValueError:
        logger.warning("config_invalid_time value=%r fallback=%s", value, DEFAULT_DAILY_TIME)
        return parse_daily_time(DEFAULT_DAILY_TIME, tz)
    return parsed


def preparation_time(daily_time: dtime, lead_minutes: int = PREPARATION_LEAD_MINUTES) -> dtime:
    """The time ``lead_minutes`` before ``daily_time``, wrapping across midnight."""
    anchor = datetime(2000, 1, 2, daily_time.hour, daily_time.minute)
    shifted = anchor - timedelta(minutes=lead_minutes)
    return dtime(hour=shifted.hour, minute=shifted.minute, tzinfo=daily_time.tzinfo)


@dataclass
class Settings:
    token: str | None
    tz_name: str
    timezone: ZoneInfo
    daily_time: dtime
    admin_role_id: int | None = None
    bot_owner_id: int | None = None
    admin_user_id: int | None = None
    log_channel_id: int | None = None
    main_channel_id: int | None = None
    monitored_user_id: int | None = None
    blacklisted_guilds: set[int] = field(default_factory=set)
    log_level: str = "INFO"

    @property
    def preparation_time(self) -> dtime:
        return preparation_time(self.daily_time)

    @property
    def weekly_nickname_time(self) -> dtime:
        return WEEKLY_NICKNAME_TIME.replace(tzinfo=self.timezone)

    def admin_user_ids(self) -> set[int]:
        return {uid for uid in (self.bot_owner_id, self.admin_user_id) if uid is not None}


@dataclass
class RuntimeToggles:
    daily_messages_enabled: bool = True
    nickname_changes_enabled: bool = True
    owner_dms_enabled: bool = True

    def flip(self, name: str) -> bool:
        value = not getattr(self, name)
        setattr(self, name, value)
        return value


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    if env is None:
        load_dotenv()  # loads variables from .env into the process environment
        env = os.environ
    tz_name = (env.get("TZ_NAME") or "UTC").strip() or "UTC"
    tz = load_timezone(tz_name)
    return Settings(
        token=env.get("DISCORD_TOKEN") or None,
        tz_name=tz_name,
        timezone=tz,
        daily_time=parse_daily_time(env.get("DAILY_MESSAGE_TIME") or DEFAULT_DAILY_TIME, tz),
        admin_role_id=parse_int(env.get("ADMIN_ROLE_ID"), "ADMIN_ROLE_ID"),
        bot_owner_id=parse_int(env.get("BOT_OWNER_ID"), "BOT_OWNER_ID"),
        admin_user_id=parse_int(env.get("ADMIN_USER_ID"), "ADMIN_USER_ID"),
        log_channel_id=parse_int(env.get("LOG_CHANNEL_ID"), "LOG_CHANNEL_ID"),
        main_channel_id=parse_int(env.get("MAIN_CHANNEL_ID"), "MAIN_CHANNEL_ID"),
        monitored_user_id=parse_int(env.get("MONITORED_USER_ID"), "MONITORED_USER_ID"),
        blacklisted_guilds=parse_id_set(env.get("BLACKLISTED_GUILDS")),
        log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper() or "INFO",
    )
