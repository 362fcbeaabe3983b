from datetime import time as dtime
from zoneinfo import ZoneInfo

import pytest

from wisdombot.config import (
    RuntimeToggles,
    load_settings,
    load_timezone,
    parse_daily_time,
    parse_id_set,
    parse_int,
    preparation_time,
)


class TestParsing:
    def test_parse_int(self):
        assert parse_int(" 42 ") == 42
        assert parse_int("") is None
        assert parse_int(None) is None
        assert parse_int("forty-two") is None

    def test_parse_id_set_skips_garbage(self):
        assert parse_id_set("1, 2,,x,3") == {1, 2, 3}
        assert parse_id_set(None) == set()

    def test_parse_daily_time(self):
        tz = ZoneInfo("UTC")
        assert parse_daily_time("08:30", tz) == dtime(8, 30, tzinfo=tz)

    def test_parse_daily_time_falls_back(self):
        tz = ZoneInfo("UTC")
        assert parse_daily_time("25:99", tz) == dtime(12, 0, tzinfo=tz)
        assert parse_daily_time("noon", tz) == dtime(12, 0, tzinfo=tz)

    def test_unknown_timezone(self):
        with pytest.raises(RuntimeError, match="tzdata"):
            load_timezone("Mars/Olympus_Mons")


class TestPreparationTime:
    def test_five_minutes_before(self):
        assert preparation_time(dtime(12, 0)) == dtime(11, 55)

    def test_wraps_past_midnight(self):
        assert preparation_time(dtime(0, 3)) == dtime(23, 58)

    def test_keeps_timezone(self):
        tz = ZoneInfo("Europe/Amsterdam")
        assert preparation_time(dtime(9, 0, tzinfo=tz)).tzinfo is tz


class TestLoadSettings:
    def test_reads_environment_mapping(self):
        settings = load_settings(
            {
                "DISCORD_TOKEN": "abc",
                "TZ_NAME": "Europe/Amsterdam",
                "DAILY_MESSAGE_TIME": "00:02",
                "BOT_OWNER_ID": "10",
                "ADMIN_USER_ID": "11",
                "MONITORED_USER_ID": "12",
                "BLACKLISTED_GUILDS": "100,200",
                "LOG_LEVEL": "debug",
            }
        )
        assert settings.token == "abc"
        assert settings.daily_time == dtime(0, 2, tzinfo=settings.timezone)
        assert settings.preparation_time.hour == 23
        assert settings.preparation_time.minute == 57
        assert settings.weekly_nickname_time == dtime(3, 0, tzinfo=settings.timezone)
        assert settings.admin_user_ids() == {10, 11}
        assert settings.monitored_user_id == 12
        assert settings.blacklisted_guilds == {100, 200}
        assert settings.log_level == "DEBUG"

    def test_defaults(self):
        settings = load_settings({})
        assert settings.token is None
        assert settings.tz_name == "UTC"
        assert settings.daily_time.hour == 12
        assert settings.monitored_user_id is None
        assert settings.blacklisted_guilds == set()
        assert settings.admin_user_ids() == set()


def test_runtime_toggles_flip():
    toggles = RuntimeToggles()
    assert toggles.flip("daily_messages_enabled") is False
    assert toggles.daily_messages_enabled is False
    assert toggles.flip("daily_messages_enabled") is True
    assert toggles.owner_dms_enabled is True
