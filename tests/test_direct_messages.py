import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import discord

from tests.conftest import ScriptedRandom
from wisdombot.direct_messages import (
    CUSTOM_ID_LIMIT,
    nickname_instructions,
    parse_suggestion_custom_id,
    send_direct_message,
    send_owner_dm_trial,
    suggestion_custom_id,
    trial_suggestion_value,
    truncate,
)
from wisdombot.snacks import BATTLE_CHOICE_A, BATTLE_CHOICE_B, DUTCH_SNACKS


def forbidden() -> discord.Forbidden:
    return discord.Forbidden(SimpleNamespace(status=403, reason="Forbidden"), "Cannot send messages to this user")


class TestSuggestionButton:
    def test_custom_id_round_trip(self):
        custom_id = suggestion_custom_id(123, "frikandel speciaal")
        assert custom_id == "change_nickname_123_frikandel_speciaal"
        assert parse_suggestion_custom_id(custom_id) == (123, "frikandel speciaal")

    def test_custom_id_is_capped(self):
        assert len(suggestion_custom_id(1, "x" * 200)) == CUSTOM_ID_LIMIT

    def test_foreign_custom_ids_are_ignored(self):
        assert parse_suggestion_custom_id("music_skip") is None
        assert parse_suggestion_custom_id("change_nickname_abc_kroket") is None
        assert parse_suggestion_custom_id("change_nickname_123_") is None

    def test_instructions_mention_nickname_twice(self):
        assert nickname_instructions("kroket").count("`kroket`") == 2


class TestTrialSuggestion:
    def test_values_per_policy(self):
        assert trial_suggestion_value("uniform", ScriptedRandom()) in DUTCH_SNACKS
        assert trial_suggestion_value("random", ScriptedRandom()) in DUTCH_SNACKS
        assert trial_suggestion_value("battle", ScriptedRandom()) in {BATTLE_CHOICE_A, BATTLE_CHOICE_B}

    def test_sends_owner_dm(self):
        owner = SimpleNamespace(id=5, send=AsyncMock())
        guild = SimpleNamespace(id=9, owner=owner, owner_id=5)

        result = asyncio.run(send_owner_dm_trial(guild, True, "uniform", ScriptedRandom()))

        assert result.success and result.dm_sent and result.user_found
        assert result.suggested_value in DUTCH_SNACKS
        kwargs = owner.send.await_args.kwargs
        assert "test of the nickname suggestion feature" in kwargs["content"]
        assert kwargs["view"].children[0].custom_id == suggestion_custom_id(9, result.suggested_value)

    def test_disabled_owner_dms(self):
        owner = SimpleNamespace(id=5, send=AsyncMock())
        result = asyncio.run(send_owner_dm_trial(SimpleNamespace(id=9, owner=owner, owner_id=5), False))
        assert result.user_found is True
        assert result.success is False
        assert result.error == "Owner DMs are disabled in configuration"
        owner.send.assert_not_awaited()

    def test_closed_dms(self):
        owner = SimpleNamespace(id=5, send=AsyncMock(side_effect=forbidden()))
        result = asyncio.run(send_owner_dm_trial(SimpleNamespace(id=9, owner=owner, owner_id=5), True))
        assert result.dm_sent is False
        assert result.error.startswith("Could not send DM")


class TestSendDirectMessage:
    def make_client(self, user=None):
        return SimpleNamespace(fetch_user=AsyncMock(return_value=user), users=[user] if user else [])

    def test_by_id_plain_text(self):
        user = SimpleNamespace(id=5, send=AsyncMock())
        result = asyncio.run(send_direct_message(self.make_client(user), "5", "woof"))
        assert result.success is True
        user.send.assert_awaited_once_with(content="woof")

    def test_by_tag_with_embed(self):
        class User(SimpleNamespace):
            def __str__(self):
                return "doggo#0001"

        user = User(id=5, send=AsyncMock())
        result = asyncio.run(send_direct_message(self.make_client(user), "doggo#0001", "woof", use_embed=True))

        assert result.success is True
        assert user.send.await_args.kwargs["embed"].description == "woof"

    def test_unknown_user(self):
        client = SimpleNamespace(fetch_user=AsyncMock(side_effect=discord.NotFound(SimpleNamespace(status=404, reason="Not Found"), "Unknown User")), users=[])
        result = asyncio.run(send_direct_message(client, "5", "woof"))
        assert result.user_found is False
        assert result.error == "Could not find user with ID: 5"

    def test_closed_dms(self):
        user = SimpleNamespace(id=5, send=AsyncMock(side_effect=forbidden()))
        result = asyncio.run(send_direct_message(self.make_client(user), "5", "woof"))
        assert result.user_found is True
        assert result.dm_sent is False


def test_truncate():
    assert truncate("short") == "short"
    assert truncate("x" * 40) == "x" * 30 + "..."
