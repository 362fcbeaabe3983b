import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord

from wisdombot.logs import LOG_COLOURS, DiscordLogSink, build_log_embed, interaction_log_context


def test_build_log_embed_skips_empty_fields():
    embed = build_log_embed("done", "nicknames", {"Applied": 3, "Group Snack": None, "Battle": ""})
    assert embed.title == "NICKNAMES Log"
    assert embed.colour.value == LOG_COLOURS["nicknames"]
    assert [field.name for field in embed.fields] == ["Applied"]
    assert embed.fields[0].value == "3"


def test_interaction_log_context_tolerates_missing_parts():
    interaction = SimpleNamespace(guild=None, channel=SimpleNamespace(id=5), user=SimpleNamespace(id=6), command=None)
    assert interaction_log_context(interaction) == {
        "guild_id": None,
        "channel_id": 5,
        "user_id": 6,
        "interaction": None,
    }


class TestDiscordLogSink:
    def test_disabled_without_channel(self):
        sink = DiscordLogSink(MagicMock(), None)
        assert sink.enabled is False
        assert asyncio.run(sink.log("hello")) is False

    def test_sends_embed_to_cached_channel(self):
        channel = SimpleNamespace(send=AsyncMock())
        client = SimpleNamespace(get_channel=lambda channel_id: channel, fetch_channel=AsyncMock())

        assert asyncio.run(DiscordLogSink(client, 77)("hello", "startup", {"Guilds": 2})) is True

        embed = channel.send.await_args.kwargs["embed"]
        assert embed.description == "hello"
        client.fetch_channel.assert_not_awaited()

    def test_send_failure_returns_false(self):
        response = SimpleNamespace(status=403, reason="Forbidden")
        channel = SimpleNamespace(send=AsyncMock(side_effect=discord.Forbidden(response, "Missing Access")))
        client = SimpleNamespace(get_channel=lambda channel_id: channel, fetch_channel=AsyncMock())
        assert asyncio.run(DiscordLogSink(client, 77).log("hello")) is False

    def test_unknown_channel_returns_false(self):
        response = SimpleNamespace(status=404, reason="Not Found")
        client = SimpleNamespace(
            get_channel=lambda channel_id: None,
            fetch_channel=AsyncMock(side_effect=discord.NotFound(response, "Unknown Channel")),
        )
        assert asyncio.run(DiscordLogSink(client, 77).log("hello")) is False
