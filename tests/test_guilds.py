import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from tests.conftest import ScriptedRandom
from wisdombot.config import RuntimeToggles, load_settings
from wisdombot.guilds import can_manage_nicknames, handle_member_update, run_guild_batch, to_member
from wisdombot.monitor import NUH_UH, NicknameMonitor
from wisdombot.nicknames import MemberSourceError, UniformPolicy


def fake_member(member_id, position, guild, bot=False, nick=None):
    return SimpleNamespace(
        id=member_id,
        bot=bot,
        nick=nick,
        guild=guild,
        top_role=SimpleNamespace(position=position),
        edit=AsyncMock(),
        send=AsyncMock(),
    )


def fake_guild(manage_nicknames=True, owner_id=None):
    guild = SimpleNamespace(id=9, owner_id=owner_id, chunked=True, chunk=AsyncMock(), members=[])
    guild.me = fake_member(1, 5, guild, bot=True)
    guild.me.guild_permissions = SimpleNamespace(manage_nicknames=manage_nicknames)
    return guild


class TestToMember:
    def test_maps_discord_member(self):
        guild = fake_guild(owner_id=3)
        member = to_member(fake_member(3, 8, guild))
        assert member.member_id == 3
        assert member.rank == 8
        assert member.is_owner is True
        assert member.source is not None

    def test_permission_check(self):
        assert can_manage_nicknames(fake_guild())
        assert not can_manage_nicknames(fake_guild(manage_nicknames=False))


class TestRunGuildBatch:
    def test_renames_members_below_the_bot(self):
        guild = fake_guild(owner_id=99)
        low = fake_member(2, 1, guild)
        high = fake_member(3, 9, guild)
        guild.members = [guild.me, low, high]

        result = asyncio.run(
            run_guild_batch(guild, load_settings({}), RuntimeToggles(), forced_policy=UniformPolicy("kroket"))
        )

        assert (result.applied, result.failed, result.skipped) == (2, 0, 1)
        low.edit.assert_awaited_once()
        assert low.edit.await_args.kwargs["nick"] == "kroket"
        high.edit.assert_not_awaited()

    def test_chunks_uncached_guild(self):
        guild = fake_guild()
        guild.chunked = False
        guild.members = [guild.me]
        asyncio.run(run_guild_batch(guild, load_settings({}), RuntimeToggles(), rng=ScriptedRandom([0.5])))
        guild.chunk.assert_awaited_once()

    def test_blacklisted_guild(self):
        guild = fake_guild()
        settings = load_settings({"BLACKLISTED_GUILDS": "9"})
        result = asyncio.run(run_guild_batch(guild, settings, RuntimeToggles()))
        assert result.errors == ["Guild 9 is blacklisted"]
        guild.me.edit.assert_not_awaited()

    def test_missing_bot_member(self):
        guild = fake_guild()
        guild.me = None
        with pytest.raises(MemberSourceError):
            asyncio.run(run_guild_batch(guild, load_settings({}), RuntimeToggles()))


class TestHandleMemberUpdate:
    def test_reverts_and_posts_in_main_channel(self):
        guild = fake_guild()
        channel = MagicMock(spec=discord.TextChannel)
        channel.send = AsyncMock()
        channel.permissions_for.return_value = SimpleNamespace(send_messages=True)
        guild.get_channel = lambda channel_id: channel if channel_id == 50 else None
        before = fake_member(42, 1, guild, nick="kroket")
        after = fake_member(42, 1, guild, nick="not a snack")
        monitor = NicknameMonitor(42, pool=("bitterbal",))

        outcome = asyncio.run(handle_member_update(monitor, before, after, main_channel_id=50))

        assert outcome.status == "reverted"
        assert outcome.message_sent is True
        after.edit.assert_awaited_once()
        assert after.edit.await_args.kwargs["nick"] == "bitterbal"
        channel.send.assert_awaited_once_with(NUH_UH)

    def test_missing_main_channel(self):
        guild = fake_guild()
        guild.get_channel = lambda channel_id: None
        before = fake_member(42, 1, guild, nick="kroket")
        after = fake_member(42, 1, guild, nick="not a snack")

        outcome = asyncio.run(handle_member_update(NicknameMonitor(42), before, after, main_channel_id=50))

        assert outcome.status == "reverted"
        assert outcome.message_error == "Channel not found or not text-based"
