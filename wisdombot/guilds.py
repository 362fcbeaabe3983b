import logging
import random

import discord

from wisdombot.config import RuntimeToggles, Settings
from wisdombot.direct_messages import send_owner_suggestion
from wisdombot.monitor import MonitorOutcome, NicknameMonitor
from wisdombot.nicknames import (
    BatchOptions,
    BatchResult,
    LogSinkFn,
    Member,
    MemberSourceError,
    MutationPolicy,
    run_batch,
)

logger = logging.getLogger("wisdombot.guilds")


def to_member(member: discord.Member) -> Member:
    return Member(
        member_id=member.id,
        rank=member.top_role.position,
        is_bot=member.bot,
        is_owner=member.guild.owner_id == member.id,
        display_name=str(member),
        source=member,
    )


def can_manage_nicknames(guild: discord.Guild) -> bool:
    me = guild.me
    return me is not None and me.guild_permissions.manage_nicknames


async def set_nickname(member: Member, value: str, reason: str):
    target = member.source
    if target is None:
        raise RuntimeError(f"No Discord member for {member.describe()}")
    await target.edit(nick=value, reason=reason)


async def guild_members(guild: discord.Guild) -> list[Member]:
    if not guild.chunked:
        await guild.chunk()
    return [to_member(member) for member in guild.members]


async def run_guild_batch(
    guild: discord.Guild,
    settings: Settings,
    toggles: RuntimeToggles,
    forced_policy: MutationPolicy | None = None,
    log_sink: LogSinkFn | None = None,
    rng: random.Random | None = None,
) -> BatchResult:
    """Run one nickname batch for a live guild; raises MemberSourceError if members cannot be read."""
    me = guild.me
    if me is None:
        raise MemberSourceError(f"Bot member not available in guild {guild.id}")
    options = BatchOptions(
        guild_id=guild.id,
        blacklist=settings.blacklisted_guilds,
        permission_granted=can_manage_nicknames(guild),
        forced_policy=forced_policy,
        owner_id=guild.owner_id,
        owner_escalation_enabled=toggles.owner_dms_enabled,
    )

    async def notify(member: Member, value: str):
        return await send_owner_suggestion(guild.id, member, value)

    return await run_batch(
        lambda: guild_members(guild),
        to_member(me),
        me.top_role.position,
        options,
        mutate=set_nickname,
        notify=notify,
        rng=rng,
        log_sink=log_sink,
    )


async def handle_member_update(
    monitor: NicknameMonitor,
    before: discord.Member,
    after: discord.Member,
    main_channel_id: int | None = None,
    log_sink: LogSinkFn | None = None,
) -> MonitorOutcome:
    guild = after.guild
    me = guild.me

    async def announce(text: str):
        if main_channel_id is None:
            raise RuntimeError("No main channel configured")
        channel = guild.get_channel(main_channel_id)
        if channel is None or not isinstance(channel, discord.abc.Messageable):
            raise RuntimeError("Channel not found or not text-based")
        if not channel.permissions_for(me).send_messages:
            raise RuntimeError("No permission to send messages")
        await channel.send(text)

    return await monitor.on_member_update(
        to_member(after),
        before.nick,
        after.nick,
        guild_id=guild.id,
        permission_granted=can_manage_nicknames(guild),
        self_rank=me.top_role.position if me is not None else 0,
        mutate=set_nickname,
        announce=announce,
        log_sink=log_sink,
    )
