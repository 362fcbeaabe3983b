import logging
import random

import discord

from wisdombot.channels import ChannelRegistry

logger = logging.getLogger("wisdombot.wisdom")

SYLLABLES = [
    "ba", "da", "ga", "ha", "pa", "ma", "wa",
    "bo", "do", "go", "ho", "po", "mo", "wo",
    "bu", "du", "gu", "hu", "pu", "mu", "wu",
]
COMMON_PATTERNS = [
    "ha ba da ga da",
    "ba da ba da",
    "ha ba da",
    "pa pa pa",
    "da ba dee da",
    "buh buh",
    "haba daba",
    "woof",
]


def repeated_syllable(rng: random.Random) -> str:
    syllable = rng.choice(SYLLABLES)
    return " ".join([syllable] * rng.randint(2, 4))


def generate_wisdom_message(rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    roll = rng.random()
    if roll < 0.3:
        return rng.choice(COMMON_PATTERNS)
    if roll < 0.5:
        return repeated_syllable(rng)
    words = []
    for _ in range(rng.randint(2, 5)):
        words.append("".join(rng.choice(SYLLABLES) for _ in range(rng.randint(1, 3))))
    return " ".join(words)


def pick_fallback_channel(guild: discord.Guild, rng: random.Random):
    writable = [
        channel
        for channel in guild.text_channels
        if channel.permissions_for(guild.me).send_messages
    ]
    return rng.choice(writable) if writable else None


async def send_daily_message(
    guild: discord.Guild,
    registry: ChannelRegistry,
    rng: random.Random | None = None,
) -> discord.Message | None:
    """Post one wisdom message in the prepared channel (or any writable one) pinging a random human."""
    rng = rng or random.Random()
    prepared = registry.get(guild.id)
    target = prepared.channel if prepared is not None else pick_fallback_channel(guild, rng)
    if target is None:
        logger.info("daily_message_skipped guild_id=%s reason=no_channel", guild.id)
        return None
    humans = [member for member in guild.members if not member.bot]
    if not humans:
        logger.info("daily_message_skipped guild_id=%s reason=no_humans", guild.id)
        return None
    member = rng.choice(humans)
    text = generate_wisdom_message(rng)
    registry.discard(guild.id)
    message = await target.send(f"{text} <@{member.id}>")
    logger.info(
        "daily_message_sent guild_id=%s channel_id=%s prepared=%s member_id=%s text=%r",
        guild.id,
        target.id,
        prepared is not None,
        member.id,
        text,
    )
    return message
