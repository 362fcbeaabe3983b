import logging
import random
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import discord

logger = logging.getLogger("wisdombot.channels")

CATEGORY_NAMES = [
    "Wisdom of the Day",
    "Dog Wisdom Central",
    "Today's Enlightenment",
    "Bark of Wisdom",
    "Canine Knowledge",
    "Doggo Insights",
    "Puppy Prophecies",
    "Woof Wisdom",
    "Bork Thoughts",
    "Howling Truths",
    "Paw-sitive Thinking",
    "Tail-wagging Wisdom",
    "Furry Philosophy",
    "Snout Insights",
    "Barking Brilliance",
    "Fetch Your Wisdom",
    "Treat for Thought",
    "Leash on Life",
    "Collar of Knowledge",
    "Kibble Contemplations",
]
CHANNEL_NAMES = [
    "daily-wisdom",
    "wisdom-chat",
    "dog-speaks",
    "listen-here",
    "important-barks",
    "wisdom-drops",
    "pay-attention",
    "bark-of-the-day",
    "heed-this-woof",
    "wisdom-nuggets",
]
NUMBERED_PREFIXES = [
    "wisdom", "daily-wisdom", "bot-wisdom", "random", "daily", "temp", "test",
    "bot-test", "wisdom-bot", "dog-wisdom", "dog-of-wisdom", "wisdom-dog",
    "bot-channel", "channel", "wisdom-message", "message",
    "category", "wisdom-category", "bot-category",
]
BOT_CREATED_PATTERNS = (
    [re.compile(rf"^{re.escape(name)}$") for name in CHANNEL_NAMES]
    + [re.compile(rf"^{re.escape(prefix)}-\d+$") for prefix in NUMBERED_PREFIXES]
    + [re.compile(rf"^{re.escape(name)} #\d+$") for name in CATEGORY_NAMES]
)
BOT_KEYWORDS = ["test", "wisdom", "bot", "dog", "daily", "random", "temp", "bark", "woof", "howl"]
VERY_RECENT = timedelta(hours=1)

TEXT_TYPES = {discord.ChannelType.text, discord.ChannelType.news, discord.ChannelType.forum}
VOICE_TYPES = {discord.ChannelType.voice, discord.ChannelType.stage_voice}


@dataclass
class PreparedChannels:
    category: discord.CategoryChannel
    channel: discord.TextChannel


class ChannelRegistry:
    """Channels prepared ahead of the daily post, keyed by guild id."""

    def __init__(self):
        self._prepared: dict[int, PreparedChannels] = {}

    def set(self, guild_id: int, category, channel):
        self._prepared[guild_id] = PreparedChannels(category=category, channel=channel)

    def get(self, guild_id: int) -> PreparedChannels | None:
        return self._prepared.get(guild_id)

    def discard(self, guild_id: int):
        self._prepared.pop(guild_id, None)

    def __len__(self) -> int:
        return len(self._prepared)


def can_manage_channels(guild: discord.Guild) -> bool:
    me = guild.me
    return me is not None and me.guild_permissions.manage_channels


async def create_random_category(guild: discord.Guild, rng: random.Random | None = None):
    rng = rng or random.Random()
    if not can_manage_channels(guild):
        logger.info("category_create_skipped guild_id=%s reason=missing_permission", guild.id)
        return None
    name = f"{rng.choice(CATEGORY_NAMES)} #{rng.randrange(1000)}"
    try:
        category = await guild.create_category(
            name,
            overwrites={guild.default_role: discord.PermissionOverwrite(view_channel=True)},
            reason="Daily wisdom message category",
        )
    except discord.Forbidden:
        logger.warning("category_create_forbidden guild_id=%s name=%r (role hierarchy?)", guild.id, name)
        return None
    except discord.HTTPException:
        logger.exception("category_create_failed guild_id=%s name=%r", guild.id, name)
        return None
    logger.info("category_created guild_id=%s name=%r", guild.id, name)
    return category


async def create_channel_in_category(guild: discord.Guild, category, rng: random.Random | None = None):
    rng = rng or random.Random()
    if not can_manage_channels(guild):
        logger.info("channel_create_skipped guild_id=%s reason=missing_permission", guild.id)
        return None
    name = rng.choice(CHANNEL_NAMES)
    try:
        channel = await guild.create_text_channel(
            name,
            category=category,
            overwrites={
                guild.default_role: discord.PermissionOverwrite(
                    view_channel=True,
                    send_messages=True,
                    read_message_history=True,
                )
            },
            reason="Daily wisdom message channel",
        )
    except discord.Forbidden:
        logger.warning("channel_create_forbidden guild_id=%s name=%r", guild.id, name)
        return None
    except discord.HTTPException:
        logger.exception("channel_create_failed guild_id=%s name=%r", guild.id, name)
        return None
    logger.info("channel_created guild_id=%s category=%r name=%r", guild.id, category.name, name)
    return channel


async def prepare_guild_channels(guild: discord.Guild, registry: ChannelRegistry, rng: random.Random | None = None) -> bool:
    category = await create_random_category(guild, rng)
    if category is None:
        return False
    channel = await create_channel_in_category(guild, category, rng)
    if channel is None:
        return False
    registry.set(guild.id, category, channel)
    return True


def is_created_by_bot(
    name: str,
    created_at: datetime,
    now: datetime | None = None,
    bot_started_at: datetime | None = None,
) -> bool:
    now = now or datetime.now(timezone.utc)
    if now - created_at < VERY_RECENT:
        return True
    matches = any(pattern.match(name) for pattern in BOT_CREATED_PATTERNS)
    if matches:
        return True
    if bot_started_at is not None and created_at > bot_started_at:
        lowered = name.lower()
        return any(keyword in lowered for keyword in BOT_KEYWORDS)
    return False


def meets_age(created_at: datetime, now: datetime, days: float, delete_older: bool) -> bool:
    age = now - created_at
    if delete_older:
        return age > timedelta(days=days)
    return age < timedelta(days=days)


def matches_channel_type(channel_type: discord.ChannelType, wanted: str) -> bool:
    if wanted == "text":
        return channel_type in TEXT_TYPES
    if wanted == "voice":
        return channel_type in VOICE_TYPES
    return True


@dataclass
class CleanupStats:
    channels_deleted: int = 0
    categories_deleted: int = 0
    errors: int = 0
    skipped: int = 0


async def cleanup_channels(
    guilds,
    days: float = 7,
    delete_older: bool = True,
    channel_type: str = "all",
    bot_created_only: bool = True,
    bot_started_at: datetime | None = None,
    now: datetime | None = None,
) -> CleanupStats:
    """Delete throwaway channels (and then empty categories) by age and name."""
    now = now or datetime.now(timezone.utc)
    stats = CleanupStats()
    direction = "old" if delete_older else "new"
    for guild in guilds:
        try:
            channels = await guild.fetch_channels()
        except discord.HTTPException:
            logger.exception("cleanup_fetch_failed guild_id=%s", guild.id)
            stats.errors += 1
            continue
        categories = [c for c in channels if c.type == discord.ChannelType.category]
        deleted_ids: set[int] = set()
        for channel in channels:
            if channel.type == discord.ChannelType.category:
                continue
            if not matches_channel_type(channel.type, channel_type):
                continue
            age_ok = meets_age(channel.created_at, now, days, delete_older)
            bot_ok = not bot_created_only or is_created_by_bot(channel.name, channel.created_at, now, bot_started_at)
            if not (age_ok and bot_ok):
                stats.skipped += 1
                continue
            try:
                await channel.delete(reason=f"Automatic cleanup of {direction} channels")
            except discord.HTTPException as exc:
                logger.warning("cleanup_channel_failed guild_id=%s channel=%r error=%s", guild.id, channel.name, exc)
                stats.errors += 1
                continue
            deleted_ids.add(channel.id)
            stats.channels_deleted += 1
            logger.info("cleanup_channel_deleted guild_id=%s channel=%r", guild.id, channel.name)
        if channel_type != "all":
            continue
        for category in categories:
            remaining = [
                c for c in channels
                if getattr(c, "category_id", None) == category.id and c.id not in deleted_ids
            ]
            age_ok = meets_age(category.created_at, now, days, delete_older)
            bot_ok = not bot_created_only or is_created_by_bot(category.name, category.created_at, now, bot_started_at)
            if remaining or not (age_ok and bot_ok):
                stats.skipped += 1
                continue
            try:
                await category.delete(reason=f"Automatic cleanup of {direction} categories")
            except discord.HTTPException as exc:
                logger.warning("cleanup_category_failed guild_id=%s category=%r error=%s", guild.id, category.name, exc)
                stats.errors += 1
                continue
            stats.categories_deleted += 1
            logger.info("cleanup_category_deleted guild_id=%s category=%r", guild.id, category.name)
    logger.info(
        "cleanup_done channels=%s categories=%s errors=%s skipped=%s",
        stats.channels_deleted,
        stats.categories_deleted,
        stats.errors,
        stats.skipped,
    )
    return stats
