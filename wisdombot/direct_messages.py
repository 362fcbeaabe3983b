import logging
import random
import re
from dataclasses import dataclass

import discord

from wisdombot.nicknames import BattlePolicy, Member, RandomPolicy, UniformPolicy, pick_value
from wisdombot.snacks import DUTCH_SNACKS

logger = logging.getLogger("wisdombot.dm")

SUGGESTION_PREFIX = "change_nickname_"
CUSTOM_ID_LIMIT = 100
USER_ID_RE = re.compile(r"^\d+$")


@dataclass
class DirectMessageResult:
    success: bool = False
    user_found: bool = False
    dm_sent: bool = False
    error: str | None = None
    suggested_value: str | None = None


def suggestion_custom_id(guild_id: int, nickname: str) -> str:
    slug = re.sub(r"\s+", "_", nickname)
    return f"{SUGGESTION_PREFIX}{guild_id}_{slug}"[:CUSTOM_ID_LIMIT]


def parse_suggestion_custom_id(custom_id: str) -> tuple[int, str] | None:
    if not custom_id.startswith(SUGGESTION_PREFIX):
        return None
    guild_part, _, nickname_part = custom_id[len(SUGGESTION_PREFIX):].partition("_")
    if not guild_part.isdigit() or not nickname_part:
        return None
    return int(guild_part), nickname_part.replace("_", " ")


def nickname_instructions(nickname: str) -> str:
    return (
        "**How to change your nickname in Discord:**\n\n"
        "1. Right-click on the server name in the server list\n"
        '2. Select "Change Nickname"\n'
        f"3. Enter: `{nickname}`\n"
        '4. Click "Save"\n\n'
        "Or on mobile:\n"
        "1. Swipe right to open the server list\n"
        "2. Tap on the server\n"
        "3. Tap on the three dots in the top-right\n"
        '4. Tap "Change Nickname"\n'
        f"5. Enter: `{nickname}`\n"
        '6. Tap "Save"'
    )


def suggestion_view(guild_id: int, nickname: str) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(
        discord.ui.Button(
            label=f"Change my nickname to {nickname}"[:80],
            style=discord.ButtonStyle.primary,
            emoji="👑",
            custom_id=suggestion_custom_id(guild_id, nickname),
        )
    )
    return view


async def send_owner_suggestion(guild_id: int, member: Member, nickname: str, trial: bool = False) -> bool:
    """DM a member the nickname they would have received; raises on delivery failure."""
    target = member.source
    if target is None:
        raise RuntimeError(f"No Discord user for {member.describe()}")
    if trial:
        intro = (
            "Hello server owner! This is a test of the nickname suggestion feature.\n"
            f"If this were a real nickname change, I would suggest changing your nickname to: **{nickname}**\n\n"
        )
    else:
        intro = (
            "Hello server owner! I couldn't change your nickname due to Discord permissions, "
            "but to match today's Dutch snack theme, "
            f"you might want to change your nickname to: **{nickname}**\n\n"
        )
    await target.send(
        content=intro + "You can click the button below to get instructions on how to change your nickname, or do it manually.",
        view=suggestion_view(guild_id, nickname),
    )
    logger.info("owner_suggestion_dm_sent guild_id=%s member=%s nickname=%r", guild_id, member.describe(), nickname)
    return True


def trial_suggestion_value(policy_kind: str, rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    if policy_kind == "uniform":
        return pick_value(UniformPolicy(rng.choice(DUTCH_SNACKS)), rng)
    if policy_kind == "battle":
        return pick_value(BattlePolicy(), rng, consume=False)
    return pick_value(RandomPolicy(), rng)


async def send_owner_dm_trial(
    guild: discord.Guild,
    owner_dms_enabled: bool,
    policy_kind: str = "random",
    rng: random.Random | None = None,
) -> DirectMessageResult:
    result = DirectMessageResult()
    owner = guild.owner
    if owner is None:
        try:
            owner = await guild.fetch_member(guild.owner_id)
        except (discord.NotFound, discord.HTTPException):
            result.error = "Could not find server owner"
            return result
    result.user_found = True
    if not owner_dms_enabled:
        result.error = "Owner DMs are disabled in configuration"
        return result
    nickname = trial_suggestion_value(policy_kind, rng)
    result.suggested_value = nickname
    member = Member(member_id=owner.id, rank=0, is_owner=True, display_name=str(owner), source=owner)
    try:
        await send_owner_suggestion(guild.id, member, nickname, trial=True)
    except (discord.Forbidden, discord.HTTPException) as exc:
        result.error = f"Could not send DM: {exc}"
        logger.warning("owner_test_dm_failed guild_id=%s error=%s", guild.id, exc)
        return result
    result.dm_sent = True
    result.success = True
    return result


def dm_embed(message: str) -> discord.Embed:
    embed = discord.Embed(
        title="Message from Dog of Wisdom Bot",
        description=message,
        colour=discord.Colour(0x0099FF),
        timestamp=discord.utils.utcnow(),
    )
    embed.set_footer(text="Sent with wisdom and love 🐶")
    return embed


async def resolve_user(client: discord.Client, identifier: str):
    identifier = identifier.strip()
    if USER_ID_RE.match(identifier):
        try:
            return await client.fetch_user(int(identifier))
        except (discord.NotFound, discord.HTTPException):
            return None
    return discord.utils.find(lambda user: str(user) == identifier, client.users)


async def send_direct_message(
    client: discord.Client,
    identifier: str,
    message: str,
    use_embed: bool = False,
) -> DirectMessageResult:
    result = DirectMessageResult()
    user = await resolve_user(client, identifier)
    if user is None:
        kind = "ID" if USER_ID_RE.match(identifier.strip()) else "tag"
        result.error = f"Could not find user with {kind}: {identifier}"
        logger.info("dm_user_not_found identifier=%r", identifier)
        return result
    result.user_found = True
    try:
        if use_embed:
            await user.send(content="You have received a message:", embed=dm_embed(message))
        else:
            await user.send(content=message)
    except (discord.Forbidden, discord.HTTPException) as exc:
        result.error = f"Could not send DM: {exc}"
        logger.warning("dm_send_failed user_id=%s error=%s", user.id, exc)
        return result
    result.dm_sent = True
    result.success = True
    logger.info("dm_sent user_id=%s embed=%s", user.id, use_embed)
    return result


def truncate(text: str, limit: int = 30) -> str:
    return text if len(text) <= limit else f"{text[:limit]}..."
