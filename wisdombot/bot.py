import asyncio
import logging
import random
from datetime import datetime, timezone

import discord
from discord.ext import commands, tasks

from wisdombot.channels import ChannelRegistry, cleanup_channels, prepare_guild_channels
from wisdombot.config import WEEKLY_NICKNAME_WEEKDAY, RuntimeToggles, load_settings
from wisdombot.direct_messages import (
    nickname_instructions,
    parse_suggestion_custom_id,
    send_direct_message,
    send_owner_dm_trial,
    truncate,
)
from wisdombot.guilds import handle_member_update, run_guild_batch
from wisdombot.logs import (
    DiscordLogSink,
    configure_logging,
    interaction_log_context,
    register_loop_exception_handler,
)
from wisdombot.monitor import NicknameMonitor
from wisdombot.music import (
    FETCH_TRACK_INFO_TIMEOUT_SECONDS,
    LOOP_MODES,
    MusicRegistry,
    cycle_loop_mode,
    describe_now_playing,
    describe_queue,
    fetch_tracks,
    format_duration,
    play_next_track,
    search_source,
    set_volume,
)
from wisdombot.nicknames import BattlePolicy, MemberSourceError, UniformPolicy, format_batch_summary
from wisdombot.snacks import DUTCH_SNACKS
from wisdombot.wisdom import send_daily_message

# =========================
# CONFIG
# =========================
SETTINGS = load_settings()
configure_logging(SETTINGS.log_level)
logger = logging.getLogger("wisdombot")
TOGGLES = RuntimeToggles()
GAMES = ["Minecraft", "Repo", "Lethal Company"]
STATUSES = [
    (discord.ActivityType.watching, "for wisdom seekers"),
    (discord.ActivityType.watching, "the universe unfold"),
    (discord.ActivityType.watching, "dogs of wisdom"),
    (discord.ActivityType.listening, "ba ha da ga da"),
    (discord.ActivityType.listening, "the sounds of wisdom"),
    (discord.ActivityType.playing, "with ancient knowledge"),
    (discord.ActivityType.playing, "fetch with wisdom bones"),
    (discord.ActivityType.competing, "wisdom contests"),
]
NO_PERMISSION = "❌ You don't have permission to use this command. You need the admin role."
# =========================
# DISCORD SETUP
# =========================
intents = discord.Intents.default()
intents.members = True  # needed for nickname batches and the nickname monitor
intents.message_content = True  # needed for prefix commands and message logging
intents.voice_states = True  # needed for music playback
bot = commands.Bot(command_prefix="!", intents=intents, help_command=None)
LOG_SINK = DiscordLogSink(bot, SETTINGS.log_channel_id)
CHANNELS = ChannelRegistry()
MUSIC = MusicRegistry()
MONITOR = NicknameMonitor(SETTINGS.monitored_user_id, SETTINGS.blacklisted_guilds)
bot_started_at: datetime | None = None


def is_admin(user: discord.abc.User) -> bool:
    if user.id in SETTINGS.admin_user_ids():
        return True
    roles = getattr(user, "roles", None)
    if roles is None:
        return False
    if SETTINGS.admin_role_id is None:
        permissions = getattr(user, "guild_permissions", None)
        return bool(permissions and permissions.administrator)
    return any(role.id == SETTINGS.admin_role_id for role in roles)


async def require_admin(interaction: discord.Interaction) -> bool:
    if is_admin(interaction.user):
        return True
    await interaction.response.send_message(NO_PERMISSION, ephemeral=True)
    return False


def random_status() -> discord.Activity:
    activity_type, name = random.choice(STATUSES)
    return discord.Activity(type=activity_type, name=name)


# =========================
# SCHEDULED JOBS
# =========================
async def prepare_categories():
    for guild in bot.guilds:
        try:
            prepared = await prepare_guild_channels(guild, CHANNELS)
        except discord.HTTPException:
            logger.exception("prepare_categories_failed guild_id=%s", guild.id)
            continue
        logger.info("prepare_categories guild_id=%s prepared=%s", guild.id, prepared)


async def send_daily_messages():
    for guild in bot.guilds:
        try:
            await send_daily_message(guild, CHANNELS)
        except (discord.Forbidden, discord.NotFound, discord.HTTPException):
            logger.exception("daily_message_failed guild_id=%s", guild.id)
            continue


async def change_all_nicknames():
    for guild in bot.guilds:
        try:
            result = await run_guild_batch(guild, SETTINGS, TOGGLES, log_sink=LOG_SINK)
        except (MemberSourceError, discord.HTTPException):
            logger.exception("weekly_nicknames_failed guild_id=%s", guild.id)
            continue
        logger.info(
            "weekly_nicknames guild_id=%s applied=%s failed=%s skipped=%s policy=%s",
            guild.id,
            result.applied,
            result.failed,
            result.skipped,
            result.policy_kind,
        )


@tasks.loop(time=SETTINGS.preparation_time)
async def category_preparation():
    if not TOGGLES.daily_messages_enabled:
        logger.info("prepare_categories_skipped reason=daily_disabled")
        return
    await prepare_categories()


@tasks.loop(time=SETTINGS.daily_time)
async def daily_wisdom():
    if not TOGGLES.daily_messages_enabled:
        logger.info("daily_message_skipped reason=daily_disabled")
        return
    await send_daily_messages()


@tasks.loop(time=SETTINGS.weekly_nickname_time)
async def weekly_nicknames():
    if datetime.now(SETTINGS.timezone).weekday() != WEEKLY_NICKNAME_WEEKDAY:
        return
    if not TOGGLES.nickname_changes_enabled:
        logger.info("weekly_nicknames_skipped reason=disabled")
        return
    await change_all_nicknames()


@tasks.loop(hours=1)
async def rotate_status():
    activity = random_status()
    await bot.change_presence(activity=activity)
    logger.info("status_set type=%s name=%s", activity.type.name, activity.name)


# =========================
# EVENTS
# =========================
@bot.event
async def on_message(message: discord.Message):
    if message.author.bot:
        return
    is_dm = message.guild is None
    mentioned = bot.user is not None and bot.user in message.mentions
    if is_dm or mentioned:
        location = "DM" if is_dm else f"#{message.channel.name} in {message.guild.name}"
        content = truncate(message.content, 100)
        await LOG_SINK.log(
            f"Received message from {message.author} in {location}: {content}",
            "dm-received" if is_dm else "message-received",
            {
                "User": f"{message.author} ({message.author.id})",
                "Location": location,
                "Content": content,
                "Attachments": f"{len(message.attachments)} attachment(s)" if message.attachments else "None",
            },
        )
    await bot.process_commands(message)


@bot.event
async def on_member_update(before: discord.Member, after: discord.Member):
    try:
        await handle_member_update(MONITOR, before, after, SETTINGS.main_channel_id, LOG_SINK)
    except discord.HTTPException:
        logger.exception("nickname_monitor_error member_id=%s", after.id)


@bot.event
async def on_interaction(interaction: discord.Interaction):
    if interaction.type == discord.InteractionType.component:
        custom_id = str((interaction.data or {}).get("custom_id", ""))
        parsed = parse_suggestion_custom_id(custom_id)
        if parsed is not None:
            _, nickname = parsed
            try:
                await interaction.response.send_message(nickname_instructions(nickname), ephemeral=True)
            except (discord.Forbidden, discord.HTTPException):
                logger.exception("nickname_button_reply_failed user_id=%s", getattr(interaction.user, "id", None))
                return
            logger.info("nickname_instructions_sent user_id=%s nickname=%r", interaction.user.id, nickname)
            return
    await bot.process_application_commands(interaction)


@bot.event
async def on_application_command(ctx: discord.ApplicationContext):
    options = {
        opt["name"]: opt.get("value")
        for opt in (ctx.interaction.data or {}).get("options", [])
        if "value" in opt
    }
    if "message" in options:
        options["message"] = repr(truncate(str(options["message"]), 20))
    await LOG_SINK.log(
        f"User {ctx.author} ({ctx.author.id}) in {ctx.guild.name if ctx.guild else 'DM'} used command /{ctx.command.qualified_name}",
        "command",
        {
            "User": f"{ctx.author} ({ctx.author.id})",
            "Location": ctx.guild.name if ctx.guild else "DM",
            "Command": f"/{ctx.command.qualified_name}",
            "Options": options or "None",
        },
    )


@bot.event
async def on_application_command_error(ctx: discord.ApplicationContext, error: discord.DiscordException):
    logger.error("command_error context=%r error=%s", interaction_log_context(ctx), error)
    await LOG_SINK.log(f"Error in /{ctx.command.qualified_name}: {error}", "error", {"Error": str(error)})
    text = f"❌ An error occurred: {getattr(error, 'original', error)}"
    try:
        if ctx.response.is_done():
            await ctx.followup.send(text, ephemeral=True)
        else:
            await ctx.respond(text, ephemeral=True)
    except discord.HTTPException:
        logger.exception("command_error_reply_failed")


# =========================
# COMMANDS (slash)
# =========================
@bot.slash_command(name="roll", description="Roll a dice to decide what game to play")
async def roll(interaction: discord.Interaction):
    await interaction.response.send_message(
        f"🎲 The dice has been rolled! You should play: **{random.choice(GAMES)}**"
    )


async def toggle(interaction: discord.Interaction, name: str, label: str):
    if not await require_admin(interaction):
        return
    status = "enabled" if TOGGLES.flip(name) else "disabled"
    logger.info("toggle name=%s status=%s user_id=%s", name, status, interaction.user.id)
    await interaction.response.send_message(f"✅ {label} have been **{status}**!")


@bot.slash_command(name="toggledaily", description="Toggle daily messages on/off")
@discord.default_permissions(administrator=True)
async def toggledaily(interaction: discord.Interaction):
    await toggle(interaction, "daily_messages_enabled", "Daily messages")


@bot.slash_command(name="togglenicknames", description="Toggle weekly nickname changes on/off")
@discord.default_permissions(administrator=True)
async def togglenicknames(interaction: discord.Interaction):
    await toggle(interaction, "nickname_changes_enabled", "Weekly nickname changes")


@bot.slash_command(name="toggleownerdms", description="Toggle DM notifications to server owners on/off")
@discord.default_permissions(administrator=True)
async def toggleownerdms(interaction: discord.Interaction):
    await toggle(interaction, "owner_dms_enabled", "Server owner DM notifications")


@bot.slash_command(name="send-now", description="Send the daily message immediately")
@discord.default_permissions(administrator=True)
async def send_now(interaction: discord.Interaction):
    if not await require_admin(interaction):
        return
    await interaction.response.defer()
    await send_daily_messages()
    logger.info("daily_message_manual user_id=%s", interaction.user.id)
    await interaction.followup.send("✅ Daily message has been sent manually!")


async def nickname_command(interaction: discord.Interaction, heading: str, forced_policy=None):
    if not await require_admin(interaction):
        return
    if interaction.guild is None:
        await interaction.response.send_message("This command only works in a server.", ephemeral=True)
        return
    await interaction.response.defer()
    logger.info("nickname_command context=%r policy=%r", interaction_log_context(interaction), forced_policy)
    try:
        result = await run_guild_batch(interaction.guild, SETTINGS, TOGGLES, forced_policy, LOG_SINK)
    except MemberSourceError as exc:
        logger.exception("nickname_command_failed context=%r", interaction_log_context(interaction))
        await interaction.followup.send(f"❌ Error changing nicknames: {exc}")
        return
    await interaction.followup.send(format_batch_summary(result, heading))


@bot.slash_command(name="test-nicknames", description="Test the nickname change functionality without waiting for the schedule")
@discord.default_permissions(administrator=True)
@discord.guild_only()
async def test_nicknames(interaction: discord.Interaction):
    await nickname_command(interaction, "✅ Nickname test complete!")


@bot.slash_command(name="change-nicknames", description="Manually change all nicknames to Dutch snacks")
@discord.default_permissions(administrator=True)
@discord.guild_only()
async def change_nicknames(interaction: discord.Interaction):
    await nickname_command(interaction, "✅ Nicknames changed successfully!")


@bot.slash_command(name="test-group-snack", description="Test the group snack event where everyone gets the same nickname")
@discord.default_permissions(administrator=True)
@discord.guild_only()
async def test_group_snack(interaction: discord.Interaction):
    await nickname_command(interaction, "✅ Group snack test complete!", UniformPolicy(random.choice(DUTCH_SNACKS)))


@bot.slash_command(name="test-battle", description="Test battle mode (Pewdiepie vs T-Series)")
@discord.default_permissions(administrator=True)
@discord.guild_only()
async def test_battle(interaction: discord.Interaction):
    await nickname_command(interaction, "✅ Battle mode test complete!", BattlePolicy())


@bot.slash_command(name="check-timezone", description="Check the current timezone configuration")
@discord.default_permissions(administrator=True)
async def check_timezone(interaction: discord.Interaction):
    if not await require_admin(interaction):
        return

    def state(enabled: bool) -> str:
        return "Enabled" if enabled else "Disabled"

    now_local = datetime.now(SETTINGS.timezone)
    lines = [
        "**Timezone Configuration**",
        f"Current timezone: `{SETTINGS.tz_name}`",
        f"Current time in this timezone: `{now_local.strftime('%Y-%m-%d %H:%M:%S')}`",
        "",
        "**Schedules**",
        f"Category preparation: `{SETTINGS.preparation_time.strftime('%H:%M')}` daily",
        f"Daily message schedule: `{SETTINGS.daily_time.strftime('%H:%M')}` daily ({state(TOGGLES.daily_messages_enabled)})",
        f"Weekly nickname schedule: `Monday {SETTINGS.weekly_nickname_time.strftime('%H:%M')}` ({state(TOGGLES.nickname_changes_enabled)})",
        f"Server owner DM notifications: ({state(TOGGLES.owner_dms_enabled)})",
    ]
    await interaction.response.send_message("\n".join(lines))


@bot.slash_command(name="test-owner-dm", description="Test sending a nickname suggestion DM to the server owner")
@discord.default_permissions(administrator=True)
@discord.guild_only()
async def test_owner_dm(interaction: discord.Interaction):
    if not await require_admin(interaction):
        return
    await interaction.response.defer()
    result = await send_owner_dm_trial(interaction.guild, TOGGLES.owner_dms_enabled)
    lines = ["✅ Owner DM test complete!"]
    if result.success:
        lines.append("👑 Successfully sent a DM to the server owner!")
        lines.append(f"Suggested nickname: **{result.suggested_value}**")
    else:
        lines.append("⚠️ Test completed with issues:")
        lines.append("✅ Server owner found" if result.user_found else "❌ Could not find server owner")
        lines.append("✅ DM was sent successfully" if result.dm_sent else "❌ Could not send DM to server owner")
        if result.error:
            lines.append(f"\nError: {result.error}")
    await interaction.followup.send("\n".join(lines))


@bot.slash_command(name="send-dm", description="Send a direct message to a specific user")
async def send_dm(
    interaction: discord.Interaction,
    user: discord.Option(str, "The user's ID or tag (e.g., 'username' or '123456789012345678')"),
    message: discord.Option(str, "The message to send to the user"),
    use_embed: discord.Option(bool, "Whether to send the message as an embed", required=False, default=False),
):
    if not is_admin(interaction.user):
        await interaction.response.send_message(
            "❌ You don't have permission to use this command. "
            "You need either the admin role in a server or be an authorized user.",
            ephemeral=True,
        )
        return
    await interaction.response.defer(ephemeral=True)
    result = await send_direct_message(bot, user, message, use_embed)
    status = "SUCCESS" if result.success else "FAILED"
    await LOG_SINK.log(
        f"[{status}] DM from {interaction.user} ({interaction.user.id}) to {user}: {truncate(message)}",
        "dm",
        {"Status": status, "Sender": f"{interaction.user} ({interaction.user.id})", "Recipient": user, "Message": truncate(message)},
    )
    lines = ["✅ Direct message operation complete!"]
    if result.success:
        lines.extend([
            "✅ Successfully sent a DM to the user!",
            f"User: {user}",
            f'Message: "{message}"',
            f"Embed: {'Yes' if use_embed else 'No'}",
        ])
    else:
        lines.append("⚠️ Operation completed with issues:")
        lines.append("✅ User found" if result.user_found else f"❌ Could not find user with identifier: {user}")
        lines.append("✅ DM was sent successfully" if result.dm_sent else "❌ Could not send DM to user")
        if result.error:
            lines.append(f"\nError: {result.error}")
    await interaction.followup.send("\n".join(lines), ephemeral=True)


@bot.slash_command(name="cleanup-channels", description="Delete throwaway channels created by the bot")
@discord.default_permissions(administrator=True)
async def cleanup_channels_command(
    interaction: discord.Interaction,
    days: discord.Option(int, "Age threshold in days", required=False, default=7),
    older: discord.Option(bool, "Delete channels older (true) or newer (false) than the threshold", required=False, default=True),
    channel_type: discord.Option(str, "Which channels to delete", choices=["all", "text", "voice"], required=False, default="all"),
    bot_created_only: discord.Option(bool, "Only delete channels the bot created", required=False, default=True),
):
    if not await require_admin(interaction):
        return
    await interaction.response.defer(ephemeral=True)
    stats = await cleanup_channels(
        bot.guilds,
        days=days,
        delete_older=older,
        channel_type=channel_type,
        bot_created_only=bot_created_only,
        bot_started_at=bot_started_at,
    )
    await interaction.followup.send(
        "🧹 Cleanup complete!\n"
        f"Channels deleted: {stats.channels_deleted}\n"
        f"Categories deleted: {stats.categories_deleted}\n"
        f"Skipped: {stats.skipped}\n"
        f"Errors: {stats.errors}",
        ephemeral=True,
    )


# =========================
# MUSIC
# =========================
async def ensure_voice_channel(interaction: discord.Interaction) -> discord.VoiceChannel | None:
    if interaction.guild is None:
        return None
    member = interaction.guild.get_member(interaction.user.id)
    if member is None or member.voice is None or member.voice.channel is None:
        return None
    if not isinstance(member.voice.channel, discord.VoiceChannel):
        return None
    return member.voice.channel


@bot.slash_command(name="play", description="Queue and play audio from a YouTube link or search term.")
@discord.guild_only()
async def play(interaction: discord.Interaction, query: discord.Option(str, "A YouTube URL or search text.")):
    voice_channel = await ensure_voice_channel(interaction)
    if voice_channel is None:
        await interaction.response.send_message("You must be in a voice channel to use this command.", ephemeral=True)
        return
    vc = interaction.guild.voice_client
    if vc is not None and vc.channel != voice_channel:
        await interaction.response.send_message(f"You must be in {vc.channel.mention} to control playback.", ephemeral=True)
        return
    if not query.strip():
        await interaction.response.send_message("Please provide a YouTube link or search query.", ephemeral=True)
        return
    await interaction.response.defer(ephemeral=True)
    if vc is None:
        try:
            await voice_channel.connect()
        except discord.DiscordException:
            logger.exception("music_voice_connect_failed context=%r", interaction_log_context(interaction))
            await interaction.followup.send("Could not join voice channel.", ephemeral=True)
            return
    source = search_source(query)
    try:
        tracks = await asyncio.wait_for(fetch_tracks(source), timeout=FETCH_TRACK_INFO_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        await interaction.followup.send("Timed out while fetching track info. Please try again in a moment.", ephemeral=True)
        return
    except RuntimeError:
        logger.exception("music_fetch_tracks_failed context=%r source=%r", interaction_log_context(interaction), source)
        await interaction.followup.send("Could not fetch audio.", ephemeral=True)
        return
    for track in tracks:
        track.requested_by = interaction.user.id
    state = MUSIC.get(interaction.guild.id)
    async with state.lock:
        position = len(state.queue) + 1
        state.queue.extend(tracks)
    logger.info("music_tracks_queued count=%s first_position=%s context=%r", len(tracks), position, interaction_log_context(interaction))
    await play_next_track(interaction.guild, MUSIC, bot.loop)
    first = tracks[0]
    if len(tracks) == 1:
        text = f"Queued **{first.title}** ({format_duration(first.duration_seconds)}). Position in queue: **{position}**."
    else:
        text = f"Queued **{len(tracks)}** tracks. First position: **{position}**. Starts with: **{first.title}**."
    await interaction.followup.send(text, ephemeral=True)


@bot.slash_command(name="queue", description="Show the current playback queue.")
@discord.guild_only()
async def queue(interaction: discord.Interaction):
    state = MUSIC.get(interaction.guild.id)
    async with state.lock:
        text = describe_queue(state)
    await interaction.response.send_message(text, ephemeral=True)


@bot.slash_command(name="skip", description="Skip the currently playing track.")
@discord.guild_only()
async def skip(interaction: discord.Interaction):
    voice_channel = await ensure_voice_channel(interaction)
    vc = interaction.guild.voice_client
    if vc is None or not (vc.is_playing() or vc.is_paused()):
        await interaction.response.send_message("Nothing is currently playing.", ephemeral=True)
        return
    if vc.channel != voice_channel:
        await interaction.response.send_message(f"You must be in {vc.channel.mention} to skip tracks.", ephemeral=True)
        return
    MUSIC.get(interaction.guild.id).skip_requested = True
    vc.stop()
    await interaction.response.send_message("⏭️ Skipped current track.", ephemeral=True)


@bot.slash_command(name="stop", description="Stop playback, clear the queue and leave voice.")
@discord.guild_only()
async def stop(interaction: discord.Interaction):
    vc = interaction.guild.voice_client
    if vc is None:
        await interaction.response.send_message("I'm not in a voice channel.", ephemeral=True)
        return
    state = MUSIC.get(interaction.guild.id)
    async with state.lock:
        state.queue.clear()
    MUSIC.discard(interaction.guild.id)
    await vc.disconnect(force=True)
    await interaction.response.send_message("⏹️ Stopped playback and cleared the queue.", ephemeral=True)


@bot.slash_command(name="pause", description="Pause or resume the current track.")
@discord.guild_only()
async def pause(interaction: discord.Interaction):
    vc = interaction.guild.voice_client
    if vc is None or not (vc.is_playing() or vc.is_paused()):
        await interaction.response.send_message("Nothing is currently playing.", ephemeral=True)
        return
    if vc.is_paused():
        vc.resume()
        await interaction.response.send_message("▶️ Resumed the music!")
    else:
        vc.pause()
        await interaction.response.send_message("⏸️ Paused the music!")


@bot.slash_command(name="nowplaying", description="Show the track that is playing right now.")
@discord.guild_only()
async def nowplaying(interaction: discord.Interaction):
    state = MUSIC.get(interaction.guild.id)
    await interaction.response.send_message(describe_now_playing(state), ephemeral=True)


@bot.slash_command(name="volume", description="Change the playback volume.")
@discord.guild_only()
async def volume(interaction: discord.Interaction, percent: discord.Option(int, "Volume level (0-100)")):
    try:
        set_volume(MUSIC.get(interaction.guild.id), percent, interaction.guild.voice_client)
    except ValueError as exc:
        await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
        return
    logger.info("music_volume_set percent=%s context=%r", percent, interaction_log_context(interaction))
    await interaction.response.send_message(f"🔊 Volume set to {percent}%")


@bot.slash_command(name="loop", description="Set the loop mode.")
@discord.guild_only()
async def loop_command(
    interaction: discord.Interaction,
    mode: discord.Option(str, "Loop mode", choices=list(LOOP_MODES), required=False, default=None),
):
    mode = cycle_loop_mode(MUSIC.get(interaction.guild.id), mode)
    icon = "🔂" if mode == "track" else "🔁"
    await interaction.response.send_message(f"{icon} Loop mode: {mode.capitalize()}")


HELP_LINES = [
    "**Dog of Wisdom Bot - Help**",
    "🎲 `/roll` - Roll a dice to decide what game to play",
    "🎵 `/play`, `/queue`, `/skip`, `/stop`, `/pause`, `/nowplaying`, `/volume`, `/loop` - Music playback",
    "",
    "**⚙️ Admin Commands**",
    "`/toggledaily` - Toggle daily messages on/off",
    "`/togglenicknames` - Toggle weekly nickname changes on/off",
    "`/toggleownerdms` - Toggle DM notifications to server owners",
    "`/send-now` - Send the daily message immediately",
    "`/test-nicknames` - Test the nickname change functionality",
    "`/change-nicknames` - Manually change all nicknames",
    "`/test-group-snack` - Test the group snack event",
    "`/test-battle` - Test battle mode",
    "`/check-timezone` - Check the timezone configuration",
    "`/test-owner-dm` - Test sending a nickname suggestion DM",
    "`/send-dm` - Send a direct message to a specific user",
    "`/cleanup-channels` - Delete throwaway channels",
]


@bot.slash_command(name="help", description="Show the help message with all available commands")
async def help_command(interaction: discord.Interaction):
    await interaction.response.send_message("\n".join(HELP_LINES), ephemeral=True)


# =========================
# COMMANDS (prefix)
# =========================
@bot.command(name="roll")
async def roll_prefix(ctx: commands.Context):
    await ctx.send(f"🎲 The dice has been rolled! You should play: **{random.choice(GAMES)}**")


@bot.command(name="help")
async def help_prefix(ctx: commands.Context):
    await ctx.send(
        "**Game Commands:**\n"
        "`!roll` - Roll a dice to decide what game to play\n\n"
        "**Admin Commands:**\n"
        "`!toggledaily` - Toggle daily messages on/off (requires admin role)\n"
        "`!togglenicknames` - Toggle weekly nickname changes on/off (requires admin role)\n"
        "`!toggleownerdms` - Toggle server owner DM notifications on/off (requires admin role)"
    )


async def toggle_prefix(ctx: commands.Context, name: str, label: str):
    if not is_admin(ctx.author):
        await ctx.reply(NO_PERMISSION)
        return
    status = "enabled" if TOGGLES.flip(name) else "disabled"
    logger.info("toggle name=%s status=%s user_id=%s", name, status, ctx.author.id)
    await ctx.send(f"✅ {label} have been **{status}**!")


@bot.command(name="toggledaily")
async def toggledaily_prefix(ctx: commands.Context):
    await toggle_prefix(ctx, "daily_messages_enabled", "Daily messages")


@bot.command(name="togglenicknames")
async def togglenicknames_prefix(ctx: commands.Context):
    await toggle_prefix(ctx, "nickname_changes_enabled", "Weekly nickname changes")


@bot.command(name="toggleownerdms")
async def toggleownerdms_prefix(ctx: commands.Context):
    await toggle_prefix(ctx, "owner_dms_enabled", "Server owner DM notifications")


# =========================
# STARTUP
# =========================
@bot.event
async def on_ready():
    global bot_started_at
    register_loop_exception_handler(asyncio.get_running_loop())
    if bot_started_at is None:
        bot_started_at = datetime.now(timezone.utc)
    try:
        await bot.sync_commands()
    except (discord.HTTPException, discord.Forbidden):
        logger.exception("command_sync_failed")
    for loop_task in (category_preparation, daily_wisdom, weekly_nicknames, rotate_status):
        if not loop_task.is_running():
            loop_task.start()
    await LOG_SINK.log(
        "Bot started successfully. Logging system active.",
        "startup",
        {
            "Bot Owner ID": SETTINGS.bot_owner_id or "Not configured",
            "Admin Role ID": SETTINGS.admin_role_id or "Not configured",
            "Admin User ID": SETTINGS.admin_user_id or "Not configured",
            "Log Channel ID": SETTINGS.log_channel_id or "Not configured",
            "Daily Message": f"{SETTINGS.daily_time.strftime('%H:%M')} ({SETTINGS.tz_name})",
        },
    )
    logger.info("bot_ready user=%s user_id=%s", bot.user, bot.user.id)


def main():
    if not SETTINGS.token:
        raise RuntimeError("DISCORD_TOKEN not found. Check your .env file and WorkingDirectory.")
    bot.run(SETTINGS.token)


if __name__ == "__main__":
    main()
