import asyncio
import logging
import logging.handlers
from pathlib import Path

import discord

logger = logging.getLogger("wisdombot")

LOG_COLOURS = {
    "info": 0x3498DB,
    "command": 0x2ECC71,
    "dm": 0x9B59B6,
    "error": 0xE74C3C,
    "startup": 0xF1C40F,
    "dm-received": 0x1ABC9C,
    "nicknames": 0xE67E22,
    "nickname-monitor": 0xE67E22,
    "nickname-monitor-error": 0xE74C3C,
}
DEFAULT_COLOUR = 0x7F8C8D
EMBED_FIELD_LIMIT = 1024


def configure_logging(level_name: str = "INFO", log_dir: str | Path = "logs") -> None:
    log_level = getattr(logging, level_name.strip().upper() or "INFO", logging.INFO)
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    stdout_handler = logging.StreamHandler()
    stdout_handler.setFormatter(formatter)
    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / "wisdombot.log",
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)
    root_logger.addHandler(stdout_handler)
    root_logger.addHandler(file_handler)
    logger.info("logging_configured level=%s", logging.getLevelName(log_level))


def interaction_log_context(interaction) -> dict[str, object]:
    return {
        "guild_id": getattr(interaction.guild, "id", None),
        "channel_id": getattr(interaction.channel, "id", None),
        "user_id": getattr(interaction.user, "id", None),
        "interaction": getattr(getattr(interaction, "command", None), "qualified_name", None),
    }


def register_loop_exception_handler(loop: asyncio.AbstractEventLoop) -> None:
    if getattr(loop, "_wisdombot_exception_handler_installed", False):
        return
    default_handler = loop.get_exception_handler()

    def _loop_exception_handler(active_loop: asyncio.AbstractEventLoop, context: dict[str, object]) -> None:
        message = context.get("message", "Unhandled asyncio loop exception")
        exception = context.get("exception")
        if exception is not None:
            logger.exception("loop_exception message=%s context=%r", message, context, exc_info=exception)
        else:
            logger.error("loop_exception message=%s context=%r", message, context)
        if default_handler is not None:
            default_handler(active_loop, context)
        else:
            active_loop.default_exception_handler(context)

    loop.set_exception_handler(_loop_exception_handler)
    setattr(loop, "_wisdombot_exception_handler_installed", True)
    logger.info("loop_exception_handler_registered")


def build_log_embed(message: str, category: str, fields: dict[str, object] | None = None) -> discord.Embed:
    embed = discord.Embed(
        title=f"{category.upper()} Log",
        description=message,
        colour=discord.Colour(LOG_COLOURS.get(category, DEFAULT_COLOUR)),
        timestamp=discord.utils.utcnow(),
    )
    for name, value in (fields or {}).items():
        if value is None or value == "":
            continue
        embed.add_field(name=name, value=str(value)[:EMBED_FIELD_LIMIT], inline=False)
    return embed


class DiscordLogSink:
    """Writes bot activity to the Python log and, if configured, to a Discord channel."""

    def __init__(self, client: discord.Client | None = None, channel_id: int | None = None):
        self.client = client
        self.channel_id = channel_id

    @property
    def enabled(self) -> bool:
        return self.client is not None and self.channel_id is not None

    async def _resolve_channel(self):
        channel = self.client.get_channel(self.channel_id)
        if channel is None:
            try:
                channel = await self.client.fetch_channel(self.channel_id)
            except (discord.Forbidden, discord.NotFound, discord.HTTPException):
                return None
        return channel

    async def log(self, message: str, category: str = "info", fields: dict[str, object] | None = None) -> bool:
        logger.info("activity category=%s message=%s fields=%r", category, message, fields or {})
        if not self.enabled:
            return False
        try:
            channel = await self._resolve_channel()
            if channel is None:
                return False
            await channel.send(embed=build_log_embed(message, category, fields))
        except (discord.Forbidden, discord.HTTPException):
            logger.warning("log_channel_send_failed channel_id=%s category=%s", self.channel_id, category)
            return False
        return True

    async def __call__(self, message: str, category: str = "info", fields: dict[str, object] | None = None):
        return await self.log(message, category, fields)
