import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import urlparse

import discord

logger = logging.getLogger("wisdombot.music")

FETCH_TRACK_INFO_TIMEOUT_SECONDS = 25
YOUTUBE_HOSTS = {
    "youtube.com",
    "www.youtube.com",
    "m.youtube.com",
    "music.youtube.com",
    "youtu.be",
    "www.youtu.be",
}
FFMPEG_BEFORE_OPTIONS = "-nostdin -reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5"
FFMPEG_OPTIONS = "-vn -loglevel warning"
DEFAULT_VOLUME = 75
LOOP_MODES = ("off", "track", "queue")


@dataclass
class QueueTrack:
    title: str
    source_url: str
    duration_seconds: int
    requested_by: int = 0


class GuildMusicState:
    def __init__(self):
        self.queue: deque[QueueTrack] = deque()
        self.current_track: QueueTrack | None = None
        self.track_started_at: datetime | None = None
        self.loop_mode = "off"
        self.volume = DEFAULT_VOLUME
        self.skip_requested = False
        self.lock = asyncio.Lock()


class MusicRegistry:
    """Owns the playback state of every guild; nothing lives at module level."""

    def __init__(self):
        self._states: dict[int, GuildMusicState] = {}

    def get(self, guild_id: int) -> GuildMusicState:
        state = self._states.get(guild_id)
        if state is None:
            state = GuildMusicState()
            self._states[guild_id] = state
        return state

    def discard(self, guild_id: int):
        self._states.pop(guild_id, None)

    def __contains__(self, guild_id: int) -> bool:
        return guild_id in self._states


def format_duration(duration_seconds: int) -> str:
    mins, secs = divmod(max(duration_seconds, 0), 60)
    hours, mins = divmod(mins, 60)
    if hours:
        return f"{hours:d}:{mins:02d}:{secs:02d}"
    return f"{mins:d}:{secs:02d}"


def parse_duration_seconds(value: object) -> int:
    if isinstance(value, (int, float)):
        return max(int(value), 0)
    if not isinstance(value, str) or not value.strip():
        return 0
    parts = value.strip().split(":")
    if not all(part.isdigit() for part in parts):
        return 0
    total = 0
    for part in parts:
        total = (total * 60) + int(part)
    return total


def is_youtube_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    if parsed.scheme not in {"http", "https"}:
        return False
    return (parsed.hostname or "").lower() in YOUTUBE_HOSTS


def search_source(query: str) -> str:
    query = query.strip()
    return query if is_youtube_url(query) else f"ytsearch1:{query}"


def _track_from_entry(entry: dict[str, object], fallback_url: str) -> QueueTrack:
    duration = parse_duration_seconds(entry.get("duration"))
    if duration <= 0:
        duration = parse_duration_seconds(entry.get("duration_string"))
    url = str(entry.get("webpage_url") or entry.get("url") or "").strip()
    if not url and entry.get("id"):
        url = f"https://www.youtube.com/watch?v={entry['id']}"
    return QueueTrack(
        title=str(entry.get("title") or "Unknown title"),
        source_url=url or fallback_url,
        duration_seconds=duration,
    )


def parse_tracks_from_info(info: dict[str, object], source: str) -> list[QueueTrack]:
    entries = info.get("entries")
    if isinstance(entries, list):
        tracks = [_track_from_entry(entry, source) for entry in entries if isinstance(entry, dict)]
        if not tracks:
            raise RuntimeError("No playable tracks found for that query.")
        return tracks
    return [_track_from_entry(info, source)]


def extract_stream_url(info: dict[str, object]) -> str:
    direct_url = str(info.get("url") or "").strip()
    if direct_url:
        return direct_url
    best_url = ""
    best_score = -1.0
    for fmt in info.get("formats") or []:
        if not isinstance(fmt, dict) or not fmt.get("url"):
            continue
        if str(fmt.get("vcodec") or "") != "none":
            continue
        try:
            score = float(fmt.get("abr") or fmt.get("tbr") or 0)
        except (TypeError, ValueError):
            score = 0.0
        if score >= best_score:
            best_score = score
            best_url = str(fmt["url"])
    if not best_url:
        raise RuntimeError("yt-dlp did not provide an audio stream URL.")
    return best_url


async def run_ytdlp(*args: str) -> dict[str, object]:
    proc = await asyncio.create_subprocess_exec(
        "yt-dlp",
        "-f",
        "bestaudio/best",
        "--dump-single-json",
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise RuntimeError(stderr.decode("utf-8", errors="ignore").strip() or "yt-dlp failed")
    try:
        return json.loads(stdout.decode("utf-8", errors="ignore"))
    except ValueError as exc:
        raise RuntimeError("Unable to read track metadata.") from exc


async def fetch_tracks(source: str) -> list[QueueTrack]:
    return parse_tracks_from_info(await run_ytdlp(source), source)


async def resolve_stream_url(source_url: str) -> str:
    info = await run_ytdlp("--no-playlist", source_url)
    entries = info.get("entries")
    if isinstance(entries, list) and entries:
        info = entries[0]
    return extract_stream_url(info)


def advance_queue(state: GuildMusicState) -> QueueTrack | None:
    """Pick the track to play after the current one, honouring the loop mode."""
    finished = state.current_track
    skipped = state.skip_requested
    state.skip_requested = False
    if finished is not None and state.loop_mode == "track" and not skipped:
        return finished
    if finished is not None and state.loop_mode == "queue":
        state.queue.append(finished)
    return state.queue.popleft() if state.queue else None


def set_volume(state: GuildMusicState, percent: int, voice_client=None) -> int:
    if not 0 <= percent <= 100:
        raise ValueError("Volume must be between 0 and 100!")
    state.volume = percent
    source = getattr(voice_client, "source", None)
    if isinstance(source, discord.PCMVolumeTransformer):
        source.volume = percent / 100
    return percent


def cycle_loop_mode(state: GuildMusicState, mode: str | None = None) -> str:
    if mode is None:
        mode = LOOP_MODES[(LOOP_MODES.index(state.loop_mode) + 1) % len(LOOP_MODES)]
    if mode not in LOOP_MODES:
        raise ValueError("Invalid loop mode!")
    state.loop_mode = mode
    return mode


async def play_next_track(guild: discord.Guild, registry: MusicRegistry, loop: asyncio.AbstractEventLoop):
    voice_client = guild.voice_client
    if voice_client is None:
        return
    state = registry.get(guild.id)
    async with state.lock:
        if voice_client.is_playing() or voice_client.is_paused():
            return
        next_track = advance_queue(state)
        if next_track is None:
            state.current_track = None
            state.track_started_at = None
            await voice_client.disconnect(force=True)
            registry.discard(guild.id)
            return
        state.current_track = next_track
        state.track_started_at = datetime.now(timezone.utc)
    try:
        stream_url = await resolve_stream_url(next_track.source_url)
    except RuntimeError:
        logger.exception("music_stream_resolve_failed guild_id=%s track=%s", guild.id, next_track.title)
        # an unplayable track must not be repeated by the loop modes
        state.current_track = None
        await play_next_track(guild, registry, loop)
        return
    source = discord.PCMVolumeTransformer(
        discord.FFmpegPCMAudio(stream_url, before_options=FFMPEG_BEFORE_OPTIONS, options=FFMPEG_OPTIONS),
        volume=state.volume / 100,
    )

    def _after_playback(play_error: Exception | None):
        if play_error:
            logger.error("music_playback_error guild_id=%s error=%s", guild.id, play_error)
        fut = asyncio.run_coroutine_threadsafe(play_next_track(guild, registry, loop), loop)
        try:
            fut.result()
        except Exception:
            logger.exception("music_next_track_start_failed guild_id=%s", guild.id)

    logger.info("music_play_start guild_id=%s track=%s", guild.id, next_track.title)
    voice_client.play(source, after=_after_playback)


def describe_now_playing(state: GuildMusicState, now: datetime | None = None) -> str:
    if not state.current_track:
        return "Now playing: *(nothing)*"
    now = now or datetime.now(timezone.utc)
    elapsed = int((now - state.track_started_at).total_seconds()) if state.track_started_at else 0
    return (
        f"Now playing: **{state.current_track.title}** "
        f"[{format_duration(elapsed)} / {format_duration(state.current_track.duration_seconds)}]"
    )


def describe_queue(state: GuildMusicState, now: datetime | None = None) -> str:
    lines = ["**Wisdom Queue**", describe_now_playing(state, now)]
    if state.loop_mode != "off":
        lines.append(f"Loop mode: {state.loop_mode}")
    if state.queue:
        lines.append("\n**Up next:**")
        for i, track in enumerate(state.queue, start=1):
            lines.append(f"{i}. {track.title} ({format_duration(track.duration_seconds)})")
    else:
        lines.append("\nQueue is empty.")
    return "\n".join(lines)
