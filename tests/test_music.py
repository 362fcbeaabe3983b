from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import discord
import pytest

from wisdombot.music import (
    DEFAULT_VOLUME,
    MusicRegistry,
    QueueTrack,
    advance_queue,
    cycle_loop_mode,
    describe_now_playing,
    describe_queue,
    extract_stream_url,
    format_duration,
    is_youtube_url,
    parse_duration_seconds,
    parse_tracks_from_info,
    search_source,
    set_volume,
)


class TestDurations:
    def test_format_duration(self):
        assert format_duration(59) == "0:59"
        assert format_duration(3725) == "1:02:05"
        assert format_duration(-4) == "0:00"

    @pytest.mark.parametrize(
        "value, expected",
        [(215, 215), (12.7, 12), ("3:35", 215), ("1:00:00", 3600), ("abc", 0), ("", 0), (None, 0)],
    )
    def test_parse_duration_seconds(self, value, expected):
        assert parse_duration_seconds(value) == expected


class TestSources:
    def test_youtube_urls_pass_through(self):
        url = "https://youtu.be/D-UmfqFjpl0"
        assert is_youtube_url(url)
        assert search_source(f"  {url} ") == url

    def test_free_text_becomes_search(self):
        assert not is_youtube_url("https://example.com/watch?v=1")
        assert search_source("dog of wisdom") == "ytsearch1:dog of wisdom"

    def test_playlist_entries(self):
        info = {
            "entries": [
                {"title": "Dog of Wisdom", "id": "D-UmfqFjpl0", "duration": 62},
                {"title": "Part two", "webpage_url": "https://youtu.be/x", "duration_string": "1:10"},
                "junk",
            ]
        }
        tracks = parse_tracks_from_info(info, "ytsearch1:dog")
        assert [t.title for t in tracks] == ["Dog of Wisdom", "Part two"]
        assert tracks[0].source_url == "https://www.youtube.com/watch?v=D-UmfqFjpl0"
        assert tracks[1].duration_seconds == 70

    def test_empty_playlist(self):
        with pytest.raises(RuntimeError):
            parse_tracks_from_info({"entries": []}, "ytsearch1:nothing")

    def test_stream_url_prefers_best_audio_only_format(self):
        info = {
            "formats": [
                {"url": "video", "vcodec": "avc1", "abr": 320},
                {"url": "low", "vcodec": "none", "abr": 64},
                {"url": "high", "vcodec": "none", "abr": 160},
            ]
        }
        assert extract_stream_url(info) == "high"
        assert extract_stream_url({"url": "direct"}) == "direct"

    def test_stream_url_missing(self):
        with pytest.raises(RuntimeError):
            extract_stream_url({"formats": [{"url": "video", "vcodec": "avc1"}]})


class TestQueue:
    def test_registry_is_per_guild(self):
        registry = MusicRegistry()
        assert 1 not in registry
        state = registry.get(1)
        assert registry.get(1) is state
        assert registry.get(2) is not state
        registry.discard(1)
        assert 1 not in registry

    def test_describe_queue(self):
        state = MusicRegistry().get(1)
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        state.current_track = QueueTrack("Dog of Wisdom", "u", 62)
        state.track_started_at = now - timedelta(seconds=10)
        state.queue.append(QueueTrack("Part two", "u2", 70))

        text = describe_queue(state, now)

        assert "Now playing: **Dog of Wisdom** [0:10 / 1:02]" in text
        assert "1. Part two (1:10)" in text

    def test_describe_empty_queue(self):
        text = describe_queue(MusicRegistry().get(1))
        assert "*(nothing)*" in text
        assert "Queue is empty." in text


class TestPlaybackControls:
    def state_with(self, *titles):
        state = MusicRegistry().get(1)
        state.queue.extend(QueueTrack(title, title, 60) for title in titles)
        return state

    def test_advance_without_loop(self):
        state = self.state_with("a", "b")
        state.current_track = QueueTrack("now", "now", 60)
        assert advance_queue(state).title == "a"
        assert [t.title for t in state.queue] == ["b"]

    def test_track_loop_repeats_until_skipped(self):
        state = self.state_with("a")
        state.current_track = QueueTrack("now", "now", 60)
        state.loop_mode = "track"
        assert advance_queue(state) is state.current_track
        state.skip_requested = True
        assert advance_queue(state).title == "a"
        assert state.skip_requested is False

    def test_queue_loop_requeues_finished_track(self):
        state = self.state_with("a")
        state.current_track = QueueTrack("now", "now", 60)
        state.loop_mode = "queue"
        assert advance_queue(state).title == "a"
        assert [t.title for t in state.queue] == ["now"]

    def test_empty_queue(self):
        assert advance_queue(MusicRegistry().get(1)) is None

    def test_cycle_loop_mode(self):
        state = MusicRegistry().get(1)
        assert [cycle_loop_mode(state) for _ in range(3)] == ["track", "queue", "off"]
        assert cycle_loop_mode(state, "queue") == "queue"
        with pytest.raises(ValueError):
            cycle_loop_mode(state, "forever")

    def test_set_volume_updates_playing_source(self):
        state = MusicRegistry().get(1)
        assert state.volume == DEFAULT_VOLUME
        voice_client = SimpleNamespace(source=MagicMock(spec=discord.PCMVolumeTransformer))

        assert set_volume(state, 40, voice_client) == 40

        assert state.volume == 40
        assert voice_client.source.volume == 0.4

    def test_set_volume_rejects_out_of_range(self):
        state = MusicRegistry().get(1)
        with pytest.raises(ValueError):
            set_volume(state, 101)
        assert state.volume == DEFAULT_VOLUME

    def test_describe_now_playing(self):
        state = MusicRegistry().get(1)
        assert describe_now_playing(state) == "Now playing: *(nothing)*"
