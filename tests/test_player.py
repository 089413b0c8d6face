"""
Tests de la máquina de estados de reproducción.
"""

import asyncio
import random

import pytest

from ncm_tui.catalog import RawLyrics
from ncm_tui.errors import UserError
from ncm_tui.player import PlaybackStateMachine, PlayMode, PlayState, next_index
from ncm_tui.playlist import Playlist

LRC = "[00:01.00]uno\n[00:02.00]dos\n[00:03.00]tres"


class TestNextIndex:
    """Selección de la siguiente canción."""

    def test_list_repeat_wraps(self):
        rng = random.Random(0)
        assert next_index(PlayMode.LIST_REPEAT, 0, 3, rng) == 1
        assert next_index(PlayMode.LIST_REPEAT, 2, 3, rng) == 0

    def test_single_repeat_keeps_index(self):
        assert next_index(PlayMode.SINGLE_REPEAT, 1, 3, random.Random(0)) == 1

    def test_single_has_no_next(self):
        assert next_index(PlayMode.SINGLE, 1, 3, random.Random(0)) is None

    def test_shuffle_stays_in_range(self):
        rng = random.Random(42)
        for _ in range(50):
            assert 0 <= next_index(PlayMode.SHUFFLE, 0, 3, rng) < 3

    def test_no_current_index(self):
        assert next_index(PlayMode.LIST_REPEAT, None, 3, random.Random(0)) is None


class TestInitialState:
    def test_defaults(self, catalog, transport):
        player = PlaybackStateMachine(catalog, transport)

        assert player.play_state == PlayState.STOPPED
        assert player.play_mode == PlayMode.SHUFFLE
        assert player.volume == pytest.approx(0.2)
        assert player.playlist.is_empty
        assert player.current_index is None
        assert player.current_track is None
        assert player.history == ()
        assert player.lyrics is None
        assert player.lyric_cursor is None

    def test_initial_volume_is_clamped(self, catalog, transport):
        assert PlaybackStateMachine(catalog, transport, volume=3).volume == 1.0


class TestSwitchPlaylist:
    async def test_switch_points_to_first_track(self, player, abc_playlist):
        await player.switch_playlist(abc_playlist)

        assert player.current_index == 0
        assert player.history == ()
        assert player.play_state == PlayState.STOPPED

    async def test_switch_to_empty_playlist(self, player):
        await player.switch_playlist(Playlist(name="vacía"))
        assert player.current_index is None

    async def test_switch_clears_history_and_keeps_playing(self, loaded_player, abc_playlist):
        await loaded_player.play_particular(1)
        playing = loaded_player.current_track

        await loaded_player.switch_playlist(abc_playlist)

        assert loaded_player.history == ()
        assert loaded_player.current_index == 0
        assert loaded_player.play_state == PlayState.PLAYING
        assert loaded_player.current_track == playing


class TestPlayParticular:
    async def test_commit_starts_playback(self, loaded_player, transport):
        await loaded_player.play_particular(1)

        assert loaded_player.play_state == PlayState.PLAYING
        assert loaded_player.current_index == 1
        assert loaded_player.history == (1,)

        track = loaded_player.current_track
        assert track.id == 2
        assert track.url == "http://stream.test/2.mp3?q=exhigh"
        assert track.quality == "exhigh"

        assert transport.calls[-3:] == [
            ("load", track.url),
            ("volume", 0.2),
            ("play",),
        ]

    async def test_empty_playlist(self, player):
        with pytest.raises(UserError):
            await player.play_particular(0)

    @pytest.mark.parametrize("index", [-1, 3, 10])
    async def test_out_of_range(self, loaded_player, index):
        with pytest.raises(UserError):
            await loaded_player.play_particular(index)
        assert loaded_player.play_state == PlayState.STOPPED

    async def test_track_changed_callback(self, loaded_player):
        seen = []
        loaded_player.on_track_changed(lambda track: seen.append(track.id))

        await loaded_player.play_particular(2)

        assert seen == [3]

    async def test_failing_callback_does_not_break_commit(self, loaded_player):
        def broken(track):
            raise RuntimeError("callback roto")

        loaded_player.on_track_changed(broken)
        await loaded_player.play_particular(0)

        assert loaded_player.play_state == PlayState.PLAYING


class TestStart:
    async def test_list_repeat_starts_at_first(self, loaded_player):
        await loaded_player.play_particular(2)
        await loaded_player.start()
        assert loaded_player.current_index == 0

    async def test_shuffle_picks_valid_index(self, loaded_player):
        await loaded_player.set_play_mode(PlayMode.SHUFFLE)
        await loaded_player.start()

        assert loaded_player.play_state == PlayState.PLAYING
        assert 0 <= loaded_player.current_index < 3

    @pytest.mark.parametrize("mode", [PlayMode.SINGLE, PlayMode.SINGLE_REPEAT])
    async def test_rejected_in_single_modes(self, loaded_player, mode):
        await loaded_player.set_play_mode(mode)
        with pytest.raises(UserError):
            await loaded_player.start()
        assert loaded_player.play_state == PlayState.STOPPED

    async def test_empty_playlist(self, player):
        with pytest.raises(UserError):
            await player.start()


class TestTick:
    async def test_list_repeat_wraps_after_last_track(self, loaded_player, transport):
        await loaded_player.play_particular(2)
        transport.position_ms = 199_995
        transport.duration_ms = 200_000

        await loaded_player.tick()

        assert loaded_player.current_index == 0
        assert loaded_player.play_state == PlayState.PLAYING
        assert loaded_player.history == (2, 0)

    async def test_not_ended_before_threshold(self, loaded_player, transport):
        await loaded_player.play_particular(0)
        transport.position_ms = 199_000
        transport.duration_ms = 200_000

        await loaded_player.tick()

        assert loaded_player.current_index == 0
        assert loaded_player.history == (0,)

    async def test_single_repeat_replays_same_track(self, loaded_player, transport):
        await loaded_player.set_play_mode(PlayMode.SINGLE_REPEAT)
        await loaded_player.play_particular(1)
        transport.position_ms = transport.duration_ms = 180_000

        await loaded_player.tick()

        assert loaded_player.current_index == 1
        assert loaded_player.history == (1, 1)
        assert transport.loaded == [transport.loaded[0]] * 2

    async def test_single_mode_stops(self, loaded_player, transport):
        await loaded_player.set_play_mode(PlayMode.SINGLE)
        await loaded_player.play_particular(1)
        transport.position_ms = transport.duration_ms = 180_000

        await loaded_player.tick()

        assert loaded_player.play_state == PlayState.STOPPED
        assert loaded_player.current_track is None
        assert transport.calls[-1] == ("stop",)

    async def test_paused_track_does_not_end(self, loaded_player, transport):
        await loaded_player.play_particular(0)
        await loaded_player.play_or_pause()
        transport.position_ms = transport.duration_ms = 180_000

        await loaded_player.tick()

        assert loaded_player.play_state == PlayState.PAUSED
        assert loaded_player.current_index == 0

    async def test_stopped_tick_does_nothing(self, loaded_player, catalog):
        await loaded_player.tick()

        assert loaded_player.play_state == PlayState.STOPPED
        assert catalog.calls == []


class TestLyrics:
    async def test_cursor_starts_at_first_line(self, loaded_player, catalog):
        catalog.lyrics[1] = RawLyrics(primary=LRC)

        await loaded_player.play_particular(0)

        assert len(loaded_player.lyrics) == 3
        assert loaded_player.lyric_cursor == 0
        assert loaded_player.current_line.text == "uno"

    async def test_no_lyrics(self, loaded_player):
        await loaded_player.play_particular(0)

        assert loaded_player.lyrics is None
        assert loaded_player.lyric_cursor is None
        assert loaded_player.current_line is None

    async def test_cursor_advances_one_line_per_tick(self, loaded_player, catalog, transport):
        catalog.lyrics[1] = RawLyrics(primary=LRC)
        await loaded_player.play_particular(0)
        transport.position_ms = 10_000

        await loaded_player.tick()
        assert loaded_player.lyric_cursor == 1

        await loaded_player.tick()
        assert loaded_player.lyric_cursor == 2

        await loaded_player.tick()
        assert loaded_player.lyric_cursor == 2

    async def test_cursor_waits_for_timestamp(self, loaded_player, catalog, transport):
        catalog.lyrics[1] = RawLyrics(primary=LRC)
        await loaded_player.play_particular(0)
        transport.position_ms = 1_500

        await loaded_player.tick()

        assert loaded_player.lyric_cursor == 0

    async def test_lyric_callback(self, loaded_player, catalog, transport):
        catalog.lyrics[1] = RawLyrics(primary=LRC)
        seen = []
        loaded_player.on_lyric_changed(lambda index, line: seen.append((index, line.text)))

        await loaded_player.play_particular(0)
        transport.position_ms = 2_000
        await loaded_player.tick()

        assert seen == [(0, "uno"), (1, "dos")]

    async def test_translation_from_catalog(self, loaded_player, catalog):
        catalog.lyrics[1] = RawLyrics(
            primary=LRC, translation="[00:01.00]one\n[00:03.00]three"
        )

        await loaded_player.play_particular(0)

        assert [line.translation for line in loaded_player.lyrics] == ["one", None, "three"]

    async def test_seek_to_lyric_line(self, loaded_player, catalog, transport):
        catalog.lyrics[1] = RawLyrics(primary=LRC)
        await loaded_player.play_particular(0)

        assert await loaded_player.seek_to_lyric_line(2) is True
        assert loaded_player.lyric_cursor == 2
        assert transport.calls[-1] == ("seek", 3000)

    async def test_seek_out_of_range_is_ignored(self, loaded_player, catalog, transport):
        catalog.lyrics[1] = RawLyrics(primary=LRC)
        await loaded_player.play_particular(0)

        assert await loaded_player.seek_to_lyric_line(3) is False
        assert loaded_player.lyric_cursor == 0

    async def test_seek_without_lyrics(self, loaded_player):
        await loaded_player.play_particular(0)
        assert await loaded_player.seek_to_lyric_line(0) is False

    async def test_seek_when_stopped(self, loaded_player):
        assert await loaded_player.seek_to_lyric_line(0) is False


class FakeTranslator:
    def __init__(self):
        self.calls = []

    def translate_lyrics(self, track_id, lyrics):
        self.calls.append(track_id)
        for line in lyrics:
            line.translation = line.text.upper()
        return lyrics


class TestMachineTranslation:
    @pytest.fixture
    def translator(self):
        return FakeTranslator()

    @pytest.fixture
    async def translating_player(self, catalog, transport, clock, translator, abc_playlist):
        player = PlaybackStateMachine(
            catalog, transport, play_mode=PlayMode.LIST_REPEAT, translator=translator, clock=clock
        )
        await player.switch_playlist(abc_playlist)
        return player

    async def test_used_when_catalog_has_no_translation(
        self, translating_player, catalog, translator
    ):
        catalog.lyrics[1] = RawLyrics(primary=LRC)

        await translating_player.play_particular(0)

        assert translator.calls == [1]
        assert translating_player.lyrics[0].translation == "UNO"

    async def test_skipped_when_catalog_has_translation(
        self, translating_player, catalog, translator
    ):
        catalog.lyrics[1] = RawLyrics(primary=LRC, translation="[00:02.00]two")

        await translating_player.play_particular(0)

        assert translator.calls == []

    async def test_skipped_without_lyrics(self, translating_player, translator):
        await translating_player.play_particular(0)
        assert translator.calls == []


class TestSkipping:
    async def test_next_within_debounce_is_ignored(self, loaded_player, clock):
        await loaded_player.play_particular(0)
        clock.advance(0.2)

        await loaded_player.next_now()

        assert loaded_player.current_index == 0
        assert loaded_player.history == (0,)

    async def test_next_after_debounce(self, loaded_player, clock):
        await loaded_player.play_particular(0)
        clock.advance(0.6)

        await loaded_player.next_now()

        assert loaded_player.current_index == 1
        assert loaded_player.history == (0, 1)

    async def test_next_when_stopped_is_ignored(self, loaded_player, catalog):
        await loaded_player.next_now()

        assert loaded_player.play_state == PlayState.STOPPED
        assert catalog.calls == []

    async def test_prev_returns_to_previous_track(self, loaded_player, clock):
        await loaded_player.play_particular(0)
        clock.advance(1)
        await loaded_player.next_now()
        clock.advance(1)

        await loaded_player.prev_now()

        assert loaded_player.current_index == 0
        assert loaded_player.history == (0,)

    async def test_prev_with_single_entry_is_noop(self, loaded_player, clock, transport):
        await loaded_player.play_particular(1)
        clock.advance(1)
        calls = list(transport.calls)

        await loaded_player.prev_now()

        assert loaded_player.current_index == 1
        assert loaded_player.history == (1,)
        assert transport.calls == calls

    async def test_prev_within_debounce_is_ignored(self, loaded_player, clock):
        await loaded_player.play_particular(0)
        clock.advance(1)
        await loaded_player.next_now()
        clock.advance(0.1)

        await loaded_player.prev_now()

        assert loaded_player.current_index == 1
        assert loaded_player.history == (0, 1)


class TestUnavailableTracks:
    async def test_unavailable_track_is_not_in_history(self, loaded_player, catalog, transport):
        catalog.unavailable.add(2)

        await loaded_player.play_particular(1)

        assert loaded_player.play_state == PlayState.ENDED
        assert loaded_player.current_index == 1
        assert loaded_player.history == ()
        assert transport.loaded == []

    async def test_next_tick_moves_past_unavailable(self, loaded_player, catalog):
        catalog.unavailable.add(2)
        await loaded_player.play_particular(1)

        await loaded_player.tick()

        assert loaded_player.play_state == PlayState.PLAYING
        assert loaded_player.current_index == 2
        assert loaded_player.history == (2,)

    async def test_fetch_error_counts_as_unavailable(self, loaded_player, catalog):
        catalog.failing.add(1)

        await loaded_player.play_particular(0)

        assert loaded_player.play_state == PlayState.ENDED
        assert loaded_player.history == ()

    async def test_missing_url_counts_as_unavailable(self, loaded_player, catalog):
        catalog.no_url.add(1)

        await loaded_player.play_particular(0)

        assert loaded_player.play_state == PlayState.ENDED

    async def test_stops_when_whole_playlist_is_unavailable(self, loaded_player, catalog):
        catalog.unavailable.update({1, 2, 3})

        await loaded_player.play_particular(0)
        await loaded_player.tick()
        await loaded_player.tick()

        assert loaded_player.play_state == PlayState.STOPPED
        assert loaded_player.history == ()


class TestControls:
    async def test_play_or_pause_toggles(self, loaded_player, transport):
        await loaded_player.play_particular(0)

        await loaded_player.play_or_pause()
        assert loaded_player.play_state == PlayState.PAUSED
        assert transport.calls[-1] == ("pause",)

        await loaded_player.play_or_pause()
        assert loaded_player.play_state == PlayState.PLAYING
        assert transport.calls[-1] == ("play",)

    async def test_play_or_pause_when_stopped(self, loaded_player, transport):
        await loaded_player.play_or_pause()

        assert loaded_player.play_state == PlayState.STOPPED
        assert transport.calls == []

    @pytest.mark.parametrize(
        "requested, expected", [(0.5, 0.5), (1.7, 1.0), (-0.3, 0.0), (0.0, 0.0)]
    )
    async def test_volume_is_clamped(self, player, transport, requested, expected):
        assert await player.set_volume(requested) == pytest.approx(expected)
        assert player.volume == pytest.approx(expected)
        assert transport.volume == pytest.approx(expected)

    async def test_mode_change_keeps_position(self, loaded_player, clock):
        await loaded_player.play_particular(0)
        clock.advance(1)
        await loaded_player.next_now()

        await loaded_player.set_play_mode(PlayMode.SINGLE_REPEAT)

        assert loaded_player.play_mode == PlayMode.SINGLE_REPEAT
        assert loaded_player.current_index == 1
        assert loaded_player.history == (0, 1)

    async def test_search_from_current(self, loaded_player):
        assert loaded_player.search_forward(["bravo"]) == 1
        assert loaded_player.search_backward(["alpha"]) is None
        assert loaded_player.search_backward(["alpha"], start=2) == 0

    async def test_snapshot(self, loaded_player, catalog, transport):
        catalog.lyrics[1] = RawLyrics(primary=LRC)
        await loaded_player.play_particular(0)
        transport.position_ms = 500

        snapshot = loaded_player.snapshot()

        assert snapshot.play_state == PlayState.PLAYING
        assert snapshot.playlist_name == "abc"
        assert snapshot.playlist_length == 3
        assert snapshot.current_track.id == 1
        assert snapshot.current_line.text == "uno"
        assert snapshot.position_ms == 500


class TestSupersession:
    async def test_newer_selection_wins(self, loaded_player, catalog, transport):
        gate = asyncio.Event()
        catalog.gates[1] = gate

        first = asyncio.create_task(loaded_player.play_particular(0))
        await asyncio.sleep(0)
        second = asyncio.create_task(loaded_player.play_particular(1))
        await asyncio.sleep(0)

        gate.set()
        await asyncio.gather(first, second)

        assert loaded_player.current_index == 1
        assert loaded_player.current_track.id == 2
        assert loaded_player.history == (1,)
        assert transport.loaded == ["http://stream.test/2.mp3?q=exhigh"]
        assert ("url", 1) not in catalog.calls

    async def test_abandoned_selection_keeps_current_index(
        self, loaded_player, catalog, transport
    ):
        await loaded_player.play_particular(0)
        gate = asyncio.Event()
        catalog.gates[3] = gate

        goto = asyncio.create_task(loaded_player.play_particular(2))
        await asyncio.sleep(0)
        skip = asyncio.create_task(loaded_player.next_now())
        await asyncio.sleep(0)

        gate.set()
        await asyncio.gather(goto, skip)

        assert loaded_player.current_index == 0
        assert loaded_player.current_track.name == "Alpha"
        assert loaded_player.history == (0,)

        transport.position_ms = transport.duration_ms = 180_000
        await loaded_player.tick()

        assert loaded_player.current_index == 1
        assert loaded_player.current_track.name == "Bravo"

    async def test_abandoned_prev_keeps_history(self, loaded_player, catalog, clock):
        await loaded_player.play_particular(0)
        clock.advance(1)
        await loaded_player.next_now()
        clock.advance(1)
        gate = asyncio.Event()
        catalog.gates[1] = gate

        prev = asyncio.create_task(loaded_player.prev_now())
        await asyncio.sleep(0)
        goto = asyncio.create_task(loaded_player.play_particular(2))
        await asyncio.sleep(0)

        gate.set()
        await asyncio.gather(prev, goto)

        assert loaded_player.current_index == 2
        assert loaded_player.history == (0, 1, 2)

    async def test_tick_is_skipped_while_command_runs(self, loaded_player, catalog):
        gate = asyncio.Event()
        catalog.gates[1] = gate

        pending = asyncio.create_task(loaded_player.play_particular(0))
        await asyncio.sleep(0)

        await asyncio.wait_for(loaded_player.tick(), timeout=1)
        assert loaded_player.play_state == PlayState.STOPPED

        gate.set()
        await pending
        assert loaded_player.play_state == PlayState.PLAYING
