"""
Fakes compartidos para los tests del reproductor.

El catálogo y el transporte se reemplazan por objetos en memoria que
registran las llamadas; el reloj y el RNG se inyectan para que los
tests sean deterministas.
"""

import asyncio
import random
from typing import Optional

import pytest

from ncm_tui.catalog import RawLyrics
from ncm_tui.errors import TransientFetchError
from ncm_tui.player import PlaybackStateMachine, PlayMode
from ncm_tui.playlist import Playlist, Track


class FakeCatalog:
    """Catálogo en memoria."""

    def __init__(self):
        self.unavailable: set[int] = set()
        self.failing: set[int] = set()
        self.no_url: set[int] = set()
        self.lyrics: dict[int, RawLyrics] = {}
        self.gates: dict[int, asyncio.Event] = {}
        self.calls: list[tuple[str, int]] = []

    async def check_availability(self, track_id: int) -> bool:
        self.calls.append(("check", track_id))
        if track_id in self.gates:
            await self.gates[track_id].wait()
        if track_id in self.failing:
            raise TransientFetchError(f"falla simulada {track_id}")
        return track_id not in self.unavailable

    async def resolve_stream_url(self, track_id: int, quality: str) -> Optional[str]:
        self.calls.append(("url", track_id))
        if track_id in self.no_url:
            return None
        return f"http://stream.test/{track_id}.mp3?q={quality}"

    async def fetch_lyric_text(self, track_id: int) -> RawLyrics:
        self.calls.append(("lyric", track_id))
        return self.lyrics.get(track_id, RawLyrics())


class FakeTransport:
    """Transporte en memoria; la posición y duración se fijan desde el test."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.position_ms: Optional[int] = None
        self.duration_ms: Optional[int] = None
        self.volume: Optional[float] = None
        self.loaded: list[str] = []

    def load(self, url: str) -> None:
        self.calls.append(("load", url))
        self.loaded.append(url)
        self.position_ms = None
        self.duration_ms = None

    def play(self) -> None:
        self.calls.append(("play",))

    def pause(self) -> None:
        self.calls.append(("pause",))

    def stop(self) -> None:
        self.calls.append(("stop",))
        self.position_ms = None
        self.duration_ms = None

    def seek(self, timestamp_ms: int) -> None:
        self.calls.append(("seek", timestamp_ms))
        self.position_ms = timestamp_ms

    def set_volume(self, ratio: float) -> None:
        self.calls.append(("volume", ratio))
        self.volume = ratio

    def position(self) -> Optional[int]:
        return self.position_ms

    def duration(self) -> Optional[int]:
        return self.duration_ms


class FakeClock:
    """Reloj monotónico manual, en segundos."""

    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def abc_playlist():
    """Lista [Alpha, Bravo, Charlie] con ids 1, 2, 3."""
    return Playlist(
        name="abc",
        tracks=(
            Track(id=1, name="Alpha", artist="Ana"),
            Track(id=2, name="Bravo", artist="Beto"),
            Track(id=3, name="Charlie", artist="Carla"),
        ),
    )


@pytest.fixture
def player(catalog, transport, clock):
    return PlaybackStateMachine(
        catalog,
        transport,
        play_mode=PlayMode.LIST_REPEAT,
        rng=random.Random(1234),
        clock=clock,
    )


@pytest.fixture
async def loaded_player(player, abc_playlist):
    await player.switch_playlist(abc_playlist)
    return player
