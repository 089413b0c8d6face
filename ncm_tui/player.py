"""
Máquina de estados de reproducción.

Coordina la lista activa, el catálogo y el backend de audio:
- Selección de la siguiente canción según el modo de reproducción
- Secuencia de carga (disponibilidad -> URL -> letras -> reproducción)
- Avance del cursor de letras en cada tick
- Historial para "canción anterior"

Todas las operaciones que modifican el estado pasan por un único
asyncio.Lock. Cada pedido de selección toma un número de generación
antes de esperar el lock; una carga que detecta una generación más nueva
se abandona sin tocar el estado.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional, Protocol

from .catalog import RawLyrics
from .errors import InvariantViolation, TransientFetchError, UserError
from .lrc_parser import LyricLine, Lyrics, LyricSynchronizer
from .playlist import Playlist, PlaylistNavigator, Track

logger = logging.getLogger(__name__)


class PlayState(Enum):
    """Estado de reproducción."""

    STOPPED = "stopped"  # Nada cargado, o sin continuación automática
    PAUSED = "paused"
    PLAYING = "playing"
    ENDED = "ended"  # La canción terminó, falta avanzar


class PlayMode(Enum):
    """Modo de selección automática de canciones."""

    SINGLE = "single"
    SINGLE_REPEAT = "single_repeat"
    LIST_REPEAT = "list_repeat"
    SHUFFLE = "shuffle"

    @property
    def label(self) -> str:
        return _MODE_LABELS[self]


_MODE_LABELS = {
    PlayMode.SINGLE: "Reproducción única",
    PlayMode.SINGLE_REPEAT: "Repetir canción",
    PlayMode.LIST_REPEAT: "Repetir lista",
    PlayMode.SHUFFLE: "Aleatorio",
}


# --- Selección de la siguiente canción ---


def _next_single(index: int, length: int, rng: random.Random) -> Optional[int]:
    return None


def _next_single_repeat(index: int, length: int, rng: random.Random) -> Optional[int]:
    return index


def _next_list_repeat(index: int, length: int, rng: random.Random) -> Optional[int]:
    return (index + 1) % length


def _next_shuffle(index: int, length: int, rng: random.Random) -> Optional[int]:
    # Puede repetir la canción actual
    return rng.randrange(length)


_NEXT_INDEX = {
    PlayMode.SINGLE: _next_single,
    PlayMode.SINGLE_REPEAT: _next_single_repeat,
    PlayMode.LIST_REPEAT: _next_list_repeat,
    PlayMode.SHUFFLE: _next_shuffle,
}


def next_index(
    mode: PlayMode, index: Optional[int], length: int, rng: random.Random
) -> Optional[int]:
    """
    Calcula el índice de la siguiente canción.

    Args:
        mode: Modo de reproducción
        index: Índice actual (None si no hay)
        length: Largo de la lista
        rng: Fuente aleatoria (solo para SHUFFLE)

    Returns:
        Índice siguiente, o None si no hay siguiente.
    """
    if index is None or length <= 0:
        return None
    return _NEXT_INDEX[mode](index, length, rng)


# --- Colaboradores ---


class Catalog(Protocol):
    """Lo que el reproductor necesita del catálogo."""

    async def check_availability(self, track_id: int) -> bool: ...

    async def resolve_stream_url(self, track_id: int, quality: str) -> Optional[str]: ...

    async def fetch_lyric_text(self, track_id: int) -> RawLyrics: ...


class Transport(Protocol):
    """Lo que el reproductor necesita del backend de audio."""

    def load(self, url: str) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def stop(self) -> None: ...

    def seek(self, timestamp_ms: int) -> None: ...

    def set_volume(self, ratio: float) -> None: ...

    def position(self) -> Optional[int]: ...

    def duration(self) -> Optional[int]: ...


class LyricsTranslator(Protocol):
    def translate_lyrics(self, track_id: int, lyrics: Lyrics) -> Lyrics: ...


@dataclass
class PlaybackSnapshot:
    """Vista de solo lectura del estado, para la capa de presentación."""

    play_state: PlayState
    play_mode: PlayMode
    playlist_name: str
    playlist_length: int
    current_index: Optional[int]
    current_track: Optional[Track]
    volume: float
    lyric_cursor: Optional[int]
    current_line: Optional[LyricLine]
    position_ms: Optional[int]
    duration_ms: Optional[int]


# Type alias para callbacks
OnTrackChangedCallback = Callable[[Track], None]
OnLyricChangedCallback = Callable[[int, LyricLine], None]


class PlaybackStateMachine:
    """
    Orquestador de la reproducción.

    Es el único dueño de la sesión: lista activa, índice actual,
    historial, volumen, letras y cursor de letras.
    """

    # Margen final para considerar terminada una canción
    END_THRESHOLD_MS = 10

    # Tiempo mínimo tras una carga antes de permitir next/prev
    SKIP_DEBOUNCE_S = 0.5

    def __init__(
        self,
        catalog: Catalog,
        transport: Transport,
        volume: float = 0.2,
        play_mode: PlayMode = PlayMode.SHUFFLE,
        quality: str = "exhigh",
        translator: Optional[LyricsTranslator] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Inicializa la sesión en STOPPED con una lista vacía.

        Args:
            catalog: Colaborador de catálogo
            transport: Backend de audio
            volume: Volumen inicial (0..1)
            play_mode: Modo inicial
            quality: Nivel de calidad para resolver URLs
            translator: Traductor automático opcional para letras sin traducción
            rng: Fuente aleatoria para el modo aleatorio
            clock: Reloj monotónico en segundos
        """
        self._catalog = catalog
        self._transport = transport
        self._translator = translator
        self._rng = rng or random.Random()
        self._clock = clock
        self.quality = quality

        self._navigator = PlaylistNavigator()
        self._play_state: PlayState = PlayState.STOPPED
        self._play_mode: PlayMode = play_mode
        self._volume: float = min(1.0, max(0.0, float(volume)))

        self._current_track: Optional[Track] = None
        self._lyrics: Optional[Lyrics] = None
        self._lyric_cursor: Optional[int] = None

        self._lock = asyncio.Lock()
        self._generation: int = 0
        self._committed_at: Optional[float] = None
        self._consecutive_failures: int = 0

        # Callbacks
        self._on_track_changed: list[OnTrackChangedCallback] = []
        self._on_lyric_changed: list[OnLyricChangedCallback] = []

    # --- Accesores ---

    @property
    def play_state(self) -> PlayState:
        return self._play_state

    @property
    def play_mode(self) -> PlayMode:
        return self._play_mode

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def playlist(self) -> Playlist:
        return self._navigator.playlist

    @property
    def current_index(self) -> Optional[int]:
        return self._navigator.current_index

    @property
    def current_track(self) -> Optional[Track]:
        """Canción cargada en el backend (con URL resuelta)."""
        return self._current_track

    @property
    def history(self) -> tuple[int, ...]:
        return tuple(self._navigator.history)

    @property
    def lyrics(self) -> Optional[Lyrics]:
        """Letras de la canción actual, o None si no hay letras."""
        return self._lyrics

    @property
    def lyric_cursor(self) -> Optional[int]:
        return self._lyric_cursor

    @property
    def current_line(self) -> Optional[LyricLine]:
        if self._lyrics is None or self._lyric_cursor is None:
            return None
        return self._lyrics[self._lyric_cursor]

    def position_ms(self) -> Optional[int]:
        return self._transport.position()

    def duration_ms(self) -> Optional[int]:
        return self._transport.duration()

    def snapshot(self) -> PlaybackSnapshot:
        """Retorna una copia del estado actual."""
        return PlaybackSnapshot(
            play_state=self._play_state,
            play_mode=self._play_mode,
            playlist_name=self.playlist.name,
            playlist_length=len(self.playlist),
            current_index=self.current_index,
            current_track=self._current_track,
            volume=self._volume,
            lyric_cursor=self._lyric_cursor,
            current_line=self.current_line,
            position_ms=self._transport.position(),
            duration_ms=self._transport.duration(),
        )

    # --- Callbacks públicos ---

    def on_track_changed(self, callback: OnTrackChangedCallback) -> None:
        """Registra callback para cuando empieza una canción nueva."""
        self._on_track_changed.append(callback)

    def on_lyric_changed(self, callback: OnLyricChangedCallback) -> None:
        """Registra callback para cuando cambia la línea de letra actual."""
        self._on_lyric_changed.append(callback)

    def _notify_track_changed(self, track: Track) -> None:
        for callback in self._on_track_changed:
            try:
                callback(track)
            except Exception:
                logger.exception("Error en callback on_track_changed")

    def _notify_lyric_changed(self) -> None:
        line = self.current_line
        if line is None:
            return
        for callback in self._on_lyric_changed:
            try:
                callback(self._lyric_cursor, line)
            except Exception:
                logger.exception("Error en callback on_lyric_changed")

    # --- Comandos ---

    async def play_or_pause(self) -> None:
        """Alterna entre reproducir y pausar. No hace nada en otros estados."""
        async with self._lock:
            if self._play_state == PlayState.PLAYING:
                self._transport.pause()
                self._play_state = PlayState.PAUSED
            elif self._play_state == PlayState.PAUSED:
                self._transport.play()
                self._play_state = PlayState.PLAYING

    async def set_volume(self, ratio: float) -> float:
        """
        Cambia el volumen.

        Returns:
            Volumen aplicado, limitado a [0, 1].
        """
        async with self._lock:
            self._volume = min(1.0, max(0.0, float(ratio)))
            self._transport.set_volume(self._volume)
            logger.debug(f"Volumen: {self._volume:.2f}")
            return self._volume

    async def set_play_mode(self, mode: PlayMode) -> None:
        """Cambia el modo. Conserva índice actual e historial."""
        async with self._lock:
            self._play_mode = mode
            logger.info(f"Modo de reproducción: {mode.label}")

    async def switch_playlist(self, playlist: Playlist) -> None:
        """Reemplaza la lista activa y limpia el historial."""
        async with self._lock:
            self._navigator.switch(playlist)

    def search_forward(self, keywords: list[str], start: Optional[int] = None) -> Optional[int]:
        """Busca hacia abajo desde `start` (default: canción actual)."""
        if start is None:
            start = self.current_index if self.current_index is not None else -1
        return self._navigator.search_forward(start, keywords)

    def search_backward(self, keywords: list[str], start: Optional[int] = None) -> Optional[int]:
        """Busca hacia arriba desde `start` (default: canción actual)."""
        if start is None:
            start = self.current_index if self.current_index is not None else len(self.playlist)
        return self._navigator.search_backward(start, keywords)

    async def play_particular(self, index: int) -> None:
        """
        Reproduce inmediatamente la canción `index` de la lista activa.

        Raises:
            UserError: si la lista está vacía o el índice no existe
        """
        generation = self._next_generation()
        async with self._lock:
            if self.playlist.is_empty:
                raise UserError("Primero selecciona una lista")
            if not 0 <= index < len(self.playlist):
                raise UserError(f"No existe la canción {index + 1}")

            self._consecutive_failures = 0
            await self._commit(index, generation)

    async def start(self) -> None:
        """
        Empieza a reproducir según el modo actual.

        Raises:
            UserError: si la lista está vacía o el modo no es
                repetir lista / aleatorio
        """
        generation = self._next_generation()
        async with self._lock:
            if self.playlist.is_empty:
                raise UserError("Primero selecciona una lista")

            if self._play_mode == PlayMode.LIST_REPEAT:
                index = 0
            elif self._play_mode == PlayMode.SHUFFLE:
                index = self._rng.randrange(len(self.playlist))
            else:
                raise UserError("'start' solo funciona en modo repetir lista o aleatorio")

            self._consecutive_failures = 0
            await self._commit(index, generation)

    async def next_now(self) -> None:
        """Salta a la siguiente canción según el modo."""
        generation = self._next_generation()
        async with self._lock:
            if not self._can_skip():
                return

            self._consecutive_failures = 0
            await self._commit(self._pick_next(), generation)

    async def prev_now(self) -> None:
        """
        Vuelve a la canción anterior del historial.

        El tope del historial es la canción actual; si no hay otra debajo
        no se modifica nada.
        """
        generation = self._next_generation()
        async with self._lock:
            if not self._can_skip():
                return

            history = self._navigator.history
            if len(history) < 2:
                return

            self._consecutive_failures = 0
            await self._commit(history[-2], generation, rewind=True)

    async def seek_to_lyric_line(self, index: int) -> bool:
        """
        Salta a la línea `index` de la letra.

        Returns:
            True si se hizo el salto.
        """
        async with self._lock:
            if self._play_state not in (PlayState.PLAYING, PlayState.PAUSED, PlayState.ENDED):
                return False
            if self._lyrics is None or not 0 <= index < len(self._lyrics):
                return False

            self._lyric_cursor = index
            self._transport.seek(self._lyrics[index].timestamp_ms)
            self._notify_lyric_changed()
            return True

    async def tick(self) -> None:
        """
        Avance periódico, llamado por el host a intervalo fijo.

        Detecta el fin de la canción, avanza el cursor de letras a lo sumo
        una línea, y carga la siguiente canción cuando la actual terminó.
        Si hay un comando en curso el tick se omite.
        """
        if self._lock.locked():
            return

        async with self._lock:
            position = None

            if self._play_state == PlayState.PLAYING:
                position = self._transport.position()
                duration = self._transport.duration()
                if (
                    position is not None
                    and duration is not None
                    and duration - position <= self.END_THRESHOLD_MS
                ):
                    logger.debug(f"Canción terminada ({position}/{duration} ms)")
                    self._play_state = PlayState.ENDED

            if self._play_state == PlayState.PLAYING:
                self._advance_lyric_cursor(position)
            elif self._play_state == PlayState.ENDED:
                generation = self._next_generation()
                await self._commit(self._pick_next(), generation)

    # --- Privados ---

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _superseded(self, generation: int) -> bool:
        if generation != self._generation:
            logger.debug(f"Carga {generation} reemplazada por {self._generation}, descartando")
            return True
        return False

    def _can_skip(self) -> bool:
        if self._play_state not in (PlayState.PLAYING, PlayState.PAUSED, PlayState.ENDED):
            return False
        if self._committed_at is None:
            return True
        return self._clock() - self._committed_at >= self.SKIP_DEBOUNCE_S

    def _pick_next(self) -> Optional[int]:
        return next_index(
            self._play_mode, self.current_index, len(self.playlist), self._rng
        )

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.playlist):
            raise InvariantViolation(
                f"Índice {index} fuera de la lista ({len(self.playlist)} canciones)"
            )

    def _advance_lyric_cursor(self, position: Optional[int]) -> None:
        """Avanza el cursor como máximo una línea por llamada."""
        if self._lyrics is None or self._lyric_cursor is None or position is None:
            return

        following = self._lyric_cursor + 1
        if following < len(self._lyrics) and position >= self._lyrics[following].timestamp_ms:
            self._lyric_cursor = following
            self._notify_lyric_changed()

    def _stop(self) -> None:
        self._transport.stop()
        self._play_state = PlayState.STOPPED
        self._current_track = None
        self._lyrics = None
        self._lyric_cursor = None

    async def _commit(
        self, index: Optional[int], generation: int, rewind: bool = False
    ) -> None:
        """
        Adopta `index` como canción actual y la pone a sonar.

        1. Disponibilidad en el catálogo; si no está disponible -> ENDED
        2. URL de streaming; sin URL -> ENDED
        3. Letras (fallo -> sin letras)
        4. Historial, backend y estado PLAYING

        Todo el estado se modifica después del último await, de modo que
        una carga reemplazada no deja rastros.

        Args:
            index: Canción destino, o None para detener
            generation: Generación tomada al recibir la orden
            rewind: Quita las dos entradas superiores del historial (prev)
        """
        if index is None:
            logger.info("Sin siguiente canción, deteniendo")
            self._stop()
            return

        self._check_index(index)
        track = self.playlist[index]
        logger.debug(f"Cargando [{index}] {track}")

        url = None
        try:
            if await self._catalog.check_availability(track.id):
                if self._superseded(generation):
                    return
                url = await self._catalog.resolve_stream_url(track.id, self.quality)
        except TransientFetchError as e:
            logger.warning(f"Error consultando '{track}': {e}")

        if self._superseded(generation):
            return

        if not url:
            self._adopt_index(index, rewind)
            self._mark_unavailable(track)
            return

        resolved = replace(track, url=url, quality=self.quality)
        lyrics = await self._fetch_lyrics(resolved)

        if self._superseded(generation):
            return

        self._adopt_index(index, rewind)
        self._navigator.history.append(index)

        self._current_track = resolved
        self._lyrics = lyrics
        self._lyric_cursor = 0 if lyrics else None

        self._transport.stop()
        self._transport.load(url)
        self._transport.set_volume(self._volume)
        self._transport.play()

        self._play_state = PlayState.PLAYING
        self._committed_at = self._clock()
        self._consecutive_failures = 0

        logger.info(f"Reproduciendo [{index}] {resolved} ({self.quality})")
        self._notify_track_changed(resolved)
        self._notify_lyric_changed()

    def _adopt_index(self, index: int, rewind: bool) -> None:
        self._navigator.current_index = index
        if rewind:
            del self._navigator.history[-2:]

    def _mark_unavailable(self, track: Track) -> None:
        """Marca la canción como no disponible para que el próximo tick avance."""
        self._consecutive_failures += 1
        limit = max(len(self.playlist), 1)

        if self._consecutive_failures >= limit:
            logger.warning(
                f"{self._consecutive_failures} canciones seguidas no disponibles, deteniendo"
            )
            self._consecutive_failures = 0
            self._stop()
            return

        logger.info(f"'{track}' no disponible, se intentará la siguiente")
        self._play_state = PlayState.ENDED

    async def _fetch_lyrics(self, track: Track) -> Optional[Lyrics]:
        """Obtiene y alinea las letras. None si no hay letras o falla la consulta."""
        try:
            raw = await self._catalog.fetch_lyric_text(track.id)
        except TransientFetchError as e:
            logger.warning(f"Error obteniendo letras de '{track}': {e}")
            return None

        lyrics = LyricSynchronizer.synchronize(raw.primary, raw.translation, raw.romanization)
        if not lyrics:
            logger.debug(f"'{track}' sin letras")
            return None

        if self._translator is not None and not any(line.translation for line in lyrics):
            lyrics = await asyncio.to_thread(self._translator.translate_lyrics, track.id, lyrics)

        logger.debug(f"Letras de '{track}': {len(lyrics)} líneas")
        return lyrics
