"""
Listas de reproducción.

Contiene los modelos de canción y lista, el navegador que mantiene la
lista activa (índice actual e historial) y el cargador de listas desde
archivos JSON locales.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from .errors import UserError

logger = logging.getLogger(__name__)


@dataclass
class Track:
    """Información de una canción del catálogo."""

    id: int
    name: str
    artist: str = "Unknown"
    artist_id: int = 0
    album: str = "Unknown"
    album_id: int = 0
    duration_ms: int = 0
    url: Optional[str] = None  # Se resuelve al momento de reproducir
    quality: Optional[str] = None  # Calidad con la que se resolvió la URL

    def __str__(self) -> str:
        return f"{self.artist} - {self.name}"

    def matches(self, keywords: Iterable[str]) -> bool:
        """True si todas las palabras clave aparecen en el título (sin distinguir mayúsculas)."""
        name = self.name.lower()
        return all(keyword.lower() in name for keyword in keywords)


@dataclass(frozen=True)
class Playlist:
    """Lista de canciones. Inmutable una vez cargada."""

    name: str = ""
    tracks: tuple[Track, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.tracks)

    def __getitem__(self, index: int) -> Track:
        return self.tracks[index]

    @property
    def is_empty(self) -> bool:
        return not self.tracks


class PlaylistNavigator:
    """
    Mantiene la lista activa, el índice actual y el historial.

    La lista se reemplaza completa, nunca se modifica en el lugar.
    """

    def __init__(self):
        self._playlist: Playlist = Playlist()
        self.current_index: Optional[int] = None
        self.history: list[int] = []  # Tope = canción actual

    @property
    def playlist(self) -> Playlist:
        return self._playlist

    def __len__(self) -> int:
        return len(self._playlist)

    def switch(self, playlist: Playlist) -> None:
        """
        Cambia la lista activa.

        Limpia el historial y apunta a la primera canción, o a ninguna si
        la lista está vacía.
        """
        self._playlist = playlist
        self.history = []
        self.current_index = 0 if len(playlist) > 0 else None
        logger.info(f"Lista activa: '{playlist.name}' ({len(playlist)} canciones)")

    def search_forward(self, start: int, keywords: list[str]) -> Optional[int]:
        """
        Busca hacia abajo, estrictamente después de `start`.

        Args:
            start: Índice desde el que se busca (puede ser -1)
            keywords: Palabras que deben aparecer todas en el título

        Returns:
            Índice más cercano que coincide, o None. No da la vuelta.
        """
        for index in range(max(start + 1, 0), len(self._playlist)):
            if self._playlist[index].matches(keywords):
                return index
        return None

    def search_backward(self, start: int, keywords: list[str]) -> Optional[int]:
        """
        Busca hacia arriba, estrictamente antes de `start`.

        Returns:
            Índice más cercano que coincide, o None. No da la vuelta.
        """
        for index in range(min(start, len(self._playlist)) - 1, -1, -1):
            if self._playlist[index].matches(keywords):
                return index
        return None


def track_from_dict(data: dict) -> Track:
    """
    Construye un Track desde un dict.

    Acepta el formato propio ({"id", "name", "artist", ...}) y el formato
    de detalle de canción del catálogo ({"id", "name", "ar": [...], "al": {...}, "dt"}).
    """
    artists = data.get("ar") or []
    album = data.get("al") or {}

    return Track(
        id=int(data["id"]),
        name=str(data["name"]),
        artist=data.get("artist") or (artists[0].get("name") if artists else None) or "Unknown",
        artist_id=int(data.get("artist_id") or (artists[0].get("id") if artists else 0) or 0),
        album=data.get("album") or album.get("name") or "Unknown",
        album_id=int(data.get("album_id") or album.get("id") or 0),
        duration_ms=int(data.get("duration") or data.get("dt") or 0),
    )


def load_playlist(path: Path) -> Playlist:
    """
    Carga una lista desde un archivo JSON.

    Args:
        path: Archivo con {"name": str, "tracks": [...]}

    Returns:
        Playlist cargada

    Raises:
        UserError: si el archivo no existe o no tiene el formato esperado
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise UserError(f"No se pudo leer la lista {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise UserError(f"Lista inválida {path}: {e}") from e

    if isinstance(data, list):
        data = {"name": Path(path).stem, "tracks": data}

    try:
        tracks = tuple(track_from_dict(item) for item in data.get("tracks", []))
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise UserError(f"Canción inválida en {path}: {e}") from e

    playlist = Playlist(name=str(data.get("name") or Path(path).stem), tracks=tracks)
    logger.debug(f"Lista cargada desde {path}: {len(playlist)} canciones")
    return playlist
