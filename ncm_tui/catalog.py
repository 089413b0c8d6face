"""
Cliente del catálogo de NetEase Cloud Music.

Habla con un servidor NeteaseCloudMusicApi (por defecto en
http://localhost:3000), que se encarga del cifrado y la sesión:
- /check/music: disponibilidad (copyright, membresía)
- /song/url/v1: URL de streaming para un nivel de calidad
- /lyric: letra original, traducción y romanización

Incluye caché local de letras crudas para evitar consultas repetidas.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Optional

import aiohttp

from .errors import TransientFetchError

logger = logging.getLogger(__name__)


@dataclass
class RawLyrics:
    """Textos de letra tal como los entrega el catálogo."""

    primary: str = ""
    translation: str = ""
    romanization: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.primary.strip()


class LyricsCache:
    """Caché local de letras crudas en disco, una entrada JSON por canción."""

    def __init__(self, cache_dir: Optional[Path] = None):
        """
        Inicializa el caché.

        Args:
            cache_dir: Directorio para el caché. Default: ~/.ncm-tui/cache/
        """
        if cache_dir is None:
            cache_dir = Path.home() / ".ncm-tui" / "cache"

        self.cache_dir = Path(cache_dir) / "lyrics"
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _get_cache_path(self, track_id: int) -> Path:
        """Obtiene la ruta del archivo de caché."""
        return self.cache_dir / f"{track_id}.json"

    def get(self, track_id: int) -> Optional[RawLyrics]:
        """
        Busca letras en el caché.

        Returns:
            RawLyrics si existe en caché, None si no.
        """
        cache_path = self._get_cache_path(track_id)
        if not cache_path.exists():
            return None

        try:
            data = json.loads(cache_path.read_text(encoding="utf-8"))
            logger.debug(f"Cache hit: {track_id}")
            return RawLyrics(
                primary=data.get("primary", ""),
                translation=data.get("translation", ""),
                romanization=data.get("romanization", ""),
            )
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"Error leyendo caché de letras {track_id}: {e}")
            return None

    def save(self, track_id: int, lyrics: RawLyrics) -> None:
        """Guarda letras en el caché."""
        try:
            self._get_cache_path(track_id).write_text(
                json.dumps(asdict(lyrics), ensure_ascii=False), encoding="utf-8"
            )
            logger.debug(f"Guardado en caché: {track_id}")
        except OSError as e:
            logger.warning(f"Error guardando en caché: {e}")

    def clear(self) -> int:
        """
        Limpia todo el caché.

        Returns:
            Número de archivos eliminados.
        """
        count = 0
        for file in self.cache_dir.glob("*.json"):
            try:
                file.unlink()
                count += 1
            except OSError as e:
                logger.warning(f"No se pudo eliminar {file}: {e}")
        logger.info(f"Caché limpiado: {count} archivos eliminados")
        return count


class CatalogClient:
    """
    Colaborador de catálogo usado por el reproductor.

    Todas las fallas de red o de formato se reportan como
    TransientFetchError; quien llama decide cómo degradar.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        cookie_path: Optional[Path] = None,
        cache_dir: Optional[Path] = None,
        timeout_s: float = 10.0,
    ):
        """
        Inicializa el cliente.

        Args:
            base_url: URL del servidor NeteaseCloudMusicApi
            cookie_path: Archivo con la cookie de sesión (opcional)
            cache_dir: Directorio para el caché local
            timeout_s: Timeout total por petición
        """
        self.base_url = base_url.rstrip("/")
        self.cookie_path = Path(cookie_path) if cookie_path else None
        self.cache = LyricsCache(cache_dir)
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._cookie: str = ""
        self._session: Optional[aiohttp.ClientSession] = None

    async def initialize(self) -> None:
        """Inicializa la sesión HTTP y lee la cookie si existe."""
        self._cookie = self._read_cookie()
        self._session = aiohttp.ClientSession(
            headers={"User-Agent": "ncm-tui"},
        )
        logger.info(
            f"CatalogClient inicializado ({self.base_url}, "
            f"cookie {'cargada' if self._cookie else 'ausente'})"
        )

    async def close(self) -> None:
        """Cierra la sesión HTTP."""
        if self._session:
            await self._session.close()
            self._session = None

    def _read_cookie(self) -> str:
        if self.cookie_path is None or not self.cookie_path.exists():
            return ""
        try:
            return self.cookie_path.read_text(encoding="utf-8").strip()
        except OSError as e:
            logger.warning(f"No se pudo leer la cookie en {self.cookie_path}: {e}")
            return ""

    async def _post(
        self, path: str, params: dict[str, Any], accept: tuple[int, ...] = (200,)
    ) -> dict:
        """
        Hace un POST al servidor y retorna el JSON de respuesta.

        Raises:
            TransientFetchError: si falla la red, el status no es aceptado
                o la respuesta no es un objeto JSON.
        """
        if self._session is None:
            raise TransientFetchError("CatalogClient no inicializado")

        try:
            async with self._session.post(
                f"{self.base_url}{path}",
                params=params,
                data={"cookie": self._cookie},
                timeout=self.timeout,
            ) as response:
                if response.status not in accept:
                    raise TransientFetchError(f"{path}: HTTP {response.status}")
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TransientFetchError(f"{path}: {e}") from e

        if not isinstance(data, dict):
            raise TransientFetchError(f"{path}: respuesta inesperada")
        return data

    async def check_availability(self, track_id: int) -> bool:
        """
        Consulta si la canción puede reproducirse (copyright, membresía, ...).

        El servidor responde 404 con success=false cuando no hay copyright.
        """
        data = await self._post("/check/music", {"id": track_id}, accept=(200, 404))
        available = bool(data.get("success", False))
        if not available:
            logger.info(f"Canción {track_id} no disponible: {data.get('message', '')}")
        return available

    async def resolve_stream_url(self, track_id: int, quality: str) -> Optional[str]:
        """
        Obtiene la URL de streaming.

        Args:
            track_id: ID de la canción
            quality: Nivel de calidad (standard, exhigh, lossless, ...)

        Returns:
            URL o None si el catálogo no entrega una.
        """
        data = await self._post("/song/url/v1", {"id": track_id, "level": quality})

        entries = data.get("data") or []
        if not entries or not isinstance(entries[0], dict):
            return None
        return entries[0].get("url") or None

    async def fetch_lyric_text(self, track_id: int) -> RawLyrics:
        """
        Obtiene los textos de letra de una canción.

        Prioriza el caché local; solo guarda en caché letras no vacías.
        """
        cached = self.cache.get(track_id)
        if cached is not None:
            return cached

        data = await self._post("/lyric", {"id": track_id})

        def section(key: str) -> str:
            value = data.get(key) or {}
            return (value.get("lyric") if isinstance(value, dict) else None) or ""

        lyrics = RawLyrics(
            primary=section("lrc"),
            translation=section("tlyric"),
            romanization=section("romalrc"),
        )

        if not lyrics.is_empty:
            self.cache.save(track_id, lyrics)

        return lyrics
