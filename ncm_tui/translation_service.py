"""
Servicio de traducción automática de letras.

Se usa solo cuando el catálogo no entrega traducción para una canción.
Traduce con Google Translate (deep-translator) y guarda el resultado
en disco por canción e idioma destino.
"""

import json
import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Optional

from deep_translator import GoogleTranslator

from .lrc_parser import LyricLine, Lyrics

logger = logging.getLogger(__name__)


class TranslationCache:
    """Caché local de traducciones en disco."""

    def __init__(self, cache_dir: Optional[Path] = None):
        """
        Inicializa el caché de traducciones.

        Args:
            cache_dir: Directorio base del caché. Default: ~/.ncm-tui/cache/
        """
        if cache_dir is None:
            cache_dir = Path.home() / ".ncm-tui" / "cache"

        self.cache_dir = Path(cache_dir) / "translations"
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _get_cache_path(self, track_id: int, target_lang: str) -> Path:
        return self.cache_dir / f"{track_id}_{target_lang}.json"

    def get(self, track_id: int, target_lang: str) -> Optional[dict[int, str]]:
        """
        Busca traducciones en el caché.

        Returns:
            Dict {timestamp_ms: traducción} si existe, None si no.
        """
        cache_path = self._get_cache_path(track_id, target_lang)
        if not cache_path.exists():
            return None

        try:
            data = json.loads(cache_path.read_text(encoding="utf-8"))
            translations = {int(k): v for k, v in data.get("translations", {}).items()}
            logger.debug(f"Translation cache hit: {track_id} ({target_lang})")
            return translations
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"Error leyendo caché de traducción: {e}")
            return None

    def save(self, track_id: int, target_lang: str, translations: dict[int, str]) -> None:
        try:
            data = {
                "track_id": track_id,
                "target_lang": target_lang,
                "translations": {str(k): v for k, v in translations.items()},
            }
            self._get_cache_path(track_id, target_lang).write_text(
                json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8"
            )
        except OSError as e:
            logger.warning(f"Error guardando traducción en caché: {e}")

    def clear(self) -> int:
        """
        Limpia el caché de traducciones.

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
        logger.info(f"Caché de traducciones limpiado: {count} archivos eliminados")
        return count


_INSTRUMENTAL_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^\[.*\]$",  # [Instrumental], [Solo], etc.
        r"^[\*♪♫🎵🎶\s\-\_\.]+$",  # Solo símbolos musicales
        r"^\(.*instrumental.*\)$",
        r"^instrumental$",
        r"^(intro|outro|chorus|bridge)$",
        r"^(作词|作曲|编曲|制作人)\s*[:：]",  # Créditos al inicio de las letras
    )
]


def is_instrumental_line(text: str) -> bool:
    """Detecta si una línea no tiene contenido traducible."""
    text = text.strip()
    if len(text) < 2:
        return True
    return any(pattern.match(text) for pattern in _INSTRUMENTAL_PATTERNS)


class TranslationService:
    """
    Traducción de letras usando Google Translate.

    - Traducción batch, con respaldo línea por línea
    - Caché local por canción e idioma
    - Omite líneas instrumentales y créditos
    """

    def __init__(self, target_lang: str = "es", cache_dir: Optional[Path] = None):
        """
        Args:
            target_lang: Idioma destino
            cache_dir: Directorio base para el caché
        """
        self.target_lang = target_lang
        self.cache = TranslationCache(cache_dir)
        self._translator: Optional[GoogleTranslator] = None

    def _get_translator(self) -> GoogleTranslator:
        if self._translator is None:
            self._translator = GoogleTranslator(source="auto", target=self.target_lang)
        return self._translator

    def translate_lyrics(self, track_id: int, lyrics: Lyrics) -> Lyrics:
        """
        Agrega traducción automática a las líneas de una canción.

        Bloqueante (hace requests HTTP); el reproductor lo llama desde un
        hilo de trabajo.

        Args:
            track_id: ID de la canción, clave del caché
            lyrics: Letras sincronizadas

        Returns:
            Letras nuevas con traducción, o las mismas si falla.
        """
        if not lyrics:
            return lyrics

        cached = self.cache.get(track_id, self.target_lang)
        if cached:
            return self._apply_translations(lyrics, cached)

        pending = [line for line in lyrics if not is_instrumental_line(line.text)]
        if not pending:
            logger.debug(f"Nada que traducir para {track_id}")
            return lyrics

        translations = self._batch_translate([line.text for line in pending])

        translation_dict: dict[int, str] = {}
        for line, translated in zip(pending, translations):
            if translated and translated != line.text:
                translation_dict[line.timestamp_ms] = translated

        if not translation_dict:
            return lyrics

        self.cache.save(track_id, self.target_lang, translation_dict)
        logger.info(f"Traducidas {len(translation_dict)} líneas de {track_id} a {self.target_lang}")
        return self._apply_translations(lyrics, translation_dict)

    def _batch_translate(self, texts: list[str]) -> list[str]:
        """
        Traduce varios textos; si el batch falla, uno por uno.

        Returns:
            Traducciones en el mismo orden. Un texto que no se pudo
            traducir se devuelve igual.
        """
        translator = self._get_translator()

        try:
            return list(translator.translate_batch(texts) or [])
        except Exception as e:
            logger.warning(f"Error en batch translate, intentando uno por uno: {e}")

        results = []
        for text in texts:
            try:
                results.append(translator.translate(text) or text)
            except Exception as e:
                logger.debug(f"No se pudo traducir '{text}': {e}")
                results.append(text)
        return results

    @staticmethod
    def _apply_translations(lyrics: Lyrics, translations: dict[int, str]) -> Lyrics:
        """Retorna letras nuevas; las líneas sin traducción quedan igual."""
        result: list[LyricLine] = []
        for line in lyrics:
            translated = translations.get(line.timestamp_ms)
            result.append(replace(line, translation=translated) if translated else line)
        return result
