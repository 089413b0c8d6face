"""
Configuración del cliente.

Servidor del catálogo, calidad de audio, reproducción y extras
(hotkeys, traducción automática). Se guarda como JSON en
~/.ncm-tui/settings.json; los valores fuera de rango se corrigen al cargar.
"""

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Directorio base del cliente
DEFAULT_HOME = Path.home() / ".ncm-tui"

# Ruta por defecto del archivo de configuración
DEFAULT_SETTINGS_PATH = DEFAULT_HOME / "settings.json"

# Niveles de calidad que acepta /song/url/v1
QUALITY_LEVELS = ("standard", "higher", "exhigh", "lossless", "hires", "jymaster")

PLAY_MODES = ("single", "single_repeat", "list_repeat", "shuffle")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class ClientSettings:
    """Configuración completa del cliente."""

    # --- Catálogo ---
    api_base_url: str = "http://localhost:3000"
    cookie_path: str = str(DEFAULT_HOME / "cookie")
    cache_dir: str = str(DEFAULT_HOME / "cache")
    quality: str = "exhigh"
    request_timeout_s: float = 10.0

    # --- Reproducción ---
    volume: float = 0.2
    play_mode: str = "shuffle"
    poll_interval_ms: int = 100
    mpv_path: Optional[str] = None
    playlist_path: Optional[str] = None

    # --- Extras ---
    hotkeys_enabled: bool = False
    machine_translation: bool = False
    translation_target: str = "es"

    # --- Logs ---
    log_level: str = "INFO"

    def validate(self) -> None:
        """Valida y corrige valores fuera de rango."""
        self.volume = max(0.0, min(1.0, float(self.volume)))
        self.poll_interval_ms = max(100, min(250, int(self.poll_interval_ms)))
        self.request_timeout_s = max(1.0, min(60.0, float(self.request_timeout_s)))
        self.api_base_url = self.api_base_url.rstrip("/")

        if self.quality not in QUALITY_LEVELS:
            self.quality = "exhigh"
        if self.play_mode not in PLAY_MODES:
            self.play_mode = "shuffle"
        self.log_level = str(self.log_level).upper()
        if self.log_level not in LOG_LEVELS:
            self.log_level = "INFO"


class SettingsManager:
    """
    Carga, guarda y provee acceso a la configuración del cliente.

    Persiste en ~/.ncm-tui/settings.json
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = path or DEFAULT_SETTINGS_PATH
        self._settings = ClientSettings()
        self.load()

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        """Carga la configuración desde disco. Si no existe, usa defaults."""
        if not self._path.exists():
            logger.info("No se encontró archivo de configuración, usando valores por defecto")
            return

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            # Aplicar solo los campos conocidos
            for key, value in data.items():
                if hasattr(self._settings, key):
                    setattr(self._settings, key, value)
            self._settings.validate()
            logger.info(f"Configuración cargada desde {self._path}")
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Error cargando configuración: {e}. Usando valores por defecto.")
            self._settings = ClientSettings()

    def save(self) -> None:
        """Guarda la configuración actual en disco."""
        try:
            self._settings.validate()
            self._path.parent.mkdir(parents=True, exist_ok=True)
            data = asdict(self._settings)
            self._path.write_text(
                json.dumps(data, ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
            logger.debug(f"Configuración guardada en {self._path}")
        except OSError as e:
            logger.warning(f"Error guardando configuración: {e}")

    def reset(self) -> None:
        """Restaura valores por defecto y guarda."""
        self._settings = ClientSettings()
        self.save()
        logger.info("Configuración restaurada a valores por defecto")
