"""
Backend de audio basado en mpv.

Lanza mpv en modo idle y lo controla por su IPC JSON (socket unix):
- Comandos: una línea JSON por comando ({"command": [...]})
- Eventos: mpv notifica cambios de propiedades observadas

Posición y duración se cachean desde los eventos "property-change",
así las consultas del tick no bloquean.
"""

import asyncio
import json
import logging
import os
import shutil
import tempfile
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Propiedades que mpv nos notifica
OBSERVED_PROPERTIES = ("time-pos", "duration", "pause", "idle-active")


def _seconds_to_ms(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return max(0, int(float(value) * 1000))
    except (TypeError, ValueError):
        return None


class MpvTransport:
    """
    Transporte de reproducción usando un proceso mpv.

    Los métodos de control son síncronos: escriben el comando en el
    socket y retornan. El estado se actualiza en la tarea lectora.
    """

    def __init__(self, mpv_path: Optional[str] = None, socket_path: Optional[str] = None):
        """
        Inicializa el transporte.

        Args:
            mpv_path: Ruta al binario de mpv. Default: buscar en PATH
            socket_path: Ruta del socket IPC. Default: uno por proceso en /tmp
        """
        self.mpv_path = mpv_path or shutil.which("mpv")
        self.socket_path = socket_path or os.path.join(
            tempfile.gettempdir(), f"ncm-tui-mpv-{os.getpid()}.sock"
        )

        self._proc: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional[asyncio.Task] = None

        # Estado cacheado
        self._position_ms: Optional[int] = None
        self._duration_ms: Optional[int] = None
        self._paused: bool = True
        self._idle: bool = True
        self._loading: bool = False  # Entre loadfile y file-loaded
        self._eof: bool = False  # El archivo actual llegó al final

    # --- Ciclo de vida ---

    async def start(self) -> None:
        """
        Lanza mpv y conecta el IPC.

        Raises:
            FileNotFoundError: si no se encuentra mpv
            OSError: si no se puede conectar al socket
        """
        if self._proc is not None:
            return

        if not self.mpv_path:
            raise FileNotFoundError("No se encontró mpv en PATH")

        self._remove_stale_socket()

        self._proc = await asyncio.create_subprocess_exec(
            self.mpv_path,
            "--idle=yes",
            "--no-video",
            "--audio-display=no",
            "--terminal=no",
            "--msg-level=all=warn",
            f"--input-ipc-server={self.socket_path}",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )

        await self._connect(timeout_s=3.0)
        self._reader_task = asyncio.create_task(self._read_loop())

        for observer_id, name in enumerate(OBSERVED_PROPERTIES, start=1):
            self._command("observe_property", observer_id, name)

        logger.info(f"mpv iniciado (pid {self._proc.pid}, ipc {self.socket_path})")

    async def _connect(self, timeout_s: float) -> None:
        """Reintenta la conexión hasta que mpv cree el socket."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        last_error: Optional[OSError] = None

        while loop.time() < deadline:
            try:
                self._reader, self._writer = await asyncio.open_unix_connection(
                    self.socket_path
                )
                return
            except OSError as e:
                last_error = e
                await asyncio.sleep(0.05)

        raise OSError(f"No se pudo conectar al IPC de mpv {self.socket_path}: {last_error!r}")

    async def close(self) -> None:
        """Detiene la reproducción y termina el proceso mpv."""
        if self._writer is not None:
            self._command("quit")
            self._writer.close()
            self._writer = None

        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        if self._proc is not None:
            if self._proc.returncode is None:
                try:
                    await asyncio.wait_for(self._proc.wait(), timeout=2.0)
                except asyncio.TimeoutError:
                    self._proc.terminate()
                    await self._proc.wait()
            self._proc = None

        self._remove_stale_socket()
        logger.info("mpv detenido")

    def _remove_stale_socket(self) -> None:
        try:
            os.remove(self.socket_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"No se pudo eliminar el socket {self.socket_path}: {e}")

    # --- Protocolo ---

    def _command(self, *args: Any) -> None:
        """Envía un comando sin esperar respuesta."""
        if self._writer is None:
            logger.debug(f"mpv no conectado, comando descartado: {args!r}")
            return
        line = json.dumps({"command": list(args)}) + "\n"
        self._writer.write(line.encode("utf-8"))

    def _set_property(self, name: str, value: Any) -> None:
        self._command("set_property", name, value)

    async def _read_loop(self) -> None:
        """Lee líneas JSON del socket y actualiza el estado cacheado."""
        while self._reader is not None:
            line = await self._reader.readline()
            if not line:
                logger.warning("IPC de mpv cerrado")
                break
            try:
                message = json.loads(line.decode("utf-8", errors="replace"))
            except ValueError:
                continue
            if isinstance(message, dict):
                self._handle_message(message)

    def _handle_message(self, message: dict) -> None:
        event = message.get("event")

        if event == "file-loaded":
            self._loading = False
            return

        if event == "end-file":
            reason = message.get("reason")
            if reason == "eof":
                # mpv no siempre reporta time-pos en el final exacto
                self._position_ms = self._duration_ms
                self._eof = True
            elif reason == "error":
                logger.warning(f"mpv no pudo reproducir el archivo: {message.get('file_error')}")
            return

        if event == "property-change":
            name = message.get("name")
            data = message.get("data")

            if name == "pause":
                self._paused = bool(data)
            elif name == "idle-active":
                self._idle = bool(data)
            elif self._loading or self._eof:
                # Ignorar posición/duración del archivo anterior o ya terminado
                return
            elif name == "time-pos":
                self._position_ms = _seconds_to_ms(data)
            elif name == "duration":
                self._duration_ms = _seconds_to_ms(data)
            return

        if message.get("error") not in (None, "success"):
            logger.debug(f"mpv error: {message}")

    # --- Controles ---

    def load(self, url: str) -> None:
        self._position_ms = None
        self._duration_ms = None
        self._loading = True
        self._eof = False
        self._command("loadfile", url, "replace")

    def play(self) -> None:
        self._set_property("pause", False)

    def pause(self) -> None:
        self._set_property("pause", True)

    def stop(self) -> None:
        self._position_ms = None
        self._duration_ms = None
        self._eof = False
        self._command("stop")

    def seek(self, timestamp_ms: int) -> None:
        self._command("seek", max(0, int(timestamp_ms)) / 1000.0, "absolute+exact")

    def set_volume(self, ratio: float) -> None:
        volume = min(1.0, max(0.0, float(ratio)))
        # mpv usa 0..100
        self._set_property("volume", volume * 100.0)

    # --- Consultas ---

    def position(self) -> Optional[int]:
        """Posición actual en ms, o None si no se conoce."""
        return self._position_ms

    def duration(self) -> Optional[int]:
        """Duración del archivo actual en ms, o None si no se conoce."""
        return self._duration_ms

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_idle(self) -> bool:
        return self._idle
