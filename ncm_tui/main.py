"""
ncm-tui - Aplicación principal

Cliente de terminal para NetEase Cloud Music.
Reproduce listas con mpv, muestra las letras sincronizadas y se controla
con comandos de texto (y opcionalmente hotkeys globales).
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, TextIO

from .catalog import CatalogClient
from .commands import Command, CommandAction, parse_command
from .errors import InvariantViolation, UserError
from .lrc_parser import LyricLine, context_lines
from .player import PlaybackStateMachine, PlayMode
from .playlist import Track, load_playlist
from .settings import ClientSettings, SettingsManager
from .translation_service import TranslationService
from .transport import MpvTransport

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

HELP_TEXT = (
    "Comandos: p (play/pausa) · next · prev · start · goto N · seek N · "
    "vol N|+N|-N · mute · mode single|sr|lr|shuf · / palabras · ? palabras · "
    "load RUTA · status · q"
)


def configure_logging(level: str, cache_dir: Path) -> Path:
    """
    Envía los logs a un archivo; la salida estándar es la interfaz.

    Returns:
        Ruta del archivo de log.
    """
    cache_dir.mkdir(parents=True, exist_ok=True)
    log_path = cache_dir / "ncm-tui.log"

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.FileHandler(log_path, encoding="utf-8")],
        force=True,
    )
    # aiohttp es muy verboso en DEBUG
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    return log_path


def format_ms(ms: Optional[int]) -> str:
    """Formatea milisegundos como m:ss."""
    if ms is None:
        return "--:--"
    seconds = ms // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


class NcmTuiApp:
    """
    Aplicación principal que orquesta todos los componentes.

    Corre dos tareas sobre el mismo event loop: el tick periódico del
    reproductor y la cola de comandos (stdin y hotkeys).
    """

    def __init__(
        self,
        settings: ClientSettings,
        player: Optional[PlaybackStateMachine] = None,
        output: Optional[TextIO] = None,
    ):
        self.settings = settings
        self.player = player
        self.output = output or sys.stdout

        # Componentes (se crean en initialize si no se inyecta el reproductor)
        self.catalog: Optional[CatalogClient] = None
        self.transport: Optional[MpvTransport] = None
        self.hotkey_manager = None

        # Estado
        self._commands: asyncio.Queue[Command] = asyncio.Queue()
        self._running: bool = False
        self._search_cursor: Optional[int] = None

    async def initialize(self) -> bool:
        """
        Inicializa todos los componentes.

        Returns:
            True si la inicialización fue exitosa.
        """
        logger.info("Inicializando ncm-tui...")
        settings = self.settings

        if self.player is None:
            self.catalog = CatalogClient(
                base_url=settings.api_base_url,
                cookie_path=Path(settings.cookie_path).expanduser(),
                cache_dir=Path(settings.cache_dir).expanduser(),
                timeout_s=settings.request_timeout_s,
            )
            await self.catalog.initialize()

            self.transport = MpvTransport(mpv_path=settings.mpv_path)
            try:
                await self.transport.start()
            except OSError as e:
                logger.error(f"No se pudo iniciar mpv: {e}")
                self._print(f"Error: no se pudo iniciar mpv ({e})")
                return False

            translator = None
            if settings.machine_translation:
                translator = TranslationService(
                    target_lang=settings.translation_target,
                    cache_dir=Path(settings.cache_dir).expanduser(),
                )

            self.player = PlaybackStateMachine(
                self.catalog,
                self.transport,
                volume=settings.volume,
                play_mode=PlayMode(settings.play_mode),
                quality=settings.quality,
                translator=translator,
            )

        self.player.on_track_changed(self._on_track_changed)
        self.player.on_lyric_changed(self._on_lyric_changed)

        if settings.playlist_path:
            try:
                await self._load_playlist(settings.playlist_path)
            except UserError as e:
                self._print(f"! {e}")

        if settings.hotkeys_enabled:
            self._setup_hotkeys()

        logger.info("✓ Inicialización completa")
        return True

    def _setup_hotkeys(self) -> None:
        # pynput necesita un servidor gráfico; se importa solo si se pide
        try:
            from .hotkeys import HotkeyManager
        except ImportError as e:
            logger.warning(f"Hotkeys no disponibles: {e}")
            self._print("! Hotkeys no disponibles en este entorno")
            return

        self.hotkey_manager = HotkeyManager()

    # --- Salida ---

    def _print(self, message: str) -> None:
        self.output.write(message + "\n")
        self.output.flush()

    def _on_track_changed(self, track: Track) -> None:
        index = self.player.current_index
        total = len(self.player.playlist)
        self._print(f"▶ [{index + 1}/{total}] {track}  ({format_ms(track.duration_ms)})")
        if self.player.lyrics is None:
            self._print("  (sin letras)")

    def _on_lyric_changed(self, index: int, line: LyricLine) -> None:
        self._print(f"  {line.text}")
        if line.translation:
            self._print(f"    → {line.translation}")

    def _print_status(self) -> None:
        snapshot = self.player.snapshot()
        track = snapshot.current_track

        self._print(
            f"[{snapshot.play_state.value}] {snapshot.play_mode.label} · "
            f"volumen {snapshot.volume:.0%} · "
            f"lista '{snapshot.playlist_name}' ({snapshot.playlist_length} canciones)"
        )
        if track is None:
            return

        self._print(
            f"{track} · {format_ms(snapshot.position_ms)} / {format_ms(snapshot.duration_ms)}"
        )
        if self.player.lyrics and snapshot.lyric_cursor is not None:
            for offset, line in context_lines(self.player.lyrics, snapshot.lyric_cursor):
                marker = "»" if offset == 0 else " "
                number = snapshot.lyric_cursor + offset + 1
                self._print(f" {marker} {number:>3} {line.text}")

    # --- Comandos ---

    async def _load_playlist(self, path: str) -> None:
        playlist = load_playlist(Path(path).expanduser())
        await self.player.switch_playlist(playlist)
        self._search_cursor = None
        self._print(f"Lista '{playlist.name}': {len(playlist)} canciones")

    def _search(self, keywords: list[str], forward: bool) -> None:
        start = self._search_cursor
        if forward:
            found = self.player.search_forward(keywords, start)
        else:
            found = self.player.search_backward(keywords, start)

        if found is None:
            raise UserError(f"Sin resultados para '{' '.join(keywords)}'")

        self._search_cursor = found
        self._print(f"[{found + 1}] {self.player.playlist[found]}  (goto {found + 1} para reproducir)")

    async def execute(self, command: Command) -> bool:
        """
        Ejecuta un comando sobre el reproductor.

        Returns:
            False si el comando pide salir.

        Raises:
            UserError: si el comando no es válido en el estado actual
        """
        action = command.action
        player = self.player
        logger.debug(f"Comando: {action.value} {command.argument!r}")

        if action == CommandAction.QUIT:
            return False

        elif action == CommandAction.NOP:
            pass

        elif action == CommandAction.PLAY_OR_PAUSE:
            await player.play_or_pause()
            self._print(f"[{player.play_state.value}]")

        elif action == CommandAction.VOLUME:
            volume = await player.set_volume(command.argument)
            self._print(f"Volumen {volume:.0%}")

        elif action == CommandAction.VOLUME_STEP:
            volume = await player.set_volume(player.volume + command.argument)
            self._print(f"Volumen {volume:.0%}")

        elif action == CommandAction.PLAY_MODE:
            await player.set_play_mode(command.argument)
            self._print(f"Modo: {command.argument.label}")

        elif action == CommandAction.NEXT:
            await player.next_now()

        elif action == CommandAction.PREV:
            await player.prev_now()

        elif action == CommandAction.START:
            await player.start()

        elif action == CommandAction.GOTO:
            await player.play_particular(command.argument)

        elif action == CommandAction.SEEK_LYRIC:
            if not await player.seek_to_lyric_line(command.argument):
                raise UserError(f"No se puede saltar a la línea {command.argument + 1}")

        elif action == CommandAction.SEARCH_FORWARD:
            self._search(command.argument, forward=True)

        elif action == CommandAction.SEARCH_BACKWARD:
            self._search(command.argument, forward=False)

        elif action == CommandAction.LOAD_PLAYLIST:
            await self._load_playlist(command.argument)

        elif action == CommandAction.STATUS:
            self._print_status()

        return True

    def submit(self, command: Command) -> None:
        """Encola un comando. Debe llamarse desde el hilo del event loop."""
        self._commands.put_nowait(command)

    def _on_stdin(self) -> None:
        """Lee una línea de stdin (el loop avisa que hay datos)."""
        line = sys.stdin.readline()
        if not line:
            # EOF
            self.submit(Command(CommandAction.QUIT))
            asyncio.get_running_loop().remove_reader(sys.stdin.fileno())
            return

        try:
            self.submit(parse_command(line))
        except UserError as e:
            self._print(f"! {e}")

    async def _tick_loop(self) -> None:
        interval = self.settings.poll_interval_ms / 1000.0
        while self._running:
            try:
                await self.player.tick()
            except InvariantViolation:
                raise
            except Exception:
                logger.exception("Error inesperado en el tick")
            await asyncio.sleep(interval)

    async def _command_loop(self) -> None:
        while self._running:
            command = await self._commands.get()
            try:
                if not await self.execute(command):
                    self._running = False
            except UserError as e:
                self._print(f"! {e}")
            except InvariantViolation:
                raise
            except Exception:
                logger.exception(f"Error inesperado ejecutando {command.action.value}")
                self._print("! Error inesperado, revisa el log")

    async def run(self) -> None:
        """
        Ejecuta la aplicación hasta que el usuario salga.
        """
        self._running = True
        loop = asyncio.get_running_loop()

        loop.add_reader(sys.stdin.fileno(), self._on_stdin)

        if self.hotkey_manager is not None:
            # Los callbacks de pynput llegan desde otro hilo
            self.hotkey_manager.on_command(
                lambda command: loop.call_soon_threadsafe(self.submit, command)
            )
            self.hotkey_manager.start()

        self._print(HELP_TEXT)

        tasks = {
            asyncio.create_task(self._tick_loop()),
            asyncio.create_task(self._command_loop()),
        }
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                task.result()
        finally:
            self._running = False
            loop.remove_reader(sys.stdin.fileno())
            logger.info("Aplicación cerrada")

    async def cleanup(self) -> None:
        """Limpia recursos."""
        if self.hotkey_manager is not None:
            self.hotkey_manager.stop()

        if self.transport is not None:
            await self.transport.close()

        if self.catalog is not None:
            await self.catalog.close()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ncm-tui", description="Cliente de terminal para NetEase Cloud Music"
    )
    parser.add_argument("--settings", type=Path, help="Archivo de configuración JSON")
    parser.add_argument("--playlist", help="Lista JSON a cargar al iniciar")
    parser.add_argument("--debug", action="store_true", help="Logs en nivel DEBUG")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """Punto de entrada principal."""
    args = parse_args(argv)

    settings = SettingsManager(args.settings).settings
    if args.playlist:
        settings.playlist_path = args.playlist
    if args.debug:
        settings.log_level = "DEBUG"

    log_path = configure_logging(settings.log_level, Path(settings.cache_dir).expanduser())

    print(
        """
    ╔═══════════════════════════════════════════╗
    ║   ♪  ncm-tui · NetEase Cloud Music  ♪     ║
    ╚═══════════════════════════════════════════╝
    """
    )
    print(f"Logs en {log_path}")

    app = NcmTuiApp(settings)

    async def run_app() -> int:
        """Ejecuta la aplicación."""
        try:
            if not await app.initialize():
                logger.error("Error inicializando la aplicación")
                return 1
            await app.run()
            return 0
        finally:
            await app.cleanup()

    try:
        return asyncio.run(run_app())
    except KeyboardInterrupt:
        logger.info("Interrupción de teclado")
        return 0


if __name__ == "__main__":
    sys.exit(main())
