"""
Gestor de hotkeys globales.

Captura combinaciones de teclas a nivel de sistema para controlar la
reproducción aunque la terminal no tenga el foco.

Hotkeys configurados:
- Ctrl+Alt+Space: Reproducir / pausar
- Ctrl+Alt+Right: Siguiente canción
- Ctrl+Alt+Left: Canción anterior
- Ctrl+Alt+Up: Subir volumen (+10%)
- Ctrl+Alt+Down: Bajar volumen (-10%)

Los callbacks de pynput corren en su propio hilo; el gestor solo
entrega Commands, quien los recibe debe pasarlos al event loop.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from pynput import keyboard
from pynput.keyboard import Key, KeyCode

from .commands import Command, CommandAction

logger = logging.getLogger(__name__)

# Paso de volumen de los hotkeys
VOLUME_STEP = 0.1


@dataclass(frozen=True)
class Hotkey:
    """Una combinación de teclas y el comando que dispara."""

    command: Command
    modifiers: frozenset  # Modificadores normalizados (ctrl, shift, alt)
    key: Union[Key, KeyCode]
    description: str

    def matches(self, modifiers: frozenset, key: Union[Key, KeyCode]) -> bool:
        if self.modifiers != modifiers:
            return False
        if isinstance(self.key, KeyCode):
            if not isinstance(key, KeyCode) or not key.char or not self.key.char:
                return False
            return key.char.lower() == self.key.char.lower()
        return key == self.key

    def __str__(self) -> str:
        parts = [m.capitalize() for m in sorted(self.modifiers)]
        if isinstance(self.key, KeyCode) and self.key.char:
            parts.append(self.key.char.upper())
        else:
            parts.append(str(self.key).replace("Key.", "").capitalize())
        return "+".join(parts)


DEFAULT_HOTKEYS = (
    Hotkey(
        command=Command(CommandAction.PLAY_OR_PAUSE),
        modifiers=frozenset({"ctrl", "alt"}),
        key=Key.space,
        description="Reproducir / pausar",
    ),
    Hotkey(
        command=Command(CommandAction.NEXT),
        modifiers=frozenset({"ctrl", "alt"}),
        key=Key.right,
        description="Siguiente canción",
    ),
    Hotkey(
        command=Command(CommandAction.PREV),
        modifiers=frozenset({"ctrl", "alt"}),
        key=Key.left,
        description="Canción anterior",
    ),
    Hotkey(
        command=Command(CommandAction.VOLUME_STEP, VOLUME_STEP),
        modifiers=frozenset({"ctrl", "alt"}),
        key=Key.up,
        description="Subir volumen",
    ),
    Hotkey(
        command=Command(CommandAction.VOLUME_STEP, -VOLUME_STEP),
        modifiers=frozenset({"ctrl", "alt"}),
        key=Key.down,
        description="Bajar volumen",
    ),
)


# Tipo para callbacks de comandos
HotkeyCallback = Callable[[Command], None]


class HotkeyManager:
    """Gestor de hotkeys globales usando pynput."""

    _MODIFIERS = {
        Key.ctrl_l: "ctrl",
        Key.ctrl_r: "ctrl",
        Key.shift_l: "shift",
        Key.shift_r: "shift",
        Key.alt_l: "alt",
        Key.alt_r: "alt",
        Key.alt_gr: "alt",
        Key.cmd_l: "win",
        Key.cmd_r: "win",
    }

    def __init__(self, hotkeys: tuple[Hotkey, ...] = DEFAULT_HOTKEYS):
        self._listener: Optional[keyboard.Listener] = None
        self._current_modifiers: set[str] = set()
        self._callbacks: list[HotkeyCallback] = []
        self._hotkeys = hotkeys

    @property
    def hotkeys(self) -> tuple[Hotkey, ...]:
        return self._hotkeys

    def _on_press(self, key: Union[Key, KeyCode]) -> None:
        modifier = self._MODIFIERS.get(key)
        if modifier:
            self._current_modifiers.add(modifier)
            return

        current = frozenset(self._current_modifiers)
        for hotkey in self._hotkeys:
            if hotkey.matches(current, key):
                logger.debug(f"Hotkey detectado: {hotkey}")
                self._trigger(hotkey.command)
                return

    def _on_release(self, key: Union[Key, KeyCode]) -> None:
        modifier = self._MODIFIERS.get(key)
        if modifier:
            self._current_modifiers.discard(modifier)

    def _trigger(self, command: Command) -> None:
        for callback in self._callbacks:
            try:
                callback(command)
            except Exception:
                logger.exception("Error en callback de hotkey")

    # --- API Pública ---

    def on_command(self, callback: HotkeyCallback) -> None:
        """
        Registra un callback para cuando se activa un hotkey.

        Args:
            callback: Función que recibe el Command. Se llama desde el
                hilo de pynput.
        """
        self._callbacks.append(callback)

    def start(self) -> None:
        """Inicia el listener de hotkeys."""
        if self._listener is not None:
            return

        self._listener = keyboard.Listener(on_press=self._on_press, on_release=self._on_release)
        self._listener.start()
        logger.info(
            "HotkeyManager iniciado: "
            + ", ".join(f"{hotkey} ({hotkey.description})" for hotkey in self._hotkeys)
        )

    def stop(self) -> None:
        """Detiene el listener de hotkeys."""
        if self._listener is not None:
            self._listener.stop()
            self._listener = None
            logger.info("HotkeyManager detenido")
