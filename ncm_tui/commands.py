"""
Parser de comandos de texto.

Convierte lo que escribe el usuario en un Command que el host ejecuta
sobre la máquina de estados. No tiene efectos secundarios.

Gramática:
    q | quit | exit              Salir
    p | pause | play             Reproducir / pausar
    vol | volume N               Volumen en porcentaje (0-100)
    vol | volume +N / -N         Subir / bajar el volumen N puntos
    mute                         Volumen 0
    mode MODO                    single | sr | single-repeat | lr |
                                 list-repeat | s | shuf | shuffle
    next / prev | previous       Siguiente / anterior
    start                        Empezar la lista según el modo
    goto N                       Reproducir la canción N (desde 1)
    seek N                       Saltar a la línea de letra N (desde 1)
    / palabras...                Buscar hacia abajo
    ? palabras...                Buscar hacia arriba
    load RUTA                    Cargar lista desde archivo JSON
    status                       Mostrar estado
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .errors import UserError
from .player import PlayMode


class CommandAction(Enum):
    """Acciones disponibles por comando."""

    NOP = "nop"
    QUIT = "quit"
    PLAY_OR_PAUSE = "play_or_pause"
    VOLUME = "volume"
    VOLUME_STEP = "volume_step"
    PLAY_MODE = "play_mode"
    NEXT = "next"
    PREV = "prev"
    START = "start"
    GOTO = "goto"
    SEEK_LYRIC = "seek_lyric"
    SEARCH_FORWARD = "search_forward"
    SEARCH_BACKWARD = "search_backward"
    LOAD_PLAYLIST = "load_playlist"
    STATUS = "status"


@dataclass(frozen=True)
class Command:
    """Comando ya validado."""

    action: CommandAction
    argument: Any = None


_MODE_ALIASES = {
    "single": PlayMode.SINGLE,
    "sr": PlayMode.SINGLE_REPEAT,
    "single-repeat": PlayMode.SINGLE_REPEAT,
    "lr": PlayMode.LIST_REPEAT,
    "list-repeat": PlayMode.LIST_REPEAT,
    "s": PlayMode.SHUFFLE,
    "shuf": PlayMode.SHUFFLE,
    "shuffle": PlayMode.SHUFFLE,
}

# Comandos sin argumentos
_SIMPLE = {
    "q": CommandAction.QUIT,
    "quit": CommandAction.QUIT,
    "exit": CommandAction.QUIT,
    "p": CommandAction.PLAY_OR_PAUSE,
    "pause": CommandAction.PLAY_OR_PAUSE,
    "play": CommandAction.PLAY_OR_PAUSE,
    "next": CommandAction.NEXT,
    "prev": CommandAction.PREV,
    "previous": CommandAction.PREV,
    "start": CommandAction.START,
    "status": CommandAction.STATUS,
}


def parse_play_mode(text: str) -> PlayMode:
    """
    Convierte un alias de modo en PlayMode.

    Raises:
        UserError: si el alias no existe
    """
    mode = _MODE_ALIASES.get(text.strip().lower())
    if mode is None:
        raise UserError(f"Modo desconocido: '{text}'")
    return mode


def _parse_positive(verb: str, value: Optional[str]) -> int:
    """Convierte un número desde 1 en índice desde 0."""
    if value is None:
        raise UserError(f"'{verb}' necesita un número")
    try:
        number = int(value)
    except ValueError:
        raise UserError(f"'{verb}' necesita un número, no '{value}'") from None
    if number < 1:
        raise UserError(f"'{verb}' empieza en 1")
    return number - 1


def _parse_volume(value: Optional[str]) -> Command:
    if value is None:
        raise UserError("'vol' necesita un porcentaje")
    try:
        percent = float(value.rstrip("%"))
    except ValueError:
        raise UserError(f"Volumen inválido: '{value}'") from None

    # "+10" / "-10" son relativos al volumen actual
    if value[0] in "+-":
        return Command(CommandAction.VOLUME_STEP, percent / 100.0)

    if not 0 <= percent <= 100:
        raise UserError("El volumen va de 0 a 100")
    return Command(CommandAction.VOLUME, percent / 100.0)


def parse_command(text: str) -> Command:
    """
    Interpreta una línea de comando.

    Args:
        text: Línea tal como la escribió el usuario

    Returns:
        Command listo para ejecutar

    Raises:
        UserError: si el comando no existe o sus argumentos son inválidos
    """
    text = text.strip()
    if not text:
        return Command(CommandAction.NOP)

    # Búsquedas: "/" y "?" pueden ir pegados a las palabras
    if text[0] in "/?":
        keywords = text[1:].split()
        if not keywords:
            raise UserError("La búsqueda necesita al menos una palabra")
        action = CommandAction.SEARCH_FORWARD if text[0] == "/" else CommandAction.SEARCH_BACKWARD
        return Command(action, keywords)

    verb, _, rest = text.partition(" ")
    verb = verb.lower()
    rest = rest.strip() or None

    if verb in _SIMPLE:
        if rest is not None:
            raise UserError(f"'{verb}' no recibe argumentos")
        return Command(_SIMPLE[verb])

    if verb in ("vol", "volume"):
        return _parse_volume(rest)

    if verb == "mute":
        return Command(CommandAction.VOLUME, 0.0)

    if verb == "mode":
        if rest is None:
            raise UserError("'mode' necesita un modo")
        return Command(CommandAction.PLAY_MODE, parse_play_mode(rest))

    if verb == "goto":
        return Command(CommandAction.GOTO, _parse_positive(verb, rest))

    if verb == "seek":
        return Command(CommandAction.SEEK_LYRIC, _parse_positive(verb, rest))

    if verb == "load":
        if rest is None:
            raise UserError("'load' necesita la ruta de una lista")
        return Command(CommandAction.LOAD_PLAYLIST, rest)

    raise UserError(f"Comando desconocido: '{verb}'")
