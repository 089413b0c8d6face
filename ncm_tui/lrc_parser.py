"""
Sincronizador de letras en formato LRC.

El catálogo entrega tres textos independientes por canción:
- lrc: letra original con timestamps
- tlyric: traducción (opcional)
- romalrc: romanización (opcional)

Formato de línea:
[mm:ss.xxx] Línea de letra
[00:12.340] Primera línea
[00:17.200] Segunda línea

Los timestamps llegan en varias formas y se normalizan a [mm:ss.xxx]
antes de cruzar las traducciones con la letra original.
"""

import re
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class LyricLine:
    """Representa una línea de letra con su timestamp."""

    timestamp_ms: int  # Tiempo en milisegundos
    text: str
    translation: Optional[str] = field(default=None)  # Traducción opcional
    romanization: Optional[str] = field(default=None)  # Romanización opcional

    def __str__(self) -> str:
        return f"{format_tag(self.timestamp_ms)}{self.text}"


# Secuencia ordenada de líneas; puede estar vacía
Lyrics = list[LyricLine]


def format_tag(timestamp_ms: int) -> str:
    """Formatea milisegundos como tag canónico [mm:ss.xxx]."""
    minutes, rest = divmod(max(0, timestamp_ms), 60000)
    seconds, millis = divmod(rest, 1000)
    return f"[{minutes:02d}:{seconds:02d}.{millis:03d}]"


def tag_to_ms(minutes: str, seconds: str, fraction: str) -> int:
    """
    Convierte los grupos de un tag a milisegundos.

    La fracción se completa por la derecha hasta 3 dígitos y se toma
    como milisegundos literales: ".22" -> 220, ".5" -> 500.
    """
    millis = int(fraction.ljust(3, "0")[:3]) if fraction else 0
    return int(minutes) * 60000 + int(seconds) * 1000 + millis


class LyricSynchronizer:
    """Normaliza timestamps y alinea traducción/romanización con la letra."""

    # [mm:ss] sin fracción
    TAG_NO_FRACTION = re.compile(r"\[(\d+):(\d+)\]")

    # [mm:ss.xx] fracción de 2 dígitos
    TAG_TWO_DIGITS = re.compile(r"\[(\d+):(\d+)\.(\d{2})\]")

    # [mm:ss.x] fracción de 1 dígito
    TAG_ONE_DIGIT = re.compile(r"\[(\d+):(\d+)\.(\d)\]")

    # [mm:ss:xx] tag anómalo al inicio de línea
    TAG_TRIPLE = re.compile(r"^\[(\d+):(\d+):(\d+)\]")

    # Tag válido tras normalizar, al inicio de la línea
    LEADING_TAG = re.compile(r"^\[(\d+):(\d+)\.(\d+)\]")

    # Cualquier tag de tiempo dentro de la línea
    ANY_TAG = re.compile(r"\[\d+:\d+\.\d+\]")

    @classmethod
    def normalize_line(cls, line: str) -> str:
        """
        Reescribe los tags de tiempo de una línea al formato canónico.

        Las reglas se aplican en orden:
        1. [mm:ss]     -> [mm:ss.000]
        2. [mm:ss.xx]  -> [mm:ss.xx0]
        3. [mm:ss.x]   -> [mm:ss.x00]
        4. [mm:ss:xx]  -> [mm:ss.xx] (se re-etiquetan los grupos tal cual)

        Una línea ya canónica no cambia.
        """
        fixed = cls.TAG_NO_FRACTION.sub(r"[\1:\2.000]", line)
        fixed = cls.TAG_TWO_DIGITS.sub(r"[\1:\2.\g<3>0]", fixed)
        fixed = cls.TAG_ONE_DIGIT.sub(r"[\1:\2.\g<3>00]", fixed)
        fixed = cls.TAG_TRIPLE.sub(r"[\1:\2.\3]", fixed)
        return fixed

    @classmethod
    def leading_tag(cls, line: str) -> Optional[re.Match]:
        """Retorna el match del tag inicial, o None si la línea no tiene tag válido."""
        return cls.LEADING_TAG.match(line)

    @classmethod
    def strip_tags(cls, line: str) -> str:
        """Elimina todos los tags de tiempo y los tabs/CR finales."""
        return cls.ANY_TAG.sub("", line).rstrip("\t\r")

    @classmethod
    def split_lines(cls, text: Optional[str]) -> list[str]:
        """Separa un texto en líneas ya normalizadas."""
        if not text:
            return []
        return [cls.normalize_line(line) for line in text.split("\n")]

    @classmethod
    def synchronize(
        cls,
        primary: Optional[str],
        translation: Optional[str] = None,
        romanization: Optional[str] = None,
    ) -> Lyrics:
        """
        Construye la secuencia de letras alineadas.

        Recorre la letra original de atrás hacia adelante con un puntero
        independiente para la traducción y otro para la romanización. Una
        línea secundaria se asigna a la línea original cuyo tag inicial
        coincide; si el tag no coincide el puntero no avanza.

        Args:
            primary: Letra original con timestamps
            translation: Traducción con timestamps (opcional)
            romanization: Romanización con timestamps (opcional)

        Returns:
            Lista de LyricLine en orden cronológico. Vacía si la letra
            original no tiene líneas con timestamp.
        """
        primary_lines = cls.split_lines(primary)
        secondaries = [cls.split_lines(translation), cls.split_lines(romanization)]
        pointers = [len(lines) - 1 for lines in secondaries]

        lyrics: Lyrics = []

        for line in reversed(primary_lines):
            match = cls.leading_tag(line)
            if match is None:
                continue

            entry = LyricLine(
                timestamp_ms=tag_to_ms(*match.groups()),
                text=cls.strip_tags(line),
            )
            lyrics.append(entry)

            tag = match.group(0)
            for slot, lines in enumerate(secondaries):
                pointer = pointers[slot]

                # Saltar líneas sin timestamp
                while pointer >= 0 and cls.leading_tag(lines[pointer]) is None:
                    pointer -= 1

                if pointer >= 0 and lines[pointer].startswith(tag):
                    text = cls.strip_tags(lines[pointer])
                    if slot == 0:
                        entry.translation = text
                    else:
                        entry.romanization = text
                    pointer -= 1

                pointers[slot] = pointer

        lyrics.reverse()
        return lyrics


def context_lines(
    lyrics: Lyrics, current_idx: int, before: int = 2, after: int = 2
) -> list[tuple[int, LyricLine]]:
    """
    Obtiene líneas de contexto alrededor de la línea actual.

    Args:
        lyrics: Letras sincronizadas
        current_idx: Índice de la línea actual
        before: Cantidad de líneas anteriores
        after: Cantidad de líneas siguientes

    Returns:
        Lista de tuplas (índice_relativo, LyricLine)
        donde índice_relativo es 0 para la actual, negativo para anteriores, positivo para siguientes
    """
    result = []

    start_idx = max(0, current_idx - before)
    end_idx = min(len(lyrics), current_idx + after + 1)

    for idx in range(start_idx, end_idx):
        result.append((idx - current_idx, lyrics[idx]))

    return result


# Ejemplo de uso
if __name__ == "__main__":
    sample_lrc = "[by:someone]\n[00:12]First line\n[00:17.2]Second line\n[00:22.45]Third line"
    sample_tlyric = "[00:12.000]Primera línea\n[00:22.450]Tercera línea"

    for line in LyricSynchronizer.synchronize(sample_lrc, sample_tlyric):
        print(f"  {line}")
        if line.translation:
            print(f"      -> {line.translation}")
