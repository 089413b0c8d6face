"""
Tests del sincronizador de letras.
"""

import pytest

from ncm_tui.lrc_parser import LyricLine, LyricSynchronizer, context_lines, format_tag, tag_to_ms


class TestNormalizeLine:
    """Normalización de tags de tiempo."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("[00:12]Hola", "[00:12.000]Hola"),
            ("[00:12.34]Hola", "[00:12.340]Hola"),
            ("[00:12.5]Hola", "[00:12.500]Hola"),
            ("[00:11:22]Hi", "[00:11.22]Hi"),
        ],
    )
    def test_tag_shapes(self, raw, expected):
        assert LyricSynchronizer.normalize_line(raw) == expected

    def test_canonical_line_unchanged(self):
        line = "[01:02.345]Sin cambios"
        assert LyricSynchronizer.normalize_line(line) == line

    def test_every_tag_in_line(self):
        assert (
            LyricSynchronizer.normalize_line("[00:01][00:30.5]Coro")
            == "[00:01.000][00:30.500]Coro"
        )

    def test_metadata_tags_untouched(self):
        assert LyricSynchronizer.normalize_line("[ar:Artista]") == "[ar:Artista]"


class TestTimestamps:
    @pytest.mark.parametrize(
        "groups, expected",
        [
            (("00", "12", "000"), 12_000),
            (("01", "02", "345"), 62_345),
            (("00", "11", "22"), 11_220),
            (("00", "00", "5"), 500),
            (("02", "00", ""), 120_000),
        ],
    )
    def test_tag_to_ms(self, groups, expected):
        assert tag_to_ms(*groups) == expected

    def test_format_tag(self):
        assert format_tag(62_345) == "[01:02.345]"
        assert format_tag(0) == "[00:00.000]"

    def test_line_str(self):
        assert str(LyricLine(timestamp_ms=1_500, text="hola")) == "[00:01.500]hola"


class TestSynchronize:
    """Alineación de letra, traducción y romanización."""

    def test_primary_only(self):
        lyrics = LyricSynchronizer.synchronize("[00:01.00]uno\n[00:02]dos\n[00:03.5]tres")

        assert [(line.timestamp_ms, line.text) for line in lyrics] == [
            (1_000, "uno"),
            (2_000, "dos"),
            (3_500, "tres"),
        ]
        assert all(line.translation is None for line in lyrics)

    def test_lines_without_tag_are_skipped(self):
        lyrics = LyricSynchronizer.synchronize(
            "[by:alguien]\n[00:01.00]uno\n\nsin tag\n[00:02.00]dos\n"
        )
        assert [line.text for line in lyrics] == ["uno", "dos"]

    def test_translation_matched_by_tag(self):
        lyrics = LyricSynchronizer.synchronize(
            "[00:01.00]one\n[00:02.00]two\n[00:03.00]three",
            "[00:01.00]uno\n[00:02.00]dos\n[00:03.00]tres",
        )
        assert [line.translation for line in lyrics] == ["uno", "dos", "tres"]

    def test_missing_translation_lines(self):
        lyrics = LyricSynchronizer.synchronize(
            "[00:01.00]one\n[00:02.00]two\n[00:03.00]three",
            "[00:01.00]uno\n[00:03.00]tres",
        )
        assert [line.translation for line in lyrics] == ["uno", None, "tres"]

    def test_translation_with_different_tag_shape(self):
        lyrics = LyricSynchronizer.synchronize("[00:01.50]one", "[00:01.5]uno")
        assert lyrics[0].translation == "uno"

    def test_romanization_slot(self):
        lyrics = LyricSynchronizer.synchronize(
            "[00:01.00]你好\n[00:02.00]再见",
            "[00:01.00]hola\n[00:02.00]adiós",
            "[00:01.00]ni hao\n[00:02.00]zai jian",
        )
        assert [(line.translation, line.romanization) for line in lyrics] == [
            ("hola", "ni hao"),
            ("adiós", "zai jian"),
        ]

    def test_equal_timestamps_keep_order(self):
        lyrics = LyricSynchronizer.synchronize("[00:01.00]a\n[00:01.00]b\n[00:02.00]c")
        assert [line.text for line in lyrics] == ["a", "b", "c"]

    def test_every_line_gets_at_most_one_translation(self):
        lyrics = LyricSynchronizer.synchronize(
            "[00:01.00]a\n[00:01.00]b",
            "[00:01.00]A",
        )
        assert [line.translation for line in lyrics] == [None, "A"]

    def test_empty_primary_with_translation(self):
        assert LyricSynchronizer.synchronize("", "[00:01.00]uno") == []
        assert LyricSynchronizer.synchronize(None, "[00:01.00]uno") == []

    def test_strips_inline_tags_and_trailing_cr(self):
        lyrics = LyricSynchronizer.synchronize("[00:01.00][00:30.00]Coro\r\n")
        assert lyrics[0].text == "Coro"
        assert lyrics[0].timestamp_ms == 1_000


class TestContextLines:
    def test_window_around_current(self):
        lyrics = [LyricLine(timestamp_ms=i * 1000, text=str(i)) for i in range(6)]

        result = context_lines(lyrics, 1)

        assert [(offset, line.text) for offset, line in result] == [
            (-1, "0"),
            (0, "1"),
            (1, "2"),
            (2, "3"),
        ]
