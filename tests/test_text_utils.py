"""Tests for normalization, tag and cloze helpers."""

from flashcard_interchange.cloze import (
    cloze_answers,
    has_anki_cloze,
    has_cloze,
    parse_cloze,
    to_anki_cloze,
)
from flashcard_interchange.normalize import (
    collapse_whitespace,
    normalize_for_match,
    normalize_line_endings,
    normalize_text_nfc,
    strip_html_tags,
)
from flashcard_interchange.tags import (
    extract_hashtags,
    format_tags,
    merge_tags,
    parse_tags,
)


class TestNormalize:
    """Test line ending and matching normalization."""

    def test_crlf_and_bare_cr(self):
        """Test that CRLF and bare CR both become LF."""
        assert normalize_line_endings("a\r\nb\rc\n") == "a\nb\nc\n"

    def test_nfc(self):
        """Test that combining characters are composed."""
        assert normalize_text_nfc("e\u0301") == "\u00e9"

    def test_none_input(self):
        """Test that None input returns empty string."""
        assert normalize_text_nfc(None) == ""

    def test_strip_html(self):
        assert strip_html_tags("<b>bold</b> text") == "bold text"

    def test_collapse_whitespace(self):
        assert collapse_whitespace("  a \t b\n c ") == "a b c"

    def test_match_normalization(self):
        """Test case, markup, punctuation and spacing are all ignored."""
        assert normalize_for_match("<i>What</i> is   the Capital?!") == "what is the capital"

    def test_match_normalization_entities(self):
        assert normalize_for_match("Tom &amp; Jerry") == "tom jerry"

    def test_match_ignores_sound_references(self):
        assert normalize_for_match("Hello [sound:hello.mp3]") == "hello"


class TestHashtags:
    """Test inline #tag extraction."""

    def test_extracts_and_strips(self):
        text, tags = extract_hashtags("What is the capital of France? #geography")
        assert text == "What is the capital of France?"
        assert tags == ["geography"]

    def test_multiple_tags_in_order(self):
        text, tags = extract_hashtags("#a Paris #b")
        assert text == "Paris"
        assert tags == ["a", "b"]

    def test_case_sensitive(self):
        _, tags = extract_hashtags("x #Geo #geo")
        assert tags == ["Geo", "geo"]

    def test_repeated_tag_reported_once(self):
        _, tags = extract_hashtags("x #geo #geo")
        assert tags == ["geo"]

    def test_hash_inside_word_is_not_a_tag(self):
        """Test that a # not preceded by whitespace stays in the text."""
        text, tags = extract_hashtags("C# is a language")
        assert text == "C# is a language"
        assert tags == []

    def test_empty(self):
        assert extract_hashtags("") == ("", [])


class TestAnkiTags:
    """Test Anki tag string helpers."""

    def test_parse(self):
        assert parse_tags("  verb  noun ") == ["verb", "noun"]

    def test_parse_empty(self):
        assert parse_tags("") == []

    def test_format_replaces_inner_spaces(self):
        assert format_tags(["world history", "geo"]) == "world_history geo"

    def test_merge_preserves_order(self):
        assert merge_tags(["a", "b"], ["b", "c"]) == ["a", "b", "c"]


class TestCloze:
    """Test cloze marker parsing."""

    def test_plain_marker(self):
        result = parse_cloze("The capital of France is {{Paris}}.")
        assert result.is_cloze
        assert result.segments[0].number is None
        assert result.segments[0].content == "Paris"
        assert result.context_text == "The capital of France is ."

    def test_anki_marker_with_hint(self):
        result = parse_cloze("{{c1::Paris::city}} is in {{c2::France}}")
        assert [s.number for s in result.segments] == [1, 2]
        assert result.segments[0].hint == "city"
        assert result.segments[0].content == "Paris"

    def test_answers_deduplicated(self):
        assert cloze_answers("{{a}} and {{b}} and {{a}}") == ["a", "b"]

    def test_detection(self):
        assert has_cloze("x {{y}}")
        assert not has_cloze("plain")
        assert has_anki_cloze("{{c1::y}}")
        assert not has_anki_cloze("{{y}}")

    def test_to_anki_cloze_numbers_plain_markers(self):
        assert to_anki_cloze("{{a}} and {{b}}") == "{{c1::a}} and {{c2::b}}"

    def test_to_anki_cloze_continues_after_existing(self):
        assert to_anki_cloze("{{c3::a}} and {{b}}") == "{{c3::a}} and {{c4::b}}"
