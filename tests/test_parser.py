"""Tests for parser module (dialogue segmenter)."""

import pytest

from narration_producer.constants import (
    NARRATOR_LABEL,
    MIN_SEGMENT_MS,
    PAUSE_NARRATOR_TRANSITION_MS,
    SEGMENT_SPLIT_THRESHOLD,
)
from narration_producer.parser import (
    segment,
    strip_markup,
    is_narrator_label,
    estimate_segment_ms,
    estimate_duration,
)


# --- Tag grammar ---

def test_example_three_speakers(example_story):
    """Tagged example splits into exactly three segments in order."""
    segments = segment(example_story)
    assert [s.speaker_label for s in segments] == ["Count Dimitri", "Elena", "Narrator"]
    assert [s.clean_text for s in segments] == ["Come closer.", "I shouldn't.", "She stepped forward anyway."]
    assert [s.emotion_label for s in segments] == ["seductive", "nervous", None]


def test_tagged_narrator_is_narration(example_story):
    """[Narrator]: produces a narration segment, other tags dialogue."""
    kinds = [s.kind for s in segment(example_story)]
    assert kinds == ["dialogue", "dialogue", "narration"]


def test_order_is_sequential(example_story):
    """order is 0..n-1 in source order."""
    assert [s.order for s in segment(example_story)] == [0, 1, 2]


def test_emotion_lowercased_and_trimmed():
    """Emotion label is lower-cased and stripped."""
    segments = segment("[Elena,  NERVOUS ]: Who is it?")
    assert segments[0].emotion_label == "nervous"
    assert segments[0].speaker_label == "Elena"


def test_tag_without_emotion():
    """[Label]: leaves emotion unset."""
    segments = segment("[Marcus]: Leave now.")
    assert segments[0].emotion_label is None
    assert segments[0].kind == "dialogue"


def test_raw_text_keeps_tag():
    """raw_text is the source slice including the tag."""
    segments = segment("[Marcus, angry]: Leave now.")
    assert segments[0].raw_text == "[Marcus, angry]: Leave now."


# --- Narration ---

def test_untagged_text_is_single_narration():
    """Text with no tags degrades to one narrator segment."""
    segments = segment("It was a dark and stormy night.")
    assert len(segments) == 1
    assert segments[0].kind == "narration"
    assert segments[0].speaker_label == NARRATOR_LABEL


def test_lead_text_before_tag_is_narration():
    """Text before the first tag in a paragraph belongs to the narrator."""
    segments = segment("She turned. [Marcus, angry]: Leave now!")
    assert [(s.speaker_label, s.clean_text) for s in segments] == [
        ("Narrator", "She turned."),
        ("Marcus", "Leave now!"),
    ]


def test_paragraphs_split_segments():
    """Blank lines separate paragraphs."""
    text = "The castle loomed.\n\n[Elena]: \"Who's there?\"\n\nNo answer came."
    segments = segment(text)
    assert [s.speaker_label for s in segments] == ["Narrator", "Elena", "Narrator"]
    assert segments[1].clean_text == "Who's there?"


def test_curly_quotes_stripped():
    """Wrapping curly quotes are removed from dialogue."""
    segments = segment("[Elena]: “Stay back.”")
    assert segments[0].clean_text == "Stay back."


def test_description_label_is_narration():
    """Narrator-like labels other than 'Narrator' are narration too."""
    assert segment("[Description]: Fog rolled in.")[0].kind == "narration"
    assert is_narrator_label(" narration ")
    assert not is_narrator_label("Elena")


# --- Degenerate input ---

def test_empty_string_returns_empty():
    """Empty input has nothing to segment."""
    assert segment("") == []


@pytest.mark.parametrize("text", [
    "[Unclosed: tag text",
    "[Elena]:",
    "]]]:[[[",
    "<p></p>",
    "   ",
    "[, angry]: nobody",
])
def test_non_empty_never_degenerate(text):
    """Any non-empty input yields at least one segment and never raises."""
    assert len(segment(text)) >= 1


def test_malformed_tag_is_narration():
    """Text that does not match the tag grammar is narration."""
    segments = segment("[Unclosed: tag text")
    assert segments[0].kind == "narration"
    assert segments[0].clean_text == "[Unclosed: tag text"


# --- HTML ---

def test_strip_markup_block_tags():
    """<p> and <br> become paragraph breaks, entities are unescaped."""
    text = strip_markup("<p>One &amp; two</p><p>Three<br/>Four</p>")
    assert "One & two" in text
    assert "<" not in text
    assert "\n\n" in text


def test_html_story_segments():
    """Paragraph markup separates tagged lines."""
    html = "<p>[Lady Seraphina, sultry]: Welcome.</p><p>The door <em>closed</em>.</p>"
    segments = segment(html)
    assert [(s.speaker_label, s.clean_text) for s in segments] == [
        ("Lady Seraphina", "Welcome."),
        ("Narrator", "The door closed."),
    ]


# --- Long segments ---

def test_long_segment_split_keeps_speaker():
    """Over-long lines split at sentences, keeping speaker and emotion."""
    sentence = "The night was long and the wind was cold upon the moor. "
    text = "[Marcus, weary]: " + sentence * 40
    segments = segment(text)
    assert len(segments) > 1
    assert all(s.speaker_label == "Marcus" for s in segments)
    assert all(s.emotion_label == "weary" for s in segments)
    assert all(len(s.clean_text) <= SEGMENT_SPLIT_THRESHOLD for s in segments)
    assert [s.order for s in segments] == list(range(len(segments)))


# --- Duration estimates ---

def test_estimate_segment_ms_words():
    """Five words at 2.5 words/second take two seconds."""
    assert estimate_segment_ms("one two three four five") == 2000


def test_estimate_segment_ms_minimum():
    """Very short text still gets the minimum clip length."""
    assert estimate_segment_ms("Hi.") == MIN_SEGMENT_MS


def test_estimate_duration_includes_pauses():
    """Estimate sums segment estimates plus the longest pause between them."""
    segments = segment("one two three four five\n\nsix seven eight nine ten")
    expected = (2000 + 2000 + PAUSE_NARRATOR_TRANSITION_MS) / 1000
    assert estimate_duration(segments) == pytest.approx(expected)


def test_estimate_duration_empty():
    assert estimate_duration([]) == 0.0
