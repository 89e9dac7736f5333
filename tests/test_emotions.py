"""Tests for emotions module (emotion parameter synthesizer)."""

import itertools

import pytest

from narration_producer.emotions import (
    EMOTIONS,
    available_emotions,
    is_valid_emotion,
    normalize_emotion,
    synthesize,
)
from narration_producer.models import PersonalityProfile
from narration_producer.voices import EDGE_VOICES, PERSONALITIES, build_identity


def _in_bounds(params):
    return all(0.0 <= v <= 1.0 for v in (params.stability, params.similarity_boost, params.style))


# --- Bounds ---

def test_bounds_all_emotions_all_archetypes():
    """Every known emotion blended with every archetype stays in [0, 1]."""
    for emotion, profile in itertools.product(EMOTIONS, PERSONALITIES.values()):
        assert _in_bounds(synthesize(emotion, profile))


@pytest.mark.parametrize("corner", list(itertools.product((0.0, 1.0), repeat=5)))
def test_bounds_extreme_personalities(corner):
    """Corner personalities at maximum intensity stay in [0, 1]."""
    profile = PersonalityProfile(*corner)
    for emotion in ("furious", "seductive", "weary", "unknown-label"):
        assert _in_bounds(synthesize(emotion, profile, intensity=2.0))


@pytest.mark.parametrize("intensity", [-5.0, 0.0, 1.0, 2.0, 50.0, float("inf"), float("nan")])
def test_bounds_any_intensity(intensity):
    """Out-of-range and non-finite intensities are clamped."""
    profile = PERSONALITIES["vampire_male"]
    assert _in_bounds(synthesize("angry", profile, intensity=intensity))


def test_similarity_clamped_at_one():
    """Mystique boost above 1.0 is clamped."""
    params = synthesize("seductive", PERSONALITIES["vampire_male"])
    assert params.similarity_boost == 1.0


# --- Blending ---

def test_blend_values():
    """Stability blends toward intensity, style toward formality."""
    params = synthesize("angry", PERSONALITIES["vampire_male"])
    assert params.stability == pytest.approx(0.1 * 0.7 + 0.7 * 0.3)
    assert params.style == pytest.approx(1.0 * 0.6 + 0.9 * 0.4)
    assert params.similarity_boost == pytest.approx(0.5 * 1.18)


def test_zero_intensity_keeps_base():
    """With intensity 0 only similarity is adjusted."""
    params = synthesize("sad", PERSONALITIES["werewolf_male"], intensity=0.0)
    assert params.stability == pytest.approx(0.8)
    assert params.style == pytest.approx(0.3)


def test_accepts_voice_identity():
    voice = build_identity("Count Dimitri", "vampire_male", EDGE_VOICES, "inferred")
    assert synthesize("angry", voice) == synthesize("angry", PERSONALITIES["vampire_male"])


def test_without_personality_returns_base():
    params = synthesize("neutral")
    assert (params.stability, params.similarity_boost, params.style) == (0.6, 0.8, 0.5)
    assert params.speaker_boost is False


# --- Speaker boost ---

def test_speaker_boost_from_dominance():
    """Dominant personalities force speaker boost on calm emotions."""
    assert synthesize("sad", PERSONALITIES["vampire_male"]).speaker_boost is True
    assert synthesize("sad", PERSONALITIES["fairy_female"]).speaker_boost is False


def test_speaker_boost_from_emotion():
    assert synthesize("angry", PERSONALITIES["fairy_female"]).speaker_boost is True


# --- Labels ---

def test_unknown_emotion_is_neutral():
    assert normalize_emotion("flabbergasted-ish") == "neutral"
    assert synthesize("flabbergasted-ish", PERSONALITIES["narrator"]) == \
        synthesize("neutral", PERSONALITIES["narrator"])


def test_none_emotion_is_neutral():
    assert normalize_emotion(None) == "neutral"


@pytest.mark.parametrize("label,expected", [
    ("Seductively", "seductive"),
    ("angrily", "angry"),
    ("nervously", "nervous"),
    ("sultry", "seductive"),
    ("growling", "angry"),
    ("whispered", "whispering"),
    ("  Furious ", "furious"),
])
def test_normalize_emotion(label, expected):
    assert normalize_emotion(label) == expected


def test_available_emotions_sorted():
    names = available_emotions()
    assert names == sorted(names)
    assert len(names) >= 90
    assert "neutral" in names


def test_is_valid_emotion():
    assert is_valid_emotion("Seductive")
    assert not is_valid_emotion("seductively")
