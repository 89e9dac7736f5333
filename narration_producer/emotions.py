"""Emotion label → bounded synthesis parameters."""

import math

from narration_producer.models import SynthesisParameters, VoiceIdentity, PersonalityProfile
from narration_producer.constants import (
    DEFAULT_EMOTION,
    EMOTION_INTENSITY_MAX,
    STABILITY_BLEND_WEIGHT,
    STYLE_BLEND_WEIGHT,
    MYSTIQUE_SIMILARITY_GAIN,
    MIN_SIMILARITY_BOOST,
    SPEAKER_BOOST_DOMINANCE,
)

# emotion: (stability, similarity_boost, style, speaker_boost)
EMOTIONS = {
    # positive
    "happy": (0.3, 0.7, 0.8, True),
    "joyful": (0.2, 0.7, 0.9, True),
    "excited": (0.1, 0.6, 0.9, True),
    "euphoric": (0.1, 0.5, 1.0, True),
    "elated": (0.2, 0.6, 0.9, True),
    "cheerful": (0.4, 0.8, 0.7, True),
    "content": (0.6, 0.9, 0.5, False),
    "satisfied": (0.7, 0.9, 0.4, False),
    "pleased": (0.5, 0.8, 0.6, False),
    "delighted": (0.3, 0.7, 0.8, True),
    # passionate and romantic
    "passionate": (0.2, 0.6, 0.9, True),
    "romantic": (0.4, 0.8, 0.7, True),
    "seductive": (0.5, 0.9, 0.8, True),
    "sensual": (0.6, 0.9, 0.7, True),
    "lustful": (0.3, 0.7, 0.9, True),
    "desire": (0.4, 0.8, 0.8, True),
    "yearning": (0.5, 0.8, 0.7, True),
    "longing": (0.6, 0.9, 0.6, False),
    "infatuated": (0.2, 0.6, 0.9, True),
    "aroused": (0.3, 0.7, 0.8, True),
    "intimate": (0.7, 0.8, 0.7, True),
    "alluring": (0.6, 0.7, 0.8, True),
    "tempting": (0.5, 0.7, 0.8, True),
    "loving": (0.8, 0.6, 0.6, False),
    # hostile
    "angry": (0.1, 0.5, 1.0, True),
    "furious": (0.0, 0.4, 1.0, True),
    "enraged": (0.0, 0.3, 1.0, True),
    "livid": (0.1, 0.4, 1.0, True),
    "irate": (0.2, 0.5, 0.9, True),
    "indignant": (0.3, 0.6, 0.8, True),
    "outraged": (0.1, 0.4, 1.0, True),
    "hostile": (0.4, 0.7, 0.8, True),
    "aggressive": (0.2, 0.5, 0.9, True),
    "violent": (0.1, 0.4, 1.0, True),
    "predatory": (0.7, 0.8, 0.8, True),
    "feral": (0.2, 0.7, 0.9, True),
    "vengeful": (0.5, 0.8, 0.8, True),
    # mysterious and dark
    "mysterious": (0.7, 0.9, 0.6, False),
    "enigmatic": (0.8, 0.9, 0.5, False),
    "cryptic": (0.7, 0.8, 0.6, False),
    "secretive": (0.8, 0.9, 0.4, False),
    "scheming": (0.6, 0.8, 0.7, True),
    "devious": (0.5, 0.7, 0.8, True),
    "sinister": (0.6, 0.8, 0.7, True),
    "ominous": (0.8, 0.9, 0.5, False),
    "foreboding": (0.7, 0.9, 0.6, False),
    "menacing": (0.5, 0.7, 0.8, True),
    "brooding": (0.6, 0.8, 0.5, True),
    "haunted": (0.5, 0.8, 0.6, True),
    "otherworldly": (0.6, 0.6, 0.7, False),
    "ethereal": (0.7, 0.5, 0.5, False),
    "ancient": (0.9, 0.8, 0.4, True),
    # vulnerable
    "sad": (0.8, 0.9, 0.3, False),
    "melancholic": (0.9, 0.9, 0.2, False),
    "sorrowful": (0.8, 0.9, 0.4, False),
    "mournful": (0.9, 0.9, 0.3, False),
    "devastated": (0.6, 0.8, 0.6, False),
    "heartbroken": (0.7, 0.8, 0.5, False),
    "vulnerable": (0.7, 0.9, 0.4, False),
    "fragile": (0.8, 0.9, 0.3, False),
    "tender": (0.8, 0.9, 0.5, False),
    "gentle": (0.9, 0.9, 0.4, False),
    "innocent": (0.8, 0.6, 0.3, False),
    "whispering": (0.8, 0.9, 0.3, True),
    # confident
    "confident": (0.6, 0.8, 0.7, True),
    "determined": (0.5, 0.8, 0.8, True),
    "resolute": (0.7, 0.9, 0.6, True),
    "commanding": (0.4, 0.7, 0.9, True),
    "authoritative": (0.5, 0.8, 0.8, True),
    "dominant": (0.3, 0.7, 0.9, True),
    "powerful": (0.4, 0.7, 0.8, True),
    "bold": (0.3, 0.6, 0.9, True),
    "fearless": (0.4, 0.7, 0.8, True),
    "brave": (0.5, 0.8, 0.7, True),
    "defiant": (0.4, 0.7, 0.8, True),
    "possessive": (0.6, 0.8, 0.8, True),
    "protective": (0.7, 0.8, 0.6, True),
    # anxious
    "nervous": (0.2, 0.6, 0.7, False),
    "anxious": (0.1, 0.5, 0.8, False),
    "worried": (0.3, 0.7, 0.6, False),
    "fearful": (0.2, 0.6, 0.7, False),
    "terrified": (0.0, 0.4, 1.0, True),
    "panicked": (0.0, 0.3, 1.0, True),
    "jittery": (0.1, 0.5, 0.8, False),
    "restless": (0.2, 0.6, 0.7, False),
    "uneasy": (0.3, 0.7, 0.6, False),
    "apprehensive": (0.4, 0.7, 0.6, False),
    "hesitant": (0.4, 0.8, 0.4, True),
    "breathless": (0.2, 0.6, 0.9, True),
    # playful
    "playful": (0.3, 0.7, 0.8, True),
    "mischievous": (0.2, 0.6, 0.9, True),
    "teasing": (0.4, 0.7, 0.8, True),
    "flirtatious": (0.5, 0.8, 0.7, True),
    "coy": (0.6, 0.8, 0.6, False),
    "impish": (0.2, 0.6, 0.9, True),
    "sassy": (0.3, 0.7, 0.8, True),
    "cheeky": (0.4, 0.7, 0.7, True),
    "witty": (0.5, 0.8, 0.7, True),
    "amused": (0.4, 0.7, 0.8, True),
    "sarcastic": (0.7, 0.7, 0.6, True),
    "mocking": (0.6, 0.7, 0.7, True),
    # complex
    "conflicted": (0.4, 0.7, 0.6, False),
    "torn": (0.3, 0.6, 0.7, False),
    "ambivalent": (0.5, 0.8, 0.5, False),
    "resigned": (0.8, 0.9, 0.3, False),
    "defeated": (0.7, 0.8, 0.4, False),
    "overwhelmed": (0.2, 0.6, 0.8, False),
    "exhausted": (0.9, 0.9, 0.2, False),
    "drained": (0.8, 0.9, 0.3, False),
    "weary": (0.9, 0.9, 0.2, False),
    "nostalgic": (0.7, 0.9, 0.5, False),
    "bittersweet": (0.6, 0.8, 0.5, True),
    "jealous": (0.4, 0.8, 0.7, True),
    "pleading": (0.4, 0.9, 0.7, True),
    "desperate": (0.3, 0.9, 0.8, True),
    # default
    "neutral": (0.6, 0.8, 0.5, False),
}

# Labels the story generator uses that are spelled differently from the table
EMOTION_ALIASES = {
    "sultry": "seductive",
    "growling": "angry",
    "snarling": "angry",
    "whispered": "whispering",
    "whisper": "whispering",
    "calm": "neutral",
    "speaking": "neutral",
    "scared": "fearful",
    "afraid": "fearful",
    "fear": "fearful",
    "anger": "angry",
    "joy": "joyful",
    "sadness": "sad",
    "love": "loving",
    "lust": "lustful",
    "amusing": "amused",
    "commanding tone": "commanding",
}


def normalize_emotion(label: str | None) -> str:
    """Map a raw emotion label onto a known table entry; unknown → neutral."""
    if not label:
        return DEFAULT_EMOTION
    key = " ".join(label.lower().split())
    if key in EMOTIONS:
        return key
    if key in EMOTION_ALIASES:
        return EMOTION_ALIASES[key]
    # Adverbs: "seductively" → "seductive", "angrily" → "angry"
    if key.endswith("ily") and key[:-3] + "y" in EMOTIONS:
        return key[:-3] + "y"
    if key.endswith("ly") and key[:-2] in EMOTIONS:
        return key[:-2]
    if key.endswith("ly") and key[:-2] + "e" in EMOTIONS:
        return key[:-2] + "e"
    return DEFAULT_EMOTION


def available_emotions() -> list[str]:
    return sorted(EMOTIONS)


def is_valid_emotion(label: str) -> bool:
    return label.strip().lower() in EMOTIONS


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    if math.isnan(value):
        return low
    return max(low, min(high, value))


def _blend(base: float, modifier: float, weight: float, intensity: float) -> float:
    share = weight * intensity
    return base * (1 - share) + modifier * share


def synthesize(
    emotion_label: str | None,
    voice: VoiceIdentity | PersonalityProfile | None = None,
    intensity: float = 1.0,
) -> SynthesisParameters:
    """Blend an emotion's base parameters with the speaker's personality.

    stability is pulled toward personality.intensity and style toward
    personality.formality, each by a weight scaled with ``intensity``;
    similarity_boost is raised by mystique. Every numeric output is clamped
    to [0, 1].
    """
    stability, similarity, style, boost = EMOTIONS[normalize_emotion(emotion_label)]

    personality = voice.personality if isinstance(voice, VoiceIdentity) else voice
    if personality is None:
        return SynthesisParameters(
            stability=_clamp(stability),
            similarity_boost=_clamp(similarity),
            style=_clamp(style),
            speaker_boost=boost,
        )

    if not math.isfinite(intensity):
        intensity = 1.0
    intensity = _clamp(intensity, 0.0, EMOTION_INTENSITY_MAX)

    stability = _blend(stability, personality.intensity, STABILITY_BLEND_WEIGHT, intensity)
    style = _blend(style, personality.formality, STYLE_BLEND_WEIGHT, intensity)
    similarity = max(MIN_SIMILARITY_BOOST, similarity * (1 + personality.mystique * MYSTIQUE_SIMILARITY_GAIN))

    return SynthesisParameters(
        stability=_clamp(stability),
        similarity_boost=_clamp(similarity),
        style=_clamp(style),
        speaker_boost=boost or personality.dominance > SPEAKER_BOOST_DOMINANCE,
    )
