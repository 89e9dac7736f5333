"""Speaker → voice identity resolution and cast analysis."""

import json
import logging
import os
import re
from collections import Counter
from dataclasses import dataclass, replace

from narration_producer.models import Segment, VoiceIdentity, PersonalityProfile
from narration_producer.constants import (
    CREATURE_GENRES,
    DEFAULT_EMOTION,
    DEFAULT_GENDER,
    LARGE_CAST_THRESHOLD,
    NEUTRAL_HEAVY_RATIO,
    MIN_EMOTION_VARIETY,
)
from narration_producer.parser import is_narrator_label

logger = logging.getLogger(__name__)

ARCHETYPES = (
    "vampire_male", "vampire_female",
    "werewolf_male", "werewolf_female",
    "fairy_male", "fairy_female",
    "human_male", "human_female",
    "narrator",
)

# Neural voices for edge-tts, one per archetype
EDGE_VOICES = {
    "vampire_male": "en-GB-ThomasNeural",
    "vampire_female": "en-GB-SoniaNeural",
    "werewolf_male": "en-US-DavisNeural",
    "werewolf_female": "en-AU-NatashaNeural",
    "fairy_male": "en-IE-ConnorNeural",
    "fairy_female": "en-IE-EmilyNeural",
    "human_male": "en-US-TonyNeural",
    "human_female": "en-US-JennyNeural",
    "narrator": "en-US-RogerNeural",
}

# ElevenLabs voice IDs, one per archetype
ELEVENLABS_VOICES = {
    "vampire_male": "pNInz6obpgDQGcFmaJgB",
    "vampire_female": "EXAVITQu4vr4xnSDxMaL",
    "werewolf_male": "ErXwobaYiN019PkySvjV",
    "werewolf_female": "MF3mGyEYCl7XYWbV9V6O",
    "fairy_male": "AZnzlk1XvdvUeBnXmlld",
    "fairy_female": "21m00Tcm4TlvDq8ikWAM",
    "human_male": "VR6AewLTigWG4xSOukaG",
    "human_female": "jsCqWAovK2LkecY7zXl4",
    "narrator": "onwK4e9ZLuTAKqWW03F9",
}

VOICE_TABLES = {
    "edge": EDGE_VOICES,
    "elevenlabs": ELEVENLABS_VOICES,
    "none": EDGE_VOICES,
}

PERSONALITIES = {
    "vampire_male": PersonalityProfile(formality=0.9, intensity=0.7, warmth=0.2, dominance=0.8, mystique=0.9),
    "vampire_female": PersonalityProfile(formality=0.8, intensity=0.8, warmth=0.3, dominance=0.7, mystique=0.9),
    "werewolf_male": PersonalityProfile(formality=0.3, intensity=0.9, warmth=0.7, dominance=0.8, mystique=0.4),
    "werewolf_female": PersonalityProfile(formality=0.4, intensity=0.8, warmth=0.8, dominance=0.7, mystique=0.5),
    "fairy_male": PersonalityProfile(formality=0.6, intensity=0.5, warmth=0.6, dominance=0.5, mystique=0.8),
    "fairy_female": PersonalityProfile(formality=0.7, intensity=0.4, warmth=0.8, dominance=0.4, mystique=0.8),
    "human_male": PersonalityProfile(formality=0.5, intensity=0.6, warmth=0.6, dominance=0.5, mystique=0.3),
    "human_female": PersonalityProfile(formality=0.5, intensity=0.6, warmth=0.7, dominance=0.5, mystique=0.3),
    "narrator": PersonalityProfile(formality=0.7, intensity=0.4, warmth=0.5, dominance=0.6, mystique=0.5),
}

# Creature nouns: a match is certain
CREATURE_NOUNS = {
    "vampire": {"vampire", "vampyre", "vampiress", "nosferatu", "bloodsucker"},
    "werewolf": {"werewolf", "lycan", "lycanthrope", "wolf", "wolfman"},
    "fairy": {"fairy", "faerie", "fae", "fey", "pixie", "sprite", "nymph", "sylph"},
}

# Titles, ranks and famous names: a match is an inference
CREATURE_HINTS = {
    "vampire": {"count", "countess", "baron", "baroness", "dracula", "vlad",
                "alucard", "carmilla", "lilith", "fang", "nightshade"},
    "werewolf": {"alpha", "beta", "omega", "pack", "beast", "fenrir",
                 "howl", "claw", "luna"},
    "fairy": {"titania", "oberon", "puck", "mab", "seelie", "unseelie",
              "aurora", "glimmer"},
}

# Titles that mark the protagonist; they take the story's creature genre
# Shorter creature words ("fae", "mab") only match as whole words
MIN_COMPOUND_LENGTH = 4

PROTAGONIST_TITLES = {"lady", "lord", "prince", "princess", "duke", "duchess",
                      "king", "queen", "master", "mistress"}

FEMALE_TOKENS = {
    "lady", "queen", "princess", "duchess", "countess", "baroness", "miss", "mrs",
    "ms", "madam", "madame", "mistress", "woman", "girl", "sister", "mother",
    "vampiress", "bella", "sarah", "luna", "anna", "emma", "sophia", "isabella",
    "olivia", "emily", "lily", "carmilla", "lilith", "aurora", "titania",
    "morgana", "arabella", "victoria", "elizabeth", "catherine", "charlotte",
    "elena", "maria", "aria", "rose", "mab",
}

MALE_TOKENS = {
    "lord", "king", "prince", "duke", "count", "baron", "master", "mr", "sir",
    "man", "boy", "brother", "father", "adam", "alex", "alexander", "damien",
    "gabriel", "lucas", "adrian", "marcus", "sebastian", "nicholas", "dimitri",
    "dracula", "vlad", "alucard", "fenrir", "oberon", "lucifer", "puck",
}

_TOKEN_RE = re.compile(r"[a-z]+")


@dataclass(frozen=True)
class Decision:
    """Outcome of one heuristic: certain, inferred (with confidence) or default."""
    kind: str          # "certain" | "inferred" | "default"
    value: str
    confidence: float = 1.0


def _tokens(label: str) -> list[str]:
    return _TOKEN_RE.findall(label.lower())


def _names_creature(token: str, words: set) -> bool:
    """Whole-word match, or a compound containing a creature word ("moonwolf")."""
    if token in words:
        return True
    return any(len(w) >= MIN_COMPOUND_LENGTH and w in token for w in words)


def _hints_creature(token: str, words: set) -> bool:
    """Whole-word match, or a compound ending in a hint ("bloodfang")."""
    if token in words:
        return True
    return any(len(w) >= MIN_COMPOUND_LENGTH and token.endswith(w) for w in words)


def infer_gender(label: str) -> Decision:
    """Vote female/male from honorifics and name fragments in the label."""
    tokens = _tokens(label)
    female = sum(1 for t in tokens if t in FEMALE_TOKENS)
    male = sum(1 for t in tokens if t in MALE_TOKENS)
    if female == male:
        return Decision("default", DEFAULT_GENDER, 0.0)
    value = "female" if female > male else "male"
    return Decision("inferred", value, abs(female - male) / (female + male))


def infer_creature(label: str, story_genre: str | None = None,
                   protagonists: frozenset = frozenset()) -> Decision:
    """Ordered heuristic: creature words → narrator → protagonist → human."""
    tokens = _tokens(label)

    nouns = [c for c in CREATURE_GENRES
             if any(_names_creature(t, CREATURE_NOUNS[c]) for t in tokens)]
    if len(nouns) == 1:
        return Decision("certain", nouns[0])

    votes = Counter()
    for creature in CREATURE_GENRES:
        votes[creature] = sum(1 for t in tokens if _hints_creature(t, CREATURE_HINTS[creature]))
        if creature in nouns:
            votes[creature] += 2
    total = sum(votes.values())
    if total:
        best = max(votes.values())
        tied = [c for c in CREATURE_GENRES if votes[c] == best]
        winner = story_genre if story_genre in tied else tied[0]
        return Decision("inferred", winner, best / total)

    if is_narrator_label(label):
        return Decision("certain", "narrator")

    is_protagonist = (
        label.strip().lower() in protagonists
        or any(t in PROTAGONIST_TITLES for t in tokens)
    )
    if is_protagonist and story_genre in CREATURE_GENRES:
        return Decision("inferred", story_genre, 0.5)

    return Decision("default", "human", 0.0)


def archetype_for(creature: str, gender: str) -> str:
    if creature == "narrator":
        return "narrator"
    return f"{creature}_{gender}"


def build_identity(label: str, archetype: str, voice_table: dict,
                   source: str, voice_handle: str | None = None) -> VoiceIdentity:
    """Create a VoiceIdentity from the static archetype tables."""
    if archetype not in PERSONALITIES:
        raise ValueError(f"Unknown archetype: {archetype}")
    creature, _, gender = archetype.partition("_")
    return VoiceIdentity(
        speaker_label=label,
        archetype=archetype,
        creature=creature,
        gender=gender or "neutral",
        provider_voice_handle=voice_handle or voice_table[archetype],
        personality=PERSONALITIES[archetype],
        source=source,
    )


def identify_speaker(label: str, story_genre: str | None, voice_table: dict,
                     protagonists: frozenset = frozenset()) -> VoiceIdentity:
    """Resolve one label with the heuristics alone."""
    creature = infer_creature(label, story_genre, protagonists)
    if creature.value == "narrator":
        return build_identity(label, "narrator", voice_table, creature.kind)
    gender = infer_gender(label)
    archetype = archetype_for(creature.value, gender.value)
    logger.debug(
        "Resolved %r → %s (creature %s/%s, gender %s/%s)",
        label, archetype, creature.kind, creature.value, gender.kind, gender.value,
    )
    return build_identity(label, archetype, voice_table, creature.kind)


def _override_identity(label: str, entry, voice_table: dict, story_genre: str | None) -> VoiceIdentity:
    """Build an identity from a manual override entry.

    An entry is an archetype name, or a dict with optional "archetype" and
    "voice" keys. A dict without an archetype keeps the heuristic archetype.
    """
    if isinstance(entry, str):
        entry = {"archetype": entry}
    if not isinstance(entry, dict):
        logger.warning("Ignoring malformed voice override for %r: %r", label, entry)
        entry = {}
    archetype = entry.get("archetype")
    if archetype not in PERSONALITIES:
        if archetype:
            logger.warning("Unknown archetype %r in override for %r, using heuristics", archetype, label)
        archetype = identify_speaker(label, story_genre, voice_table).archetype
    return build_identity(label, archetype, voice_table, "override", entry.get("voice"))


def _alias_map(overrides: dict) -> dict:
    aliases = {}
    for primary, entry in overrides.items():
        if not isinstance(entry, dict):
            continue
        names = entry.get("aliases", [])
        if not isinstance(names, (list, tuple)):
            logger.warning("Ignoring aliases for %r: expected a list, got %r", primary, names)
            continue
        for alias in names:
            if isinstance(alias, str):
                aliases[alias.strip().lower()] = primary
    return aliases


def resolve(
    segments: list[Segment],
    story_genre: str | None = None,
    manual_overrides: dict | None = None,
    voice_table: dict | None = None,
    protagonists=(),
) -> list[Segment]:
    """Return copies of segments with a VoiceIdentity on each.

    Labels are resolved in order of first appearance; every later segment
    with the same label reuses the same identity. Overrides win over the
    heuristics; an alias listed in an override resolves to its primary.
    """
    overrides = manual_overrides or {}
    table = voice_table or EDGE_VOICES
    aliases = _alias_map(overrides)
    protagonist_set = frozenset(p.strip().lower() for p in protagonists)
    genre = story_genre.lower() if story_genre else None

    identities: dict[str, VoiceIdentity] = {}
    resolved = []
    for seg in segments:
        label = seg.speaker_label
        if label not in identities:
            primary = aliases.get(label.strip().lower())
            if label in overrides:
                identities[label] = _override_identity(label, overrides[label], table, genre)
            elif primary is not None:
                if primary not in identities:
                    identities[primary] = _override_identity(primary, overrides[primary], table, genre)
                identities[label] = identities[primary]
            else:
                identities[label] = identify_speaker(label, genre, table, protagonist_set)
        resolved.append(replace(seg, voice=identities[label]))
    return resolved


def voice_mapping(segments: list[Segment]) -> dict[str, VoiceIdentity]:
    """Speaker label → identity, first-seen order."""
    mapping = {}
    for seg in segments:
        if seg.voice is not None and seg.speaker_label not in mapping:
            mapping[seg.speaker_label] = seg.voice
    return mapping


def voices_for_creature(genre: str | None) -> list[str]:
    """Archetypes a story of the given creature genre can cast."""
    base = ["human_male", "human_female", "narrator"]
    if genre in CREATURE_GENRES:
        return base + [f"{genre}_male", f"{genre}_female"]
    return base


def validate_voice_configuration(voice_table: dict) -> list[str]:
    """Return archetypes with no usable voice handle (empty list when valid)."""
    return [a for a in ARCHETYPES if not voice_table.get(a)]


def load_cast(story_path: str) -> dict:
    """Load the .cast.json sidecar overrides if present.

    Returns the label → entry mapping, or an empty dict if the file is
    missing or malformed.
    """
    base = os.path.splitext(story_path)[0]
    cast_path = base + ".cast.json"
    if not os.path.exists(cast_path):
        return {}
    try:
        with open(cast_path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        # ValueError covers JSONDecodeError and UnicodeDecodeError
        logger.warning("Unreadable cast file %s (%s), using heuristic voices", cast_path, e)
        return {}
    cast = data.get("cast", {}) if isinstance(data, dict) else {}
    if not isinstance(cast, dict):
        logger.warning("Cast file %s has no 'cast' mapping, ignoring", cast_path)
        return {}
    return cast


def analyze_voice_consistency(segments: list[Segment]) -> dict:
    """Speaker/emotion statistics for a parsed story, with casting advice."""
    speaker_count = Counter(seg.speaker_label for seg in segments if seg.kind == "dialogue")
    emotions = Counter(seg.emotion_label or DEFAULT_EMOTION for seg in segments if seg.kind == "dialogue")
    tagged = sum(speaker_count.values())

    recommendations = []
    if len(speaker_count) > LARGE_CAST_THRESHOLD:
        recommendations.append(
            f"Large cast detected ({len(speaker_count)} speakers). Consider grouping minor characters."
        )
    if tagged and emotions[DEFAULT_EMOTION] > tagged * NEUTRAL_HEAVY_RATIO:
        recommendations.append(
            "Consider adding more emotional variety to dialogue for richer audio."
        )
    if tagged and len(emotions) < MIN_EMOTION_VARIETY:
        recommendations.append(
            "Limited emotional range detected. Consider expanding emotional expressions."
        )

    return {
        "speakers": list(speaker_count),
        "speaker_count": dict(speaker_count),
        "emotion_distribution": dict(emotions),
        "recommendations": recommendations,
    }
