"""Parse marked-up story text into ordered narration/dialogue segments."""

import html
import math
import re

from narration_producer.models import Segment
from narration_producer.constants import (
    SEGMENT_SPLIT_THRESHOLD,
    NARRATOR_LABEL,
    WORDS_PER_SECOND,
    MIN_SEGMENT_MS,
    PAUSE_NARRATOR_TRANSITION_MS,
)

# [Label]: or [Label, emotion]:, where label and emotion exclude "]", "," and "["
_TAG_RE = re.compile(r"\[\s*([^\[\],]+?)\s*(?:,\s*([^\[\],]*?)\s*)?\]\s*:")

# Block-level HTML that ends a paragraph
_BLOCK_BREAK_RE = re.compile(r"</p\s*>|<br\s*/?>|</div\s*>|<p(?:\s[^>]*)?>", re.IGNORECASE)
_HTML_TAG_RE = re.compile(r"<[^>]*>")
_PARAGRAPH_RE = re.compile(r"\n\s*\n")

# Quote glyphs that wrap dialogue lines
_QUOTE_CHARS = "\"'“”‘’«»"

_NARRATOR_LABELS = {"narrator", "narration", "description"}


def is_narrator_label(label: str) -> bool:
    """True for labels that name the narrator rather than a character."""
    return label.strip().lower() in _NARRATOR_LABELS


def strip_markup(text: str) -> str:
    """Remove HTML markup, turning block boundaries into paragraph breaks."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _BLOCK_BREAK_RE.sub("\n\n", text)
    text = _HTML_TAG_RE.sub("", text)
    return html.unescape(text)


def _collapse(text: str) -> str:
    return " ".join(text.split())


def _strip_quotes(text: str) -> str:
    """Strip one layer of wrapping quote glyphs from a dialogue line."""
    text = text.strip()
    if len(text) >= 2 and text[0] in _QUOTE_CHARS and text[-1] in _QUOTE_CHARS:
        return text[1:-1].strip()
    return text


def _split_long_segment(text: str, threshold: int = SEGMENT_SPLIT_THRESHOLD) -> list[str]:
    """Split text longer than threshold at sentence boundaries."""
    if len(text) <= threshold:
        return [text]

    sentences = re.split(r"(?<=[.!?])\s+", text)
    chunks = []
    current = ""

    for sentence in sentences:
        if current and len(current) + len(sentence) + 1 > threshold:
            chunks.append(current.strip())
            current = sentence
        else:
            current = (current + " " + sentence).strip() if current else sentence

    if current.strip():
        chunks.append(current.strip())

    return chunks if chunks else [text]


def _extract_from_paragraph(paragraph: str) -> list[tuple[str, str | None, str, str]]:
    """Extract (label, emotion, raw, clean) pieces from a single paragraph.

    Text before the first tag, or a paragraph with no tags at all, belongs to
    the narrator. A tag's text runs up to the next tag or the paragraph end.
    """
    pieces = []
    matches = list(_TAG_RE.finditer(paragraph))

    lead = paragraph[:matches[0].start()] if matches else paragraph
    if lead.strip():
        pieces.append((NARRATOR_LABEL, None, lead.strip(), _collapse(lead)))

    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(paragraph)
        raw = paragraph[match.start():end].strip()
        body = _collapse(_strip_quotes(_collapse(paragraph[match.end():end])))
        if not body:
            continue
        label = _collapse(match.group(1))
        emotion = match.group(2)
        emotion = emotion.strip().lower() if emotion and emotion.strip() else None
        pieces.append((label, emotion, raw, body))

    return pieces


def segment(markup_text: str) -> list[Segment]:
    """Parse marked-up story text into an ordered list of Segments.

    Recognizes ``[Label]:`` and ``[Label, Emotion]:`` tags; everything else is
    narration. Never raises on malformed input, and never returns an empty
    list for a non-empty string.
    """
    if not markup_text:
        return []

    body = strip_markup(markup_text)
    paragraphs = _PARAGRAPH_RE.split(body)

    segments = []
    for para in paragraphs:
        if not para.strip():
            continue
        for label, emotion, raw, clean in _extract_from_paragraph(para):
            kind = "narration" if is_narrator_label(label) else "dialogue"
            for chunk in _split_long_segment(clean):
                segments.append(Segment(
                    order=len(segments),
                    kind=kind,
                    speaker_label=label,
                    raw_text=raw,
                    clean_text=chunk,
                    emotion_label=emotion,
                ))

    if not segments:
        # Nothing survived markup stripping, keep the input as one narration block
        segments.append(Segment(
            order=0,
            kind="narration",
            speaker_label=NARRATOR_LABEL,
            raw_text=markup_text,
            clean_text=_collapse(body),
        ))

    return segments


def estimate_segment_ms(text: str) -> int:
    """Estimated spoken duration of text at the fixed words-per-second rate."""
    words = len(text.split())
    return max(MIN_SEGMENT_MS, int(math.ceil(words / WORDS_PER_SECOND * 1000)))


def estimate_duration(segments: list[Segment]) -> float:
    """Pre-flight estimate of the narrated length in seconds.

    Uses the longest inter-segment pause so the estimate errs long.
    """
    if not segments:
        return 0.0
    total_ms = sum(estimate_segment_ms(seg.clean_text) for seg in segments)
    total_ms += PAUSE_NARRATOR_TRANSITION_MS * (len(segments) - 1)
    return total_ms / 1000
