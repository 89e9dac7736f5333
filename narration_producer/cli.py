"""CLI interface: narrate stories and inspect casting decisions."""

import argparse
import asyncio
import dataclasses
import json
import logging
import os
import shutil
import sys

from narration_producer.artifacts import LocalArtifactStore, slug_from_name
from narration_producer.config import Settings, PROVIDERS, OUTPUT_FORMATS
from narration_producer.constants import CREATURE_GENRES, VERSION
from narration_producer.emotions import available_emotions, normalize_emotion, synthesize
from narration_producer.jobs import JobManager
from narration_producer.models import JobStatus
from narration_producer.parser import segment, estimate_duration
from narration_producer.tts import build_provider
from narration_producer.voices import (
    PERSONALITIES,
    analyze_voice_consistency,
    load_cast,
    resolve,
    validate_voice_configuration,
    voices_for_creature,
)


def _check_ffmpeg():
    """Verify ffmpeg is installed."""
    if not shutil.which("ffmpeg"):
        print("Error: ffmpeg is required for MP3 audio but not found.", file=sys.stderr)
        print("Install it, or set NARRATION_PROVIDER=none and NARRATION_OUTPUT_FORMAT=wav.", file=sys.stderr)
        raise SystemExit(1)


def _read_story(file_path: str) -> str:
    if not os.path.exists(file_path):
        print(f"Error: File not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)

    with open(file_path) as f:
        text = f.read()

    if not text.strip():
        print(f"Error: File is empty: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    return text


def _settings(args) -> Settings:
    settings = Settings.from_env()
    if getattr(args, "provider", None):
        settings = dataclasses.replace(settings, provider=args.provider, voice_overrides={})
    if getattr(args, "format", None):
        settings = dataclasses.replace(settings, output_format=args.format)
    if getattr(args, "output_dir", None):
        settings = dataclasses.replace(settings, output_dir=args.output_dir)
    return settings


async def _run_job(manager: JobManager, story_id: str, text: str, genre, overrides) -> dict:
    submitted = manager.submit(story_id, text, creature_genre=genre, voice_overrides=overrides)
    job_id = submitted["job_id"]
    print(f"Job {job_id} queued (estimated {submitted['estimated_duration']:.1f}s of audio)")

    last = None
    async for event in manager.subscribe(job_id):
        line = f"  [{event['progress']['percentage']:3d}%] {event['progress']['message'] or event['status']}"
        if line != last:
            print(line)
            last = line
    await manager.wait(job_id)
    return manager.status(job_id)


def cmd_narrate(args):
    """Narrate a story file into one audio artifact."""
    text = _read_story(args.file)
    settings = _settings(args)
    if settings.provider != "none" or settings.output_format == "mp3":
        _check_ffmpeg()

    missing = validate_voice_configuration(settings.voice_table())
    if missing:
        print(f"Error: No voice configured for: {', '.join(missing)}", file=sys.stderr)
        raise SystemExit(1)

    overrides = load_cast(args.file)
    story_id = args.story_id or slug_from_name(args.file)
    manager = JobManager(build_provider(settings), LocalArtifactStore(settings.output_dir), settings=settings)

    status = asyncio.run(_run_job(manager, story_id, text, args.genre, overrides))

    if status["status"] != JobStatus.COMPLETED.value:
        error = status["error"] or {}
        print(f"Error: Narration {status['status']}: {error.get('message', '')}", file=sys.stderr)
        raise SystemExit(1)

    result = manager.result(status["id"])
    print(f"Saved: {result.artifact_ref}")
    print(f"Duration: {result.duration:.1f}s, {result.byte_size} bytes")
    if result.placeholder_count:
        print(f"Warning: {result.placeholder_count} segment(s) use placeholder audio")


def cmd_parse(args):
    """Dry run: show segments and resolved voices without synthesis."""
    text = _read_story(args.file)
    settings = _settings(args)
    segments = resolve(
        segment(text),
        story_genre=args.genre,
        manual_overrides=load_cast(args.file),
        voice_table=settings.voice_table(),
    )

    if args.json:
        data = [
            {
                "order": s.order,
                "kind": s.kind,
                "speaker": s.speaker_label,
                "emotion": s.emotion_label,
                "text": s.clean_text,
                "archetype": s.voice.archetype,
                "voice": s.voice.provider_voice_handle,
                "source": s.voice.source,
            }
            for s in segments
        ]
        print(json.dumps(data, indent=2))
        return

    for s in segments:
        emotion = f", {s.emotion_label}" if s.emotion_label else ""
        preview = s.clean_text if len(s.clean_text) <= 60 else s.clean_text[:57] + "..."
        print(f"  {s.order:3d} [{s.speaker_label}{emotion}] ({s.voice.archetype}) {preview}")
    print(f"{len(segments)} segments, estimated {estimate_duration(segments):.1f}s")


def cmd_analyze(args):
    """Cast and emotion statistics with recommendations."""
    text = _read_story(args.file)
    report = analyze_voice_consistency(segment(text))
    print(f"Speakers ({len(report['speakers'])}):")
    for name, count in report["speaker_count"].items():
        print(f"  {name}: {count} line(s)")
    print("Emotions:")
    for name, count in sorted(report["emotion_distribution"].items(), key=lambda kv: -kv[1]):
        print(f"  {name}: {count}")
    if report["recommendations"]:
        print("Recommendations:")
        for rec in report["recommendations"]:
            print(f"  - {rec}")


def cmd_emotions(args):
    """List emotions, or show parameters for one emotion."""
    if not args.label:
        print("Available emotions:")
        for name in available_emotions():
            print(f"  {name}")
        return

    if args.archetype not in PERSONALITIES:
        print(f"Error: Unknown archetype: {args.archetype}", file=sys.stderr)
        raise SystemExit(1)
    params = synthesize(args.label, PERSONALITIES[args.archetype], args.intensity)
    print(f"{args.label} → {normalize_emotion(args.label)} ({args.archetype})")
    print(f"  stability:        {params.stability:.2f}")
    print(f"  similarity_boost: {params.similarity_boost:.2f}")
    print(f"  style:            {params.style:.2f}")
    print(f"  speaker_boost:    {params.speaker_boost}")


def cmd_voices(args):
    """List archetype voices for the configured provider."""
    settings = _settings(args)
    table = settings.voice_table()
    archetypes = voices_for_creature(args.genre) if args.genre else list(table)
    print(f"Voices ({settings.provider}):")
    for archetype in archetypes:
        print(f"  {archetype:16s} {table.get(archetype) or '(missing)'}")


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="narration-producer",
        description="Narration Producer — multi-voice narration for creature stories",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # narrate
    narrate_parser = subparsers.add_parser("narrate", help="Narrate a story file")
    narrate_parser.add_argument("file", help="Path to the marked-up story file")
    narrate_parser.add_argument("--genre", choices=CREATURE_GENRES, help="Story creature genre")
    narrate_parser.add_argument("--story-id", help="Story id (default: slug of the filename)")
    narrate_parser.add_argument("--provider", choices=PROVIDERS, help="Override NARRATION_PROVIDER")
    narrate_parser.add_argument("--format", choices=OUTPUT_FORMATS, help="Override NARRATION_OUTPUT_FORMAT")
    narrate_parser.add_argument("--output-dir", help="Override NARRATION_OUTPUT_DIR")
    narrate_parser.set_defaults(func=cmd_narrate)

    # parse
    parse_parser = subparsers.add_parser("parse", help="Show segments and voices (no audio)")
    parse_parser.add_argument("file", help="Path to the marked-up story file")
    parse_parser.add_argument("--genre", choices=CREATURE_GENRES, help="Story creature genre")
    parse_parser.add_argument("--provider", choices=PROVIDERS, help="Voice table to show")
    parse_parser.add_argument("--json", action="store_true", help="Print JSON")
    parse_parser.set_defaults(func=cmd_parse)

    # analyze
    analyze_parser = subparsers.add_parser("analyze", help="Cast and emotion statistics")
    analyze_parser.add_argument("file", help="Path to the marked-up story file")
    analyze_parser.set_defaults(func=cmd_analyze)

    # emotions
    emotions_parser = subparsers.add_parser("emotions", help="List emotions or show parameters")
    emotions_parser.add_argument("label", nargs="?", help="Emotion label to inspect")
    emotions_parser.add_argument("--archetype", default="narrator", help="Personality to blend with")
    emotions_parser.add_argument("--intensity", type=float, default=1.0, help="Blend intensity (0-2)")
    emotions_parser.set_defaults(func=cmd_emotions)

    # voices
    voices_parser = subparsers.add_parser("voices", help="List archetype voices")
    voices_parser.add_argument("--genre", choices=CREATURE_GENRES, help="Only voices a genre can cast")
    voices_parser.add_argument("--provider", choices=PROVIDERS, help="Voice table to show")
    voices_parser.set_defaults(func=cmd_voices)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    args.func(args)
