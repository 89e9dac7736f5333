"""Artifact store for assembled narration audio and its JSON manifest."""

import asyncio
import json
import logging
import os
import re

from narration_producer.constants import OUTPUT_DIR

logger = logging.getLogger(__name__)


class ArtifactUploadError(Exception):
    """The store could not persist an artifact."""


def slug_from_name(name: str) -> str:
    """Convert a story id or filename to a filesystem slug.

    "Tell-Tale Heart.txt" → "tell_tale_heart"
    "/path/to/The Open Window.txt" → "the_open_window"
    """
    basename = os.path.splitext(os.path.basename(name))[0]
    # Replace non-alphanumeric with underscore, collapse multiples, strip edges
    slug = re.sub(r"[^a-zA-Z0-9]+", "_", basename).strip("_").lower()
    return slug or "story"


def write_artifact(directory: str, filename: str, data: dict) -> str:
    """Write JSON artifact to directory/filename.

    Returns path to the written file.
    """
    path = os.path.join(directory, filename)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    return path


class LocalArtifactStore:
    """Writes artifacts under root/<slug>/ and returns the file path as ref.

    Any object with an async ``upload(data, filename, metadata=None)`` that
    returns a reference string can stand in for this store.
    """

    def __init__(self, root: str = OUTPUT_DIR):
        self.root = root

    def _write(self, data: bytes, filename: str, metadata: dict | None) -> str:
        stem, ext = os.path.splitext(os.path.basename(filename))
        slug = slug_from_name(stem)
        project_dir = os.path.join(self.root, slug)
        os.makedirs(project_dir, exist_ok=True)

        path = os.path.join(project_dir, slug + ext)
        with open(path, "wb") as f:
            f.write(data)
        if metadata is not None:
            write_artifact(project_dir, "manifest.json", metadata)
        return path

    async def upload(self, data: bytes, filename: str, metadata: dict | None = None) -> str:
        try:
            path = await asyncio.to_thread(self._write, data, filename, metadata)
        except OSError as e:
            raise ArtifactUploadError(f"Could not write {filename}: {e}") from e
        logger.info("Stored %s (%d bytes)", path, len(data))
        return path
