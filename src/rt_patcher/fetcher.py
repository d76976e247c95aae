# fetcher.py
# Checksum-gated downloads.
#
# Guarantees: fetch_verified() either returns the path of a file whose
# SHA-256 matches the upstream manifest, or raises. There is no
# "trust it anyway" path and nothing is retried. A file that fails
# verification is deleted before the error propagates.

import hashlib
import logging
from pathlib import Path
from urllib.parse import urlparse

import httpx

from rt_patcher.errors import (
    ChecksumMismatchError,
    ChecksumMissingError,
    DownloadError,
    ManifestUnavailableError,
)
from rt_patcher.models import DownloadArtifact

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def filename_from_url(url: str) -> str:
    """Final path segment of the URL; the artifact is saved under this name."""
    name = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    if not name:
        raise DownloadError(f"Cannot derive a filename from {url!r}.")
    return name


def file_digest(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def find_manifest_entry(manifest: str, filename: str) -> str | None:
    """
    Return the digest listed for `filename`, or None.

    Lines are `<digest> <filename>` as written by sha256sum; a leading `*`
    (binary mode marker) on the filename is ignored. Lines that are not of
    that shape, such as the PGP armor around a signed manifest, never match.
    """
    for line in manifest.splitlines():
        fields = line.split()
        if len(fields) != 2:
            continue
        digest, name = fields
        if name.lstrip("*") == filename:
            return digest.lower()
    return None


def _download(client: httpx.Client, url: str, destination: Path) -> None:
    with client.stream("GET", url) as response:
        response.raise_for_status()
        with destination.open("wb") as fh:
            for chunk in response.iter_bytes(CHUNK_SIZE):
                fh.write(chunk)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def fetch_verified(
    source_url: str,
    manifest_url: str,
    *,
    dest_dir: str | Path = ".",
    client: httpx.Client | None = None,
) -> Path:
    """
    Download `source_url` into `dest_dir` and verify it against `manifest_url`.

    Raises DownloadError, ManifestUnavailableError, ChecksumMissingError or
    ChecksumMismatchError. Callers treat all of them as fatal.
    """
    filename = filename_from_url(source_url)
    artifact = DownloadArtifact(
        url=source_url,
        destination=Path(dest_dir) / filename,
        manifest_url=manifest_url,
        expected_entry=filename,
    )

    owns_client = client is None
    if client is None:
        # No timeout: a slow mirror blocks the step rather than failing it.
        client = httpx.Client(follow_redirects=True, timeout=None)

    try:
        logger.info("Downloading %s -> %s", artifact.url, artifact.destination)
        try:
            _download(client, artifact.url, artifact.destination)
        except httpx.HTTPError as exc:
            artifact.destination.unlink(missing_ok=True)
            raise DownloadError(f"Download of {artifact.url} failed: {exc}") from exc

        logger.info("Downloading manifest %s", artifact.manifest_url)
        try:
            response = client.get(artifact.manifest_url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            artifact.destination.unlink(missing_ok=True)
            raise ManifestUnavailableError(f"no checksum file for {filename}: {exc}") from exc
    finally:
        if owns_client:
            client.close()

    expected = find_manifest_entry(response.text, artifact.expected_entry)
    if expected is None:
        artifact.destination.unlink(missing_ok=True)
        raise ChecksumMissingError(f"{filename} checksum not found in {artifact.manifest_url}")

    actual = file_digest(artifact.destination)
    if actual != expected:
        artifact.destination.unlink(missing_ok=True)
        logger.error("Checksum mismatch for %s: expected %s, got %s", filename, expected, actual)
        raise ChecksumMismatchError(f"{filename} checksum FAIL (expected {expected}, got {actual})")

    logger.info("Checksum ok for %s (%s)", filename, actual)
    return artifact.destination
