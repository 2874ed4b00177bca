"""GTFS feed fetcher: download (or read) an archive and stage it on disk."""

from __future__ import annotations

import asyncio
import hashlib
import io
import shutil
import zipfile
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import httpx

from transit_search.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 120
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 2.0

# Local file header signature
ZIP_MAGIC = b"PK\x03\x04"


class FetchError(Exception):
    """A remote feed could not be downloaded."""


class InvalidZipError(Exception):
    """Feed content is not a ZIP archive."""


@dataclass(frozen=True)
class StagedFeed:
    """A feed archive extracted into its own staging directory."""

    source: str
    path: Path
    feed_hash: str


def is_remote(source: str) -> bool:
    return urlparse(source).scheme in ("http", "https")


def staging_dir_for(staging_root: str | Path, source: str) -> Path:
    """One directory per source so concurrent feeds never share files."""
    digest = hashlib.sha256(source.encode("utf-8")).hexdigest()[:16]
    return Path(staging_root) / digest


class GtfsFeedFetcher:
    """Fetches a GTFS archive from a URL or local path and extracts it."""

    def __init__(
        self,
        timeout_sec: int = DEFAULT_TIMEOUT_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
    ) -> None:
        self.timeout_sec = timeout_sec
        self.max_retries = max_retries
        self.backoff_base = backoff_base

    async def stage(self, source: str, staging_root: str | Path) -> StagedFeed:
        """Fetch `source` and extract it under `staging_root`.

        Raises:
            FetchError: If a remote download exhausted its retries.
            FileNotFoundError: If a local path does not exist.
            InvalidZipError: If the content is not a ZIP archive.
        """
        if is_remote(source):
            data, feed_hash = await self.fetch_remote(source)
        else:
            data, feed_hash = await asyncio.to_thread(self.fetch_local, source)

        target = staging_dir_for(staging_root, source)
        await asyncio.to_thread(self.extract, data, target)
        logger.info("GTFS feed staged", source=source, path=str(target), feed_hash=feed_hash)
        return StagedFeed(source=source, path=target, feed_hash=feed_hash)

    async def fetch_remote(self, url: str) -> tuple[bytes, str]:
        """Download an archive, retrying transport and HTTP errors.

        Returns the archive bytes and their SHA-256 hex digest. Content that
        is not a ZIP is not retried.
        """
        errors: list[str] = []
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_sec),
            follow_redirects=True,
        ) as client:
            for attempt in range(1, self.max_retries + 1):
                logger.info("Fetching GTFS feed", url=url, attempt=attempt)
                try:
                    response = await client.get(url)
                    response.raise_for_status()
                except (httpx.HTTPStatusError, httpx.RequestError) as exc:
                    errors.append(str(exc))
                    if attempt == self.max_retries:
                        msg = (
                            f"Failed to fetch GTFS feed {url} after {attempt} attempts: "
                            f"{errors[-1]}"
                        )
                        raise FetchError(msg) from exc
                    delay = self.backoff_base**attempt
                    logger.warning(
                        "GTFS download failed, backing off",
                        url=url,
                        attempt=attempt,
                        delay_sec=delay,
                        error=errors[-1],
                    )
                    await asyncio.sleep(delay)
                    continue

                feed_hash = self._fingerprint(response.content)
                logger.info(
                    "GTFS feed downloaded",
                    url=url,
                    size_bytes=len(response.content),
                    feed_hash=feed_hash,
                )
                return response.content, feed_hash

        msg = f"Failed to fetch GTFS feed {url}: no attempts configured"
        raise FetchError(msg)

    def fetch_local(self, path: str | Path) -> tuple[bytes, str]:
        """Read an archive from disk; returns its bytes and SHA-256 digest."""
        path = Path(path)
        if not path.is_file():
            msg = f"GTFS archive not found: {path}"
            raise FileNotFoundError(msg)

        data = path.read_bytes()
        feed_hash = self._fingerprint(data)
        logger.info("GTFS feed read from disk", path=str(path), feed_hash=feed_hash)
        return data, feed_hash

    @staticmethod
    def extract(data: bytes, target: Path) -> Path:
        """Replace `target` with the archive's contents.

        Feeds that wrap their files in a single top-level folder are
        flattened so the resources always sit directly in `target`.
        """
        if target.exists():
            shutil.rmtree(target)
        target.mkdir(parents=True)

        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            for member in archive.infolist():
                if member.is_dir():
                    continue
                name = Path(member.filename).name
                if not name.endswith(".txt"):
                    continue
                with archive.open(member) as src, (target / name).open("wb") as dst:
                    shutil.copyfileobj(src, dst)
        return target

    @staticmethod
    def _fingerprint(data: bytes) -> str:
        """Check the ZIP signature and central directory, then hash the bytes."""
        if data[:4] != ZIP_MAGIC or not zipfile.is_zipfile(io.BytesIO(data)):
            msg = f"Feed content is not a valid ZIP archive ({len(data)} bytes)"
            raise InvalidZipError(msg)
        return hashlib.sha256(data).hexdigest()
