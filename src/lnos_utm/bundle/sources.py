"""Ordered artifact sources: local copies first, network last."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence

import httpx
import structlog

LOGGER = structlog.get_logger("lnos_utm.bundle.sources")

CHUNK_SIZE = 1024 * 1024


class ArtifactSource(Protocol):
    label: str

    def fetch(self, destination: Path) -> bool:
        """Write the artifact to ``destination``; return ``False`` when unavailable."""


@dataclass
class LocalFileSource:
    path: Path
    label: str = "local"

    def fetch(self, destination: Path) -> bool:
        if not self.path.is_file() or self.path.stat().st_size == 0:
            return False
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(self.path, destination)
        LOGGER.info(f"Using {self.label} copy", path=str(self.path))
        return True


def download_file(client: httpx.Client, url: str, destination: Path, *, timeout: float = 60.0) -> int:
    """Stream ``url`` into ``destination`` and return the number of bytes written."""

    destination.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    with client.stream("GET", url, timeout=timeout) as response:
        response.raise_for_status()
        with destination.open("wb") as file_obj:
            for chunk in response.iter_bytes(CHUNK_SIZE):
                if chunk:
                    file_obj.write(chunk)
                    written += len(chunk)
    return written


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except OSError:
        pass


class DownloadSource:
    """Fetch an artifact over HTTP, optionally caching the result for later builds."""

    label = "download"

    def __init__(
        self,
        url: str,
        *,
        client: Optional[httpx.Client] = None,
        cache_path: Optional[Path] = None,
        timeout: float = 60.0,
    ) -> None:
        self.url = url
        self.cache_path = cache_path
        self._client = client
        self._timeout = timeout

    def fetch(self, destination: Path) -> bool:
        LOGGER.info("Downloading", url=self.url)
        partial = destination.with_name(f"{destination.name}.part")
        try:
            if self._client is not None:
                written = download_file(self._client, self.url, partial, timeout=self._timeout)
            else:
                with httpx.Client(follow_redirects=True) as client:
                    written = download_file(client, self.url, partial, timeout=self._timeout)
        except (httpx.HTTPError, OSError) as exc:
            LOGGER.warning("Download failed", url=self.url, error=str(exc))
            _discard(partial)
            return False
        if written == 0:
            LOGGER.warning("Download returned an empty file", url=self.url)
            _discard(partial)
            return False
        partial.replace(destination)

        LOGGER.info("Download complete", path=str(destination), bytes=written)
        if self.cache_path is not None and self.cache_path != destination:
            try:
                self.cache_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(destination, self.cache_path)
            except OSError as exc:
                LOGGER.debug("Could not cache download", path=str(self.cache_path), error=str(exc))
        return True


def fetch_first(sources: Sequence[ArtifactSource], destination: Path) -> Optional[str]:
    """Try each source in order; return the label of the first that succeeds."""

    for source in sources:
        if source.fetch(destination):
            return source.label
    return None
