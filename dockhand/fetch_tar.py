#!/usr/bin/env python3
"""
Artifact fetch helper.

Invoked by the sync script with a tarball URL (normally the local artifact
relay) and a destination folder. Streams the gzip tarball and unpacks it
without writing the archive to disk.

Usage:
    dockhand-fetch-tar <from-url> <to-folder>
"""

import logging
import sys
import tarfile
from typing import Iterator, List, Optional

import httpx

logger = logging.getLogger("dockhand.fetch_tar")

USAGE = "usage: dockhand-fetch-tar [from-url] [to-folder]"


class _IteratorReader:
    """Minimal file object over an iterator of byte chunks, for tarfile."""

    def __init__(self, chunks: Iterator[bytes]):
        self._chunks = chunks
        self._buffer = b""

    def read(self, size: int = -1) -> bytes:
        while size < 0 or len(self._buffer) < size:
            try:
                self._buffer += next(self._chunks)
            except StopIteration:
                break
        if size < 0:
            data, self._buffer = self._buffer, b""
        else:
            data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data


def fetch_tar(url: str, destination: str, timeout: float = 30.0) -> None:
    """
    Download a gzip tarball and extract it into destination.

    Raises:
        httpx.HTTPError: If the download fails or returns an error status
        tarfile.TarError: If the archive is corrupt
    """
    with httpx.stream("GET", url, timeout=httpx.Timeout(timeout, read=None)) as response:
        response.raise_for_status()
        reader = _IteratorReader(response.iter_bytes())
        with tarfile.open(fileobj=reader, mode="r|gz") as archive:
            archive.extractall(destination, filter="data")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = sys.argv[1:] if argv is None else argv
    if len(args) < 2 or not args[0] or not args[1]:
        print(USAGE, file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    source, destination = args[0], args[1]
    logger.info(f"fetching tarball {source} {destination}")

    try:
        fetch_tar(source, destination)
    except (httpx.HTTPError, tarfile.TarError, OSError) as e:
        logger.error(f"Failed to fetch tarball: {e}")
        return 1

    logger.info("tarball downloaded...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
