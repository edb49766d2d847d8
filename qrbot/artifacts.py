"""Transient files: rendered images handed to the delivery layer, downloaded logos."""

import os
import socket
import tempfile
import threading
import time

import requests

from qrbot.errors import AssetDownloadError
from qrbot.logging import audit, get_logger, trace

log = get_logger("artifacts")

DEFAULT_LOGO_TIMEOUT = 10.0
DEFAULT_LOGO_MAX_BYTES = 5 * 1024 * 1024


class RenderedArtifact:
    """A rendered image on disk, owned by the caller until released.

    Usage::

        with RenderedArtifact(png) as path:
            send_photo(path)
    """

    def __init__(self, data: bytes, suffix: str = ".png", prefix: str = "qrbot_", directory: str | None = None):
        fd, path = tempfile.mkstemp(suffix=suffix, prefix=prefix, dir=directory)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
        except BaseException:
            os.unlink(path)
            raise
        self.path = path
        self.size = len(data)
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def read(self) -> bytes:
        if self._released:
            raise ValueError("Artifact already released")
        with open(self.path, "rb") as f:
            return f.read()

    def release(self) -> None:
        """Delete the file. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            log.debug("Artifact %s was already gone", self.path)

    def __enter__(self) -> str:
        return self.path

    def __exit__(self, *exc):
        self.release()

    def __repr__(self):
        state = "released" if self._released else "live"
        return f"RenderedArtifact({self.path!r}, {self.size} bytes, {state})"


def _cut_off(resp, expired: threading.Event) -> None:
    """Deadline hit: flag it and shut the socket so a blocked read returns."""
    expired.set()
    conn = getattr(getattr(resp, "raw", None), "connection", None)
    sock = getattr(conn, "sock", None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        log.debug("Logo socket already closed")


@trace
def fetch_logo(
    url: str,
    timeout: float = DEFAULT_LOGO_TIMEOUT,
    max_bytes: int = DEFAULT_LOGO_MAX_BYTES,
    session: requests.Session | None = None,
) -> bytes:
    """Download a logo, bounded in time and size.

    *timeout* caps the whole download, not just each socket read: a server
    trickling bytes is cut off once the deadline passes.

    Raises:
        AssetDownloadError: network error, timeout, HTTP error or oversized body.
    """
    http = session or requests
    deadline = time.monotonic() + timeout
    expired = threading.Event()
    exceeded = f"Logo download exceeded {timeout}s"
    try:
        with http.get(url, timeout=timeout, stream=True) as resp:
            resp.raise_for_status()
            declared = resp.headers.get("Content-Length")
            if declared and declared.isdigit() and int(declared) > max_bytes:
                raise AssetDownloadError(f"Logo too large: {declared} bytes (limit {max_bytes})")

            watchdog = threading.Timer(max(deadline - time.monotonic(), 0.0), _cut_off, (resp, expired))
            watchdog.daemon = True
            watchdog.start()
            try:
                chunks = []
                received = 0
                for chunk in resp.iter_content(chunk_size=64 * 1024):
                    if expired.is_set() or time.monotonic() > deadline:
                        raise AssetDownloadError(exceeded)
                    received += len(chunk)
                    if received > max_bytes:
                        raise AssetDownloadError(f"Logo exceeds {max_bytes} bytes")
                    chunks.append(chunk)
            finally:
                watchdog.cancel()
            # a shut-down socket reads as EOF on close-delimited bodies
            if expired.is_set():
                raise AssetDownloadError(exceeded)
    except requests.RequestException as e:
        if expired.is_set():
            raise AssetDownloadError(exceeded) from e
        raise AssetDownloadError(f"Logo download failed: {e}") from e

    data = b"".join(chunks)
    audit("logo.fetched", logger=log, url=url[:80], bytes=len(data))
    return data
