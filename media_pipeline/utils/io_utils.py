"""I/O utility functions for files, downloads and scratch directories."""

import asyncio
import shutil
from pathlib import Path
from urllib.parse import unquote, urlparse

import requests

CHUNK_SIZE = 1024 * 1024


def download_file(url: str, dest_path: Path, timeout: float = 60.0) -> Path:
    """
    Fetch ``url`` into ``dest_path``.

    ``file://`` URLs (local object storage) are copied; anything else is
    streamed over HTTP.

    Args:
        url: Download URL (usually a pre-signed storage URL)
        dest_path: Where to write the file
        timeout: HTTP timeout in seconds

    Returns:
        dest_path

    Raises:
        requests.HTTPError: On a non-2xx HTTP response
        FileNotFoundError: If a file:// URL points nowhere
    """
    dest_path = Path(dest_path)
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    parsed = urlparse(url)
    if parsed.scheme == "file":
        shutil.copyfile(unquote(parsed.path), dest_path)
        return dest_path

    with requests.get(url, stream=True, timeout=timeout) as response:
        response.raise_for_status()
        with open(dest_path, "wb") as f:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    f.write(chunk)
    return dest_path


async def download_file_async(url: str, dest_path: Path, timeout: float = 60.0) -> Path:
    """Async wrapper around download_file (runs in a worker thread)."""
    return await asyncio.to_thread(download_file, url, dest_path, timeout)


def extension_for(mime_type: str) -> str:
    """File extension for the MIME types the pipeline produces."""
    return {
        "image/png": "png",
        "image/jpeg": "jpg",
        "audio/mpeg": "mp3",
        "video/mp4": "mp4",
    }.get(mime_type, "bin")
