# Media fetcher: brings one attachment from the message source to local disk.
#
# Usage:
#   fetcher = MediaFetcher(bot, Path("data/media"), timeout=600)
#   path, tag = await fetcher.fetch(event.media, "alice")
#
# Local layout:
#   photo            <media_dir>/<sender>/photo/photo_<YYYYmmdd_HHMMSS>.jpg
#   document, video  <media_dir>/<sender>/<tag>/<YYYYmmdd>/<original name | doc_<YYYYmmdd_HHMMSS>>

import asyncio
import mimetypes
import shutil
from datetime import datetime
from pathlib import Path

import aiohttp

import services.logger as log
from services.error import FetchError
from services.message import MediaRef

l = log.get_logger()

_CHUNK = 256 * 1024

# The whole fetch is bounded by MediaFetcher.timeout; only connecting is capped here
_REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=None, sock_connect=30)

_TAGS = {
    "photo":      "photo",
    "video":      "video",
    "animation":  "video",
    "video_note": "video",
}

_session: aiohttp.ClientSession | None = None


def _get_session() -> aiohttp.ClientSession:
    global _session
    if _session is None or _session.closed:
        _session = aiohttp.ClientSession()
    return _session


async def close_session() -> None:
    global _session
    if _session is not None and not _session.closed:
        await _session.close()
    _session = None


def classify(kind: str) -> str:
    """Map a source media kind to its bare classification tag."""
    return _TAGS.get(kind, "document")


def _safe_component(name: str) -> str:
    cleaned = name.replace("/", "_").replace("\\", "_").strip()
    if cleaned in ("", ".", ".."):
        return "_"
    return cleaned


def local_path_for(media_dir: Path, sender: str, ref: MediaRef, now: datetime | None = None) -> Path:
    now = now or datetime.now()
    stamp = now.strftime("%Y%m%d_%H%M%S")
    tag = classify(ref.kind)
    sender_dir = Path(media_dir) / _safe_component(sender)

    if tag == "photo":
        return sender_dir / "photo" / f"photo_{stamp}.jpg"

    name = _safe_component(Path(ref.file_name).name) if ref.file_name else f"doc_{stamp}"
    return sender_dir / tag / now.strftime("%Y%m%d") / name


def guess_content_type(path: Path | str) -> str:
    return mimetypes.guess_type(str(path))[0] or "application/octet-stream"


async def download_to(url: str, path: Path) -> int:
    """Stream *url* into *path*. Returns the number of bytes written."""
    session = _get_session()
    total = 0
    try:
        async with session.get(url, timeout=_REQUEST_TIMEOUT) as resp:
            resp.raise_for_status()
            with open(path, "wb") as f:
                async for chunk in resp.content.iter_chunked(_CHUNK):
                    f.write(chunk)
                    total += len(chunk)
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    l.debug(f"media.download_to: {total} bytes -> {path}")
    return total


class MediaFetcher:
    """
    Fetches attachments through a Bot API handle.

    *bot* needs one coroutine, ``get_file(file_id)``, returning an object with
    a ``file_path``: an HTTP URL, or a local path when the Bot API server runs
    in local mode.
    """

    def __init__(self, bot, media_dir: Path, timeout: float | None = 600.0, local_mode: bool = False):
        self.bot = bot
        self.media_dir = Path(media_dir)
        self.timeout = timeout
        self.local_mode = local_mode

    def ensure_media_dir(self) -> None:
        self.media_dir.mkdir(parents=True, exist_ok=True)

    async def fetch(self, ref: MediaRef, sender: str) -> tuple[Path, str]:
        """
        Download *ref* for *sender*.

        :returns: ``(local path, classification tag)``
        :raises FetchError: on any failure, including the timeout.
        """
        tag = classify(ref.kind)
        path = local_path_for(self.media_dir, sender, ref)
        try:
            try:
                await asyncio.wait_for(self._fetch_to(ref, path), timeout=self.timeout)
            except BaseException:
                # No partial file survives a failed fetch
                path.unlink(missing_ok=True)
                raise
        except aiohttp.ServerTimeoutError as e:
            raise FetchError(f"failed to download {tag}: connection timed out") from e
        except asyncio.TimeoutError as e:
            raise FetchError(f"timed out after {self.timeout:g}s") from e
        except FetchError:
            raise
        except Exception as e:
            raise FetchError(f"failed to download {tag}: {e}") from e
        return path, tag

    async def _fetch_to(self, ref: MediaRef, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        remote = await self.bot.get_file(ref.file_id)
        source = getattr(remote, "file_path", None)
        if not source:
            raise FetchError(f"no file path for {ref.file_id!r}")

        if self.local_mode or not source.startswith(("http://", "https://")):
            await asyncio.to_thread(shutil.copyfile, source, path)
        else:
            await download_to(source, path)
