import asyncio
from typing import Awaitable, Callable, Iterable

import services.logger as log
from services.error import IdentityError, RelayError
from services.media import guess_content_type
from services.message import DownloadedMedia, InboundEvent, RelayOutcome, UploadResult
from services.pool import RelayPool

l = log.get_logger()


def object_key(sender: str, tag: str, file_name: str) -> str:
    """``{sender}/{tag}/{file_name}``; the tag never carries a leading dot."""
    return f"{sender}/{tag.lstrip('.')}/{file_name}"


class RelayWorker:
    """
    Relays one media item: fetch, stat, open, upload, then the optional
    post-upload steps (local removal, confirmation message).
    """

    def __init__(
        self,
        fetcher,
        store,
        notify: Callable[[str], Awaitable] | None = None,
        auto_remove_media: bool = False,
        send_info_uploaded: bool = False,
    ):
        self.fetcher = fetcher
        self.store = store
        self.notify = notify
        self.auto_remove_media = auto_remove_media
        self.send_info_uploaded = send_info_uploaded

    async def run(self, event: InboundEvent, sender: str) -> RelayOutcome:
        outcome = RelayOutcome(sender=sender)
        try:
            await self._relay(event, sender, outcome)
        except RelayError as e:
            outcome.error = e
            l.error(f"Error processing media from {sender}: {e}")
        return outcome

    async def _relay(self, event: InboundEvent, sender: str, outcome: RelayOutcome) -> None:
        l.info(f"Message contains media from {sender}")

        try:
            path, tag = await self.fetcher.fetch(event.media, sender)
        except Exception as e:
            raise RelayError("download media", e) from e

        try:
            size = path.stat().st_size
        except OSError as e:
            raise RelayError("get file info", e) from e
        media = DownloadedMedia(path=path, size=size, kind=tag, original_name=event.media.file_name)

        try:
            f = open(media.path, "rb")
        except OSError as e:
            raise RelayError("open file", e) from e

        with f:
            key = object_key(sender, media.kind, media.name)
            l.debug(f"Uploading {media.path} ({media.size} bytes) as {key}")
            try:
                result = await asyncio.to_thread(
                    self.store.upload_file, key, f, media.size, guess_content_type(media.path)
                )
            except Exception as e:
                raise RelayError("upload file", e) from e

        outcome.result = result
        l.info(f"File uploaded to {result.url}")

        if self.auto_remove_media:
            try:
                media.path.unlink()
            except OSError as e:
                outcome.cleanup_error = RelayError("remove file", e)
                l.error(f"Error processing media from {sender}: {outcome.cleanup_error}")

        if self.send_info_uploaded:
            await self._confirm(result, outcome)

        l.info(f"File {media.name} uploaded to {result.url}")

    async def _confirm(self, result: UploadResult, outcome: RelayOutcome) -> None:
        # Best effort: a failed confirmation never undoes the upload
        if self.notify is None:
            l.warning("send_info_uploaded is on but no confirmation target is available")
            return
        outcome.notified = True
        try:
            await self.notify(f"File uploaded to {result.url}")
        except Exception as e:
            outcome.notify_error = e
            l.warning(f"Upload confirmation for {outcome.sender} not delivered: {e}")


class Dispatcher:
    """
    Entry point for every inbound event.

    Resolves the sender, applies the allow-list, and hands events with media
    to the relay pool. ``on_event`` blocks while the pool is saturated.
    """

    def __init__(
        self,
        resolve: Callable[[str], str],
        pool: RelayPool,
        worker: RelayWorker,
        targets: Iterable[str] = (),
    ):
        self._resolve = resolve
        self._pool = pool
        self._worker = worker
        self.targets: tuple[str, ...] = tuple(targets)

    def admits(self, sender: str) -> bool:
        return not self.targets or sender in self.targets

    def resolve_sender(self, sender_id: str) -> str:
        try:
            return self._resolve(sender_id)
        except IdentityError:
            raise
        except Exception as e:
            raise IdentityError(f"find peer {sender_id}: {e}") from e

    async def on_event(self, event: InboundEvent) -> asyncio.Task | None:
        """
        Process one event.

        :returns: the relay task for admitted media, otherwise ``None``.
        :raises IdentityError: the sender could not be resolved; the event is dropped.
        """
        sender = self.resolve_sender(event.sender_id)

        if not self.admits(sender):
            return None

        l.info(f"Message from {sender}: {event.text}")

        if not event.has_media:
            return None

        return await self._pool.submit(
            lambda: self._worker.run(event, sender),
            name=f"relay/{sender}",
        )
