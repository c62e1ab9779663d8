from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class MediaRef:
    """Opaque reference to an attachment, resolvable by the media fetcher."""
    file_id: str         # source-specific handle
    kind: str            # "photo" | "video" | "document"
    file_name: str = ""  # original filename, when the source knows it
    file_size: int = -1  # bytes; -1 = unknown
    mime_type: str = ""


@dataclass(frozen=True)
class InboundEvent:
    """One parsed message as delivered by the message source."""
    sender_id: str
    sender_name: str
    text: str
    media: MediaRef | None = None

    @property
    def has_media(self) -> bool:
        return self.media is not None


@dataclass
class DownloadedMedia:
    """A fetched attachment on local disk, owned by one relay worker."""
    path: Path
    size: int
    kind: str
    original_name: str = ""

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class UploadResult:
    key: str
    url: str
    expires_in: int  # seconds


@dataclass
class RelayOutcome:
    """What happened to one media item. Logged, never persisted."""
    sender: str
    result: UploadResult | None = None
    error: Exception | None = None
    cleanup_error: Exception | None = None  # local file removal failed
    notify_error: Exception | None = None   # confirmation send failed
    notified: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None
