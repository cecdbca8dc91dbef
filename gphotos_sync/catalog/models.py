"""
Catalog record types for Google Photos Sync.

MediaItem mirrors the Photos Library API mediaItem resource; StoredItem wraps
it with local bookkeeping (download marker, collision-free filename). The JSON
layout uses the API's own field names so API payloads load directly.
"""

import re
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from ..errors import UnsupportedMediaKindError

MediaItemId = str

_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp as returned by the API ("...Z", nanoseconds).

    Naive timestamps are assumed to be UTC.
    """
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    # fromisoformat only accepts up to microsecond precision
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Format a timestamp as ISO 8601 in UTC."""
    return value.astimezone(timezone.utc).isoformat()


def _optional_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


class MediaKind(str, Enum):
    """Media variant as reported in mediaMetadata."""
    PHOTO = "photo"
    VIDEO = "video"


@dataclass(frozen=True)
class MediaItem:
    """Remote metadata for one media object. Replaced wholesale on re-fetch."""
    id: MediaItemId
    base_url: str
    filename: str
    creation_time: datetime
    kind: MediaKind = MediaKind.PHOTO
    width: Optional[int] = None
    height: Optional[int] = None
    mime_type: str = ""

    def download_url(self) -> str:
        """
        Build the byte-fetch URL for this item.

        base_url expires about an hour after it was fetched, so it must come
        from a recent search/batchGet.

        Raises:
            UnsupportedMediaKindError: For videos
        """
        if self.kind is not MediaKind.PHOTO:
            raise UnsupportedMediaKindError(f"{self.kind.value} not supported: {self.filename}")
        if self.width and self.height:
            return f"{self.base_url}=w{self.width}-h{self.height}"
        return f"{self.base_url}=d"

    def to_dict(self) -> dict:
        metadata = {"creationTime": format_timestamp(self.creation_time)}
        if self.width is not None:
            metadata["width"] = str(self.width)
        if self.height is not None:
            metadata["height"] = str(self.height)
        metadata[self.kind.value] = {}

        result = {
            "id": self.id,
            "baseUrl": self.base_url,
            "filename": self.filename,
            "mediaMetadata": metadata,
        }
        if self.mime_type:
            result["mimeType"] = self.mime_type
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "MediaItem":
        metadata = data.get("mediaMetadata", {})
        mime_type = data.get("mimeType", "")

        if "video" in metadata or mime_type.startswith("video/"):
            kind = MediaKind.VIDEO
        else:
            kind = MediaKind.PHOTO

        return cls(
            id=data["id"],
            base_url=data.get("baseUrl", ""),
            filename=data["filename"],
            creation_time=parse_timestamp(metadata["creationTime"]),
            kind=kind,
            width=_optional_int(metadata.get("width")),
            height=_optional_int(metadata.get("height")),
            mime_type=mime_type,
        )


@dataclass
class DownloadInfo:
    """Marker written once an item's bytes are on disk."""
    downloaded_at: datetime

    def to_dict(self) -> dict:
        return {"downloaded_at": format_timestamp(self.downloaded_at)}

    @classmethod
    def from_dict(cls, data: dict) -> "DownloadInfo":
        return cls(downloaded_at=parse_timestamp(data["downloaded_at"]))


@dataclass
class AppData:
    """Local bookkeeping attached to a catalog entry."""
    download_info: Optional[DownloadInfo] = None

    def to_dict(self) -> dict:
        return {
            "download_info": self.download_info.to_dict() if self.download_info else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AppData":
        info = data.get("download_info")
        return cls(download_info=DownloadInfo.from_dict(info) if info else None)


@dataclass
class StoredItem:
    """A catalog entry: remote metadata plus local state."""
    media_item: MediaItem
    app_data: Optional[AppData] = None
    alt_filename: Optional[str] = None

    @property
    def id(self) -> MediaItemId:
        return self.media_item.id

    @property
    def display_filename(self) -> str:
        """Name used on disk and for collision detection."""
        if self.alt_filename:
            return self.alt_filename
        return self.media_item.filename

    @property
    def is_downloaded(self) -> bool:
        return self.app_data is not None and self.app_data.download_info is not None

    def with_media_item(self, media_item: MediaItem) -> "StoredItem":
        """Return a copy with refreshed remote metadata, keeping local state."""
        return replace(self, media_item=media_item)

    def to_dict(self) -> dict:
        return {
            "mediaItem": self.media_item.to_dict(),
            "appData": self.app_data.to_dict() if self.app_data else None,
            "alt_filename": self.alt_filename,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StoredItem":
        app_data = data.get("appData")
        return cls(
            media_item=MediaItem.from_dict(data["mediaItem"]),
            app_data=AppData.from_dict(app_data) if app_data else None,
            alt_filename=data.get("alt_filename"),
        )


@dataclass
class DownloadableItem:
    """What a download worker needs: the id, the remote item and a target name."""
    media_item: MediaItem
    filename: str

    @property
    def id(self) -> MediaItemId:
        return self.media_item.id

    @classmethod
    def from_stored(cls, stored: StoredItem) -> "DownloadableItem":
        return cls(media_item=stored.media_item, filename=stored.display_filename)
