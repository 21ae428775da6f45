"""
Result types returned by the source fetcher.
Fetch failures are values, not exceptions.
"""
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from iptv_addon.models.channel import Channel, Stream

T = TypeVar("T")


class FetchErrorKind(str, Enum):
    TIMEOUT = "timeout"
    HTTP = "http"
    NETWORK = "network"
    PARSE = "parse"


class FetchError(BaseModel):
    """Typed failure of one source fetch."""
    kind: FetchErrorKind
    source: str
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.kind.value} error from {self.source}: {self.detail}"


class FetchResult(BaseModel, Generic[T]):
    """Records from one source plus the error, if the fetch failed."""
    records: list[T] = Field(default_factory=list)
    error: Optional[FetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CustomOverlay(BaseModel):
    """Channels and streams from all custom sources, tagged as custom."""
    channels: list[Channel] = Field(default_factory=list)
    streams: list[Stream] = Field(default_factory=list)
    custom_genres: list[str] = Field(default_factory=list)
    errors: list[FetchError] = Field(default_factory=list)


class SourceBundle(BaseModel):
    """Everything one refresh cycle fetched, ready for merging."""
    channels: FetchResult[Channel]
    streams: FetchResult[Stream]
    overlay: CustomOverlay
