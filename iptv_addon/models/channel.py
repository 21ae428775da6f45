"""
Channel, Stream and merged catalog models.
Input models map to the iptv-org channels.json / streams.json schema.
"""
from datetime import datetime, timezone
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PrivateAttr, field_validator


class Channel(BaseModel):
    """TV channel record from the remote directory or a custom overlay."""
    id: str
    name: str
    country: str = ""
    languages: list[str] = Field(default_factory=list)
    # None when the source never supplied categories
    categories: Optional[list[str]] = None
    is_nsfw: bool = False
    logo: Optional[str] = None
    network: Optional[str] = None
    website: Optional[str] = None

    # Set by this system, never read from the source document
    is_custom: bool = False

    @field_validator("languages", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or []

    @field_validator("country", mode="before")
    @classmethod
    def country_or_empty(cls, v):
        return v or ""


class Stream(BaseModel):
    """Stream URL record matching the iptv-org streams.json schema."""
    channel: Optional[str] = None
    url: str
    title: Optional[str] = None
    referrer: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("referrer", "http_referrer"),
    )
    user_agent: Optional[str] = None
    quality: Optional[str] = None

    is_custom: bool = False


class FilterPolicy(BaseModel):
    """Immutable include/exclude rules. An empty include set means no restriction."""
    model_config = ConfigDict(frozen=True)

    include_countries: frozenset[str] = frozenset()
    exclude_countries: frozenset[str] = frozenset()
    include_languages: frozenset[str] = frozenset()
    exclude_languages: frozenset[str] = frozenset()
    exclude_categories: frozenset[str] = frozenset()
    # When set, custom channels are also subject to category exclusion
    custom_category_exclusion: bool = False


class StreamDescriptor(BaseModel):
    """Playable endpoint embedded in a merged meta."""
    model_config = ConfigDict(frozen=True)

    url: str
    title: str = "Live Stream"
    referrer: Optional[str] = None
    user_agent: Optional[str] = None


class MergedMeta(BaseModel):
    """Externally visible catalog entry, derived 1:1 from a surviving channel."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: str = "tv"
    genres: tuple[str, ...] = ()
    poster: Optional[str] = None
    poster_shape: str = Field(default="square", serialization_alias="posterShape")
    background: Optional[str] = None
    logo: Optional[str] = None
    country: str = ""
    is_custom: bool = Field(default=False, serialization_alias="isCustom")
    streams: tuple[StreamDescriptor, ...] = ()


class CatalogSnapshot(BaseModel):
    """
    One published refresh result.

    Holds the merged metas together with the custom genres and manifest
    computed from the same cycle. Replaced wholesale, never mutated.
    """
    model_config = ConfigDict(frozen=True)

    metas: tuple[MergedMeta, ...] = ()
    custom_genres: tuple[str, ...] = ()
    manifest: dict = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    _by_id: dict[str, MergedMeta] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context) -> None:
        self._by_id = {meta.id: meta for meta in self.metas}

    def find(self, meta_id: str) -> Optional[MergedMeta]:
        """Exact-match lookup by meta id."""
        return self._by_id.get(meta_id)

    def __len__(self) -> int:
        return len(self.metas)
