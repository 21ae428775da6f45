"""
Addon manifest construction.
Built once per published snapshot from the channels it contains.
"""
from typing import Iterable, Optional

from iptv_addon.config import Settings
from iptv_addon.models.channel import MergedMeta
from iptv_addon.models.genres import genre_options
from iptv_addon.services.merger import META_ID_PREFIX

CATALOG_ID_PREFIX = "iptv-channels-"

ADDON_BACKGROUND = "https://dl.strem.io/addon-background.jpg"
ADDON_LOGO = "https://dl.strem.io/addon-logo.png"


def catalog_id(group: str) -> str:
    return f"{CATALOG_ID_PREFIX}{group}"


def parse_catalog_id(value: str) -> Optional[str]:
    """
    Extract the grouping key from ``iptv-channels-<group>`` or a bare group code.
    Returns None for anything malformed.
    """
    if not value:
        return None
    if value.startswith(CATALOG_ID_PREFIX):
        value = value[len(CATALOG_ID_PREFIX):]
    elif value.startswith(META_ID_PREFIX):
        return None
    if not value or "-" in value or "/" in value:
        return None
    return value


def catalog_groups(include_countries: Iterable[str], metas: Iterable[MergedMeta]) -> list[str]:
    """
    Groupings exposed as catalogs.

    The configured countries come first, followed by the countries of custom
    channels. With no configured countries, every country in the catalog.
    """
    groups = dict.fromkeys(include_countries)
    metas = list(metas)
    if groups:
        for meta in metas:
            if meta.is_custom and meta.country:
                groups.setdefault(meta.country, None)
    else:
        for meta in metas:
            if meta.country:
                groups.setdefault(meta.country, None)
    return list(groups)


def build_manifest(settings: Settings, metas: Iterable[MergedMeta], custom_genres: Iterable[str]) -> dict:
    """Build the addon descriptor for a snapshot."""
    groups = catalog_groups(settings.include_countries, metas)
    options = genre_options(custom_genres)
    return {
        "id": "org.iptv.catalog",
        "version": settings.app_version,
        "name": settings.app_name,
        "description": f"Watch live TV from {', '.join(groups)}" if groups else "Watch live TV",
        "resources": ["catalog", "meta", "stream"],
        "types": ["tv"],
        "catalogs": [
            {
                "type": "tv",
                "id": catalog_id(group),
                "name": f"IPTV - {group}",
                "extra": [{"name": "genre", "isRequired": False, "options": options}],
            }
            for group in groups
        ],
        "idPrefixes": [META_ID_PREFIX],
        "behaviorHints": {"configurable": False, "configurationRequired": False},
        "logo": ADDON_LOGO,
        "icon": ADDON_LOGO,
        "background": ADDON_BACKGROUND,
    }
