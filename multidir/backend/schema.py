"""Decoding of raw NocoDB records into typed models.

Several NocoDB columns hold JSON serialised as text. They are decoded once
here; a malformed column falls back to an empty value instead of failing the
whole record.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import markdown as _markdown

from ..logging import get_logger
from ..models import (
    DEFAULT_LAYOUT,
    DEFAULT_PRIMARY_COLOR,
    DEFAULT_THEME,
    Category,
    Directory,
    LandingPage,
    Listing,
    MetaTags,
    OpeningHours,
    SocialLink,
)

_LOGGER = get_logger("backend.schema")

# Column names differ between NocoDB API versions and table setups.
DIRECTORY_COLUMN = ("Directory Identifier", "Directory", "directory")

Renderer = Callable[[Optional[str]], str]


def render_markdown(text: Optional[str]) -> str:
    """Render markdown body content to HTML."""
    if not text:
        return ""
    return _markdown.markdown(text, extensions=["extra", "sane_lists"])


def decode_json_column(value: Any, default: Any) -> Any:
    """Return ``value`` decoded from JSON, or ``default`` if that is impossible.

    Columns already delivered as lists or dicts are passed through when they
    match the shape of ``default``.
    """
    if value is None or value == "":
        return _fresh(default)
    if isinstance(value, (list, dict)):
        return value if isinstance(value, type(default)) else _fresh(default)
    if not isinstance(value, str):
        return _fresh(default)
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        _LOGGER.debug("Ignoring malformed JSON column value: %.60s", value)
        return _fresh(default)
    if not isinstance(decoded, type(default)):
        return _fresh(default)
    return decoded


def decode_directory(record: Mapping[str, Any]) -> Directory:
    identifier = _text(_pick(record, "Identifier", "id"))
    if not identifier:
        raise ValueError("Directory record has no Identifier")

    layouts = _split_layouts(_pick(record, "Available_Layouts", "Available Layouts"))
    default_layout = _text(_pick(record, "Default_Layout", "Default Layout"))
    if not default_layout:
        default_layout = layouts[0] if layouts else DEFAULT_LAYOUT

    return Directory(
        id=identifier,
        name=_text(_pick(record, "Name")) or identifier,
        description=_text(_pick(record, "Description")) or "",
        domain=_text(_pick(record, "Domain")),
        theme=_text(_pick(record, "Theme")) or DEFAULT_THEME,
        available_layouts=layouts or [DEFAULT_LAYOUT],
        default_layout=default_layout,
        primary_color=_text(_pick(record, "Primary_Color", "Primary Color"))
        or DEFAULT_PRIMARY_COLOR,
        secondary_color=_text(_pick(record, "Secondary_Color", "Secondary Color")),
        logo=_text(_pick(record, "Logo")),
        categories=_decode_categories(
            decode_json_column(_pick(record, "Categories"), [])
        ),
        meta_tags=_decode_meta_tags(
            decode_json_column(_pick(record, "Meta_Tags", "Meta Tags"), {})
        ),
        social_links=_decode_social_links(
            decode_json_column(_pick(record, "Social_Links", "Social Links"), [])
        ),
        deployment=decode_json_column(_pick(record, "Deployment"), {}),
    )


def decode_listing(
    record: Mapping[str, Any], *, renderer: Renderer = render_markdown
) -> Listing:
    return Listing(
        directory=_text(_pick(record, *DIRECTORY_COLUMN)) or "",
        slug=_text(_pick(record, "Slug", "slug")) or "",
        title=_text(_pick(record, "Title")) or "",
        description=_text(_pick(record, "Description")) or "",
        category=_text(_pick(record, "Category")),
        featured=_as_bool(_pick(record, "Featured")),
        images=_str_list(decode_json_column(_pick(record, "Images"), [])),
        address=_text(_pick(record, "Address")),
        website=_text(_pick(record, "Website")),
        phone=_text(_pick(record, "Phone")),
        rating=_rating(_pick(record, "Rating")),
        tags=_str_list(decode_json_column(_pick(record, "Tags"), [])),
        opening_hours=_decode_opening_hours(
            decode_json_column(_pick(record, "Opening_Hours", "Opening Hours"), [])
        ),
        custom_fields=decode_json_column(
            _pick(record, "Custom_Fields", "Custom Fields"), {}
        ),
        updated_at=_text(_pick(record, "UpdatedAt", "Updated At", "updated_at")),
        content_html=renderer(_text(_pick(record, "Content"))),
    )


def decode_landing_page(
    record: Mapping[str, Any], *, renderer: Renderer = render_markdown
) -> LandingPage:
    return LandingPage(
        directory=_text(_pick(record, *DIRECTORY_COLUMN)) or "",
        slug=_text(_pick(record, "Slug", "slug")) or "",
        title=_text(_pick(record, "Title")) or "",
        description=_text(_pick(record, "Description")) or "",
        featured_image=_text(_pick(record, "Featured_Image", "Featured Image")),
        keywords=_str_list(decode_json_column(_pick(record, "Keywords"), [])),
        related_categories=_str_list(
            decode_json_column(_pick(record, "Related_Categories", "Related Categories"), [])
        ),
        updated_at=_text(_pick(record, "UpdatedAt", "Updated At", "updated_at")),
        content_html=renderer(_text(_pick(record, "Content"))),
    )


def find_dangling_categories(directory: Directory, listings: Iterable[Listing]) -> List[Listing]:
    """Return listings whose category does not resolve against the directory."""
    known = set(directory.category_ids())
    known.update(category.name for category in directory.categories)
    return [
        listing
        for listing in listings
        if listing.category and listing.category not in known
    ]


# ----------------------------------------------------------------------
# Internal helpers


def _pick(record: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in record and record[name] is not None:
            return record[name]
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    text = str(value).strip()
    return text or None


def _fresh(default: Any) -> Any:
    return type(default)()


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return False


def _rating(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        rating = float(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, min(5.0, rating))


def _split_layouts(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        items: Sequence[Any] = value
    elif isinstance(value, str):
        items = value.split(",")
    else:
        return []
    return [str(item).strip() for item in items if str(item).strip()]


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if isinstance(item, (str, int, float))]


def _decode_categories(items: List[Any]) -> List[Category]:
    categories: List[Category] = []
    for item in items:
        if isinstance(item, str) and item.strip():
            categories.append(Category(id=item.strip(), name=item.strip()))
            continue
        if not isinstance(item, dict):
            continue
        identifier = _text(item.get("id"))
        name = _text(item.get("name")) or identifier
        if not identifier or not name:
            continue
        categories.append(
            Category(
                id=identifier,
                name=name,
                description=_text(item.get("description")),
                icon=_text(item.get("icon")),
                featured=_as_bool(item.get("featured")),
            )
        )
    return categories


def _decode_meta_tags(data: Dict[str, Any]) -> MetaTags:
    custom = [
        {"name": str(entry.get("name")), "content": str(entry.get("content"))}
        for entry in data.get("custom", []) or []
        if isinstance(entry, dict) and entry.get("name")
    ]
    return MetaTags(
        title=_text(data.get("title")),
        description=_text(data.get("description")),
        keywords=_str_list(data.get("keywords")),
        language=_text(data.get("language")),
        twitter_handle=_text(data.get("twitterHandle")),
        robots_txt=_text(data.get("robotsTxt")),
        noindex=_as_bool(data.get("noindex")),
        custom=custom,
    )


def _decode_social_links(items: List[Any]) -> List[SocialLink]:
    return [
        SocialLink(platform=str(item["platform"]), url=str(item["url"]))
        for item in items
        if isinstance(item, dict) and item.get("platform") and item.get("url")
    ]


def _decode_opening_hours(items: List[Any]) -> List[OpeningHours]:
    return [
        OpeningHours(day=str(item["day"]), hours=str(item.get("hours", "")))
        for item in items
        if isinstance(item, dict) and item.get("day")
    ]


__all__ = [
    "decode_directory",
    "decode_json_column",
    "decode_landing_page",
    "decode_listing",
    "find_dangling_categories",
    "render_markdown",
]
