"""Listing URL templates such as ``{location}/{category}/{slug}``.

Each placeholder is resolved from listing data according to a per-segment
configuration mapping, for example::

    {
        "location": {"source": "listing_field", "field": "custom_fields.city"},
        "category": {"source": "category", "field": "category_slug"},
    }

Supported sources are ``listing_field`` (dotted lookup), ``category``,
``static`` (``value``) and ``computed`` (``compute`` callable). Resolved
values are slugified unless the segment sets ``slug_format: false``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from slugify import slugify

_PLACEHOLDER = re.compile(r"{([^}]+)}")
_REPEATED_SLASHES = re.compile(r"/+")

# Extra transliterations applied before slugify for a segment ``locale``.
LOCALE_REPLACEMENTS: Dict[str, List[List[str]]] = {
    "de": [["Ä", "Ae"], ["Ö", "Oe"], ["Ü", "Ue"], ["ä", "ae"], ["ö", "oe"], ["ü", "ue"], ["ß", "ss"]],
    "pl": [["Ł", "L"], ["ł", "l"]],
    "fr": [["Œ", "OE"], ["œ", "oe"], ["&", " et "]],
}

LOCATION_SEGMENTS = ("location", "city")


class PatternError(ValueError):
    """Raised when a URL pattern is unusable."""


class PatternMismatchError(PatternError):
    """Raised when a path has more parts than the pattern has segments."""


@dataclass(frozen=True)
class PatternValidation:
    valid: bool
    segments: Sequence[str] = field(default_factory=tuple)
    error: Optional[str] = None


@dataclass(frozen=True)
class Breadcrumb:
    name: str
    url: Optional[str]

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"name": self.name, "url": self.url}


def parse_pattern(pattern: str) -> List[str]:
    """Return placeholder names in the order they appear."""
    return _PLACEHOLDER.findall(pattern or "")


def validate_url_pattern(pattern: str) -> PatternValidation:
    segments = parse_pattern(pattern)
    if not segments:
        return PatternValidation(False, error="Pattern must contain at least one segment")
    if "slug" not in segments:
        return PatternValidation(False, tuple(segments), "Pattern must include {slug} segment")
    duplicates = sorted({name for name in segments if segments.count(name) > 1})
    if duplicates:
        return PatternValidation(
            False, tuple(segments), f"Duplicate segments found: {', '.join(duplicates)}"
        )
    return PatternValidation(True, tuple(segments))


def require_valid_pattern(pattern: str) -> List[str]:
    """Return the pattern's segments or raise :class:`PatternError`."""
    result = validate_url_pattern(pattern)
    if not result.valid:
        raise PatternError(f"Invalid URL pattern {pattern!r}: {result.error}")
    return list(result.segments)


def generate_url(
    pattern: str,
    segment_config: Mapping[str, Mapping[str, Any]],
    listing: Mapping[str, Any],
) -> str:
    """Build the concrete path for ``listing``.

    The ``slug`` segment is always the listing's own slug, never slugified
    again. Unresolved segments are dropped and separators normalised.
    """
    url = pattern
    for segment in parse_pattern(pattern):
        config = segment_config.get(segment) or {}
        if segment == "slug":
            value = _as_text(listing.get("slug"))
        else:
            value = _as_text(_extract_segment_value(listing, config)) if config else ""
            if value and config.get("slug_format", True) is not False:
                value = slugify_segment(value, config.get("locale"))
        url = url.replace(f"{{{segment}}}", value, 1)
    return _REPEATED_SLASHES.sub("/", url).strip("/")


def slugify_segment(value: str, locale: Optional[str] = None) -> str:
    replacements = LOCALE_REPLACEMENTS.get((locale or "").lower(), [])
    return slugify(value, lowercase=True, replacements=replacements)


def parse_url_to_segments(path: str, pattern: str, *, strict: bool = False) -> Dict[str, str]:
    """Associate path parts with pattern segments by position.

    A shorter path yields a partial mapping (location and category pages).
    A longer path raises :class:`PatternMismatchError`, and so does a
    shorter one when ``strict`` is set.
    """
    segments = parse_pattern(pattern)
    parts = [part for part in (path or "").split("/") if part]
    if len(parts) > len(segments):
        raise PatternMismatchError(
            f"Path {path!r} has {len(parts)} parts but {pattern!r} has {len(segments)} segments"
        )
    if strict and len(parts) < len(segments):
        raise PatternMismatchError(
            f"Path {path!r} has {len(parts)} parts but {pattern!r} requires {len(segments)}"
        )
    return {segment: part for segment, part in zip(segments, parts)}


def determine_page_type(segments: Mapping[str, str], pattern: str) -> str:
    pattern_segments = parse_pattern(pattern)
    has_location = any(segments.get(name) for name in LOCATION_SEGMENTS)
    has_category = bool(segments.get("category"))
    has_slug = bool(segments.get("slug"))

    if has_slug and len(segments) == len(pattern_segments):
        return "listing"
    if has_location and not has_category and not has_slug:
        return "location"
    if has_location and has_category and not has_slug:
        return "category-location"
    if has_category and not has_slug:
        return "category"
    return "unknown"


def build_filters_from_segments(
    segments: Mapping[str, str],
    segment_config: Mapping[str, Mapping[str, Any]],
) -> Dict[str, str]:
    """Translate resolved segments into listing query filters."""
    filters: Dict[str, str] = {}
    for key, value in segments.items():
        if key == "slug":
            filters["slug"] = value
            continue
        config = segment_config.get(key)
        if not config:
            continue
        source = config.get("source")
        if source == "listing_field" and config.get("field"):
            filters[str(config["field"])] = value
        elif source == "category":
            filters["category_slug"] = value
    return filters


def generate_breadcrumbs(
    path: str,
    pattern: str,
    segment_config: Mapping[str, Mapping[str, Any]],
    tenant_id: str,
    labels: Mapping[str, str] | None = None,
) -> List[Breadcrumb]:
    labels = labels or {}
    segments = parse_url_to_segments(path, pattern)
    current = f"/{tenant_id}"
    crumbs = [Breadcrumb(labels.get("home", "Home"), current)]
    for key in parse_pattern(pattern):
        value = segments.get(key)
        if not value or key == "slug":
            continue
        current = f"{current}/{value}"
        crumbs.append(Breadcrumb(labels.get(key) or _format_label(value), current))
    if segments.get("slug") and labels.get("current"):
        crumbs.append(Breadcrumb(labels["current"], None))
    return crumbs


# ----------------------------------------------------------------------
# Internal helpers


def _extract_segment_value(listing: Mapping[str, Any], config: Mapping[str, Any]) -> Any:
    source = config.get("source")
    if source == "listing_field":
        return _nested_value(listing, str(config.get("field") or ""))
    if source == "category":
        if config.get("field") == "category_slug":
            return listing.get("category_slug") or slugify(_as_text(listing.get("category")))
        return listing.get("category")
    if source == "static":
        return config.get("value")
    if source == "computed":
        compute = config.get("compute")
        return compute(listing) if callable(compute) else ""
    return ""


def _nested_value(data: Any, dotted: str) -> Any:
    current = data
    for key in dotted.split("."):
        if not key:
            return None
        if isinstance(current, Mapping):
            current = current.get(key)
        else:
            current = getattr(current, key, None)
        if current is None:
            return None
    return current


def _as_text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value)


def _format_label(value: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in value.split("-"))


__all__ = [
    "Breadcrumb",
    "PatternError",
    "PatternMismatchError",
    "PatternValidation",
    "build_filters_from_segments",
    "determine_page_type",
    "generate_breadcrumbs",
    "generate_url",
    "parse_pattern",
    "parse_url_to_segments",
    "require_valid_pattern",
    "validate_url_pattern",
]
