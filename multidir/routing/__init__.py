"""URL pattern handling for listing pages."""

from .url_pattern import (
    Breadcrumb,
    PatternError,
    PatternMismatchError,
    PatternValidation,
    build_filters_from_segments,
    determine_page_type,
    generate_breadcrumbs,
    generate_url,
    parse_pattern,
    parse_url_to_segments,
    require_valid_pattern,
    validate_url_pattern,
)

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
