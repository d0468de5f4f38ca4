"""Core data models shared across multidir components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

DEFAULT_THEME = "default"
DEFAULT_PRIMARY_COLOR = "#3366cc"
DEFAULT_LAYOUT = "Card"
VALID_LAYOUTS = ("Card", "Map", "Table", "Magazine", "List")


@dataclass
class Category:
    """Category entry nested inside a directory's category list."""

    id: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    featured: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "name": self.name}
        if self.description is not None:
            data["description"] = self.description
        if self.icon is not None:
            data["icon"] = self.icon
        if self.featured:
            data["featured"] = True
        return data


@dataclass
class SocialLink:
    platform: str
    url: str


@dataclass
class OpeningHours:
    day: str
    hours: str


@dataclass
class MetaTags:
    """SEO metadata attached to a directory."""

    title: Optional[str] = None
    description: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    language: Optional[str] = None
    twitter_handle: Optional[str] = None
    robots_txt: Optional[str] = None
    noindex: bool = False
    custom: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for key, value in (
            ("title", self.title),
            ("description", self.description),
            ("language", self.language),
            ("twitterHandle", self.twitter_handle),
            ("robotsTxt", self.robots_txt),
        ):
            if value is not None:
                data[key] = value
        if self.keywords:
            data["keywords"] = list(self.keywords)
        if self.noindex:
            data["noindex"] = True
        if self.custom:
            data["custom"] = [dict(item) for item in self.custom]
        return data


@dataclass
class Directory:
    """A tenant: one generated website with its own domain and theme."""

    id: str
    name: str
    description: str = ""
    domain: Optional[str] = None
    theme: str = DEFAULT_THEME
    available_layouts: List[str] = field(default_factory=lambda: [DEFAULT_LAYOUT])
    default_layout: str = DEFAULT_LAYOUT
    primary_color: str = DEFAULT_PRIMARY_COLOR
    secondary_color: Optional[str] = None
    logo: Optional[str] = None
    categories: List[Category] = field(default_factory=list)
    meta_tags: MetaTags = field(default_factory=MetaTags)
    social_links: List[SocialLink] = field(default_factory=list)
    deployment: Dict[str, Any] = field(default_factory=dict)

    def category_ids(self) -> List[str]:
        return [category.id for category in self.categories]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "domain": self.domain,
            "theme": self.theme,
            "availableLayouts": list(self.available_layouts),
            "defaultLayout": self.default_layout,
            "primaryColor": self.primary_color,
            "secondaryColor": self.secondary_color,
            "logo": self.logo,
            "categories": [category.to_dict() for category in self.categories],
            "metaTags": self.meta_tags.to_dict(),
            "socialLinks": [
                {"platform": link.platform, "url": link.url} for link in self.social_links
            ],
            "deployment": dict(self.deployment),
        }


@dataclass
class Listing:
    """A directory entry, keyed by ``(directory, slug)``."""

    directory: str
    slug: str
    title: str
    description: str = ""
    category: Optional[str] = None
    featured: bool = False
    images: List[str] = field(default_factory=list)
    address: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    rating: Optional[float] = None
    tags: List[str] = field(default_factory=list)
    opening_hours: List[OpeningHours] = field(default_factory=list)
    custom_fields: Dict[str, Any] = field(default_factory=dict)
    updated_at: Optional[str] = None
    content_html: str = field(default="", repr=False)

    @property
    def key(self) -> str:
        return f"{self.directory}/{self.slug}"

    def render(self) -> str:
        """Return the HTML rendered from the listing's markdown content."""
        return self.content_html

    def url_data(self) -> Dict[str, Any]:
        """Flat view used when resolving URL pattern segments."""
        data: Dict[str, Any] = {
            "slug": self.slug,
            "title": self.title,
            "directory": self.directory,
            "category": self.category,
            "address": self.address,
            "tags": list(self.tags),
            "featured": self.featured,
            "custom_fields": dict(self.custom_fields),
        }
        category_slug = self.custom_fields.get("category_slug")
        if category_slug:
            data["category_slug"] = category_slug
        return data

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slug": self.key,
            "data": {
                "title": self.title,
                "description": self.description,
                "directory": self.directory,
                "category": self.category,
                "featured": self.featured,
                "images": list(self.images),
                "address": self.address,
                "website": self.website,
                "phone": self.phone,
                "rating": self.rating,
                "tags": list(self.tags),
                "openingHours": [
                    {"day": entry.day, "hours": entry.hours} for entry in self.opening_hours
                ],
                "customFields": dict(self.custom_fields),
                "updatedAt": self.updated_at,
            },
        }


@dataclass
class LandingPage:
    """Free-form SEO page belonging to a directory."""

    directory: str
    slug: str
    title: str
    description: str = ""
    featured_image: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    related_categories: List[str] = field(default_factory=list)
    updated_at: Optional[str] = None
    content_html: str = field(default="", repr=False)

    @property
    def key(self) -> str:
        return f"{self.directory}/{self.slug}"

    def render(self) -> str:
        return self.content_html


class BuildStatus(str, Enum):
    PENDING = "pending"
    BUILDING = "building"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class BuildResult:
    """Outcome of building one tenant."""

    tenant_id: str
    status: BuildStatus = BuildStatus.PENDING
    domain: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status is BuildStatus.SUCCESS


@dataclass
class DeployResult:
    """Outcome of publishing one tenant's output."""

    tenant_id: str
    method: str
    success: bool
    domain: Optional[str] = None
    output: Optional[str] = None
    error: Optional[str] = None
