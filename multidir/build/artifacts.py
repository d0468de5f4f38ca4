"""SEO and routing artifacts written next to the generated sites.

Per tenant: ``sitemap.xml``, ``robots.txt`` and ``CNAME``. For the whole
output tree: a sitemap index, the root ``robots.txt``, ``_redirects``,
``_routes.json``, ``_headers``, ``domain-mapping.json``, the tenant selector page and a
build summary ``index.html``.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from xml.etree import ElementTree as ET

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..config import RoutingSettings, UrlPatternSettings
from ..logging import get_logger
from ..models import BuildResult, Directory, LandingPage, Listing
from ..routing import generate_url

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
IMAGE_NS = "http://www.google.com/schemas/sitemap-image/1.1"
ROBOTS_BLOCKED_PATHS = ("/admin/", "/login/", "/logout/", "/account/")
DOMAIN_MAPPING_FILE = "domain-mapping.json"

ET.register_namespace("", SITEMAP_NS)
ET.register_namespace("image", IMAGE_NS)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def tenant_base_url(directory: Directory, site_url: str) -> str:
    """Public root of a tenant: its own domain, else a path under ``site_url``."""
    if directory.domain:
        return f"https://{directory.domain}"
    return f"{site_url.rstrip('/')}/{directory.id}"


def listing_path(listing: Listing, url: UrlPatternSettings) -> str:
    return generate_url(url.pattern, url.segments, listing.url_data()) or listing.slug


def build_sitemap(
    directory: Directory,
    listings: Sequence[Listing],
    landing_pages: Sequence[LandingPage],
    *,
    base_url: str,
    url: UrlPatternSettings,
    now: datetime,
) -> bytes:
    urlset = ET.Element(f"{{{SITEMAP_NS}}}urlset")
    today = _format_date(now)

    _add_url(urlset, f"{base_url}/", today, "daily", "1.0")
    _add_url(urlset, f"{base_url}/search", today, "weekly", "0.8")
    for category in directory.categories:
        _add_url(urlset, f"{base_url}/category/{category.id}", today, "weekly", "0.8")
    for listing in listings:
        entry = _add_url(
            urlset,
            f"{base_url}/{listing_path(listing, url)}",
            _format_date(_parse_date(listing.updated_at) or now),
            "weekly",
            "0.7",
        )
        for image in listing.images:
            _add_image(entry, image, listing.title)
    for page in landing_pages:
        entry = _add_url(
            urlset,
            f"{base_url}/page/{page.slug}",
            _format_date(_parse_date(page.updated_at) or now),
            "monthly",
            "0.6",
        )
        if page.featured_image:
            _add_image(entry, page.featured_image, page.title)

    return _serialise(urlset)


def build_sitemap_index(sitemap_urls: Iterable[str], *, now: datetime) -> bytes:
    index = ET.Element(f"{{{SITEMAP_NS}}}sitemapindex")
    for location in sitemap_urls:
        sitemap = ET.SubElement(index, f"{{{SITEMAP_NS}}}sitemap")
        ET.SubElement(sitemap, f"{{{SITEMAP_NS}}}loc").text = location
        ET.SubElement(sitemap, f"{{{SITEMAP_NS}}}lastmod").text = _format_date(now)
    return _serialise(index)


def render_robots(directory: Directory, base_url: str) -> str:
    meta = directory.meta_tags
    lines = [
        f"# robots.txt for {directory.name}",
        "User-agent: *",
        "Disallow: /" if meta.noindex else "Allow: /",
        "",
        "# Block admin routes if they exist",
    ]
    lines.extend(f"Disallow: {path}" for path in ROBOTS_BLOCKED_PATHS)
    lines.extend(["", "# Allow all crawlers to access sitemap", f"Sitemap: {base_url}/sitemap.xml"])
    if meta.robots_txt:
        lines.extend(["", meta.robots_txt.strip()])
    return "\n".join(lines) + "\n"


def render_root_robots(site_url: str, tenant_base_urls: Iterable[str]) -> str:
    lines = [
        "# robots.txt for Multi-Directory Generator",
        "User-agent: *",
        "Allow: /",
        "",
        "# Block sensitive directories",
        "Disallow: /api/",
        "Disallow: /functions/",
        "",
        "# Sitemaps",
        f"Sitemap: {site_url.rstrip('/')}/sitemap.xml",
    ]
    lines.extend(f"Sitemap: {base}/sitemap.xml" for base in tenant_base_urls)
    return "\n".join(lines) + "\n"


def render_redirects(directories: Sequence[Directory], routing: RoutingSettings) -> str:
    lines = ["# Custom domains"]
    lines.extend(
        f"/* /{directory.id}/:splat 200 Host={directory.domain}"
        for directory in directories
        if directory.domain
    )
    lines.extend(["", "# Main domain paths"])
    lines.extend(f"/{directory.id}/* /{directory.id}/:splat 200" for directory in directories)
    lines.extend(
        [
            "",
            "# Default path",
            f"/ /{routing.selector_dir}/ 200",
            f"/* /{routing.not_found_page} 404",
        ]
    )
    return "\n".join(lines) + "\n"


def build_routes(directories: Sequence[Directory], routing: RoutingSettings) -> Dict[str, Any]:
    routes: List[Dict[str, Any]] = [
        {
            "src": "/",
            "dest": f"/{directory.id}/index.html",
            "has": [{"type": "host", "value": directory.domain}],
        }
        for directory in directories
        if directory.domain
    ]
    routes.append({"src": "/", "dest": f"/{routing.selector_dir}/index.html"})
    routes.extend(
        [
            {"src": "/:directory", "dest": "/:directory/index.html"},
            {"src": "/:directory/", "dest": "/:directory/index.html"},
            {"src": "/:directory/*", "dest": "/:directory/:splat"},
        ]
    )
    for pattern, content_type in _asset_content_types(routing):
        routes.append({"src": pattern, "headers": {"Content-Type": content_type}, "continue": True})
    return {"version": 1, "include": ["/*"], "exclude": ["/api/*"], "routes": routes}


def render_headers(routing: RoutingSettings) -> str:
    """Content-Type rules for static hosts that read a ``_headers`` file."""
    blocks = [
        f"{pattern}\n  Content-Type: {content_type}\n"
        for pattern, content_type in _asset_content_types(routing)
    ]
    return "# Asset content types\n" + "\n".join(blocks)


def domain_mapping(
    directories: Iterable[Directory], extra: Mapping[str, str] | None = None
) -> Dict[str, str]:
    mapping = {directory.domain: directory.id for directory in directories if directory.domain}
    if extra:
        mapping.update(extra)
    return mapping


def load_domain_mapping(output_dir: Path | str) -> Dict[str, str]:
    path = Path(output_dir) / DOMAIN_MAPPING_FILE
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        get_logger("build.artifacts").warning("Ignoring unreadable %s", path)
        return {}
    if not isinstance(data, dict):
        return {}
    return {str(key): str(value) for key, value in data.items()}


class ArtifactWriter:
    """Writes per-tenant and site-wide artifacts into ``output_dir``."""

    def __init__(
        self,
        output_dir: Path | str,
        *,
        site_url: str,
        routing: RoutingSettings | None = None,
        url: UrlPatternSettings | None = None,
        clock: Clock = _utcnow,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.site_url = site_url.rstrip("/")
        self.routing = routing or RoutingSettings()
        self.url = url or UrlPatternSettings()
        self._clock = clock
        self._env = Environment(
            loader=FileSystemLoader(str(Path(__file__).with_name("templates"))),
            autoescape=select_autoescape(enabled_extensions=("html", "j2"), default=True),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.logger = get_logger("build.artifacts")

    def write_tenant(
        self,
        directory: Directory,
        listings: Sequence[Listing],
        landing_pages: Sequence[LandingPage],
    ) -> List[Path]:
        tenant_dir = self.output_dir / directory.id
        tenant_dir.mkdir(parents=True, exist_ok=True)
        base_url = tenant_base_url(directory, self.site_url)
        written = [
            self._write_bytes(
                tenant_dir / "sitemap.xml",
                build_sitemap(
                    directory,
                    listings,
                    landing_pages,
                    base_url=base_url,
                    url=self.url,
                    now=self._clock(),
                ),
            ),
            self._write_text(tenant_dir / "robots.txt", render_robots(directory, base_url)),
        ]
        if directory.domain:
            written.append(self._write_text(tenant_dir / "CNAME", directory.domain))
        self.logger.debug("Wrote %d artifact(s) for %s", len(written), directory.id)
        return written

    def write_site(
        self,
        directories: Sequence[Directory],
        results: Sequence[BuildResult] = (),
    ) -> List[Path]:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        bases = [tenant_base_url(directory, self.site_url) for directory in directories]
        mapping = domain_mapping(directories, self.routing.domain_map)
        written = [
            self._write_bytes(
                self.output_dir / "sitemap.xml",
                build_sitemap_index((f"{base}/sitemap.xml" for base in bases), now=self._clock()),
            ),
            self._write_text(
                self.output_dir / "robots.txt", render_root_robots(self.site_url, bases)
            ),
            self._write_text(
                self.output_dir / "_redirects", render_redirects(directories, self.routing)
            ),
            self._write_text(
                self.output_dir / "_routes.json",
                json.dumps(build_routes(directories, self.routing), indent=2) + "\n",
            ),
            self._write_text(self.output_dir / "_headers", render_headers(self.routing)),
            self._write_text(
                self.output_dir / DOMAIN_MAPPING_FILE,
                json.dumps(mapping, indent=2, sort_keys=True) + "\n",
            ),
            self.write_selector(directories),
        ]
        if results:
            written.append(self.write_build_index(results))
        return written

    def write_selector(self, directories: Sequence[Directory]) -> Path:
        html = self._env.get_template("selector.html.j2").render(directories=directories)
        return self._write_text(self.output_dir / self.routing.selector_dir / "index.html", html)

    def write_build_index(self, results: Sequence[BuildResult]) -> Path:
        html = self._env.get_template("build_index.html.j2").render(
            results=results,
            built_at=self._clock().strftime("%Y-%m-%d %H:%M:%S UTC"),
        )
        return self._write_text(self.output_dir / "index.html", html)

    # ------------------------------------------------------------------
    # Internal helpers

    @staticmethod
    def _write_text(path: Path, content: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    @staticmethod
    def _write_bytes(path: Path, content: bytes) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path


def _asset_content_types(routing: RoutingSettings) -> List[Tuple[str, str]]:
    prefix = routing.asset_prefix
    return [
        (f"{prefix}*.js", "application/javascript"),
        ("/*.js", "application/javascript"),
        (f"{prefix}*.css", "text/css"),
        ("/*.css", "text/css"),
    ]


def _add_url(parent: ET.Element, loc: str, lastmod: str, changefreq: str, priority: str) -> ET.Element:
    entry = ET.SubElement(parent, f"{{{SITEMAP_NS}}}url")
    ET.SubElement(entry, f"{{{SITEMAP_NS}}}loc").text = loc
    ET.SubElement(entry, f"{{{SITEMAP_NS}}}lastmod").text = lastmod
    ET.SubElement(entry, f"{{{SITEMAP_NS}}}changefreq").text = changefreq
    ET.SubElement(entry, f"{{{SITEMAP_NS}}}priority").text = priority
    return entry


def _add_image(entry: ET.Element, location: str, title: str) -> None:
    image = ET.SubElement(entry, f"{{{IMAGE_NS}}}image")
    ET.SubElement(image, f"{{{IMAGE_NS}}}loc").text = location
    ET.SubElement(image, f"{{{IMAGE_NS}}}title").text = title


def _serialise(element: ET.Element) -> bytes:
    ET.indent(element)
    return ET.tostring(element, encoding="utf-8", xml_declaration=True)


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_date(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


__all__ = [
    "ArtifactWriter",
    "DOMAIN_MAPPING_FILE",
    "build_routes",
    "build_sitemap",
    "build_sitemap_index",
    "domain_mapping",
    "listing_path",
    "load_domain_mapping",
    "render_headers",
    "render_redirects",
    "render_robots",
    "render_root_robots",
    "tenant_base_url",
]
