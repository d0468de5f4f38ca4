"""In-memory NocoDB records endpoint and sample tables for tests."""

from __future__ import annotations

import json
import re
import socket
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional
from urllib.parse import parse_qs, unquote, urlsplit

API_URL = "https://nocodb.test/api/v2"

_TERM = re.compile(r"\(([^(),~]+),(eq|like),([^()]*)\)")


def directory_record(identifier: str, **overrides: Any) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "Identifier": identifier,
        "Name": identifier.replace("-", " ").title(),
        "Description": f"All about {identifier}",
        "Theme": "default",
    }
    record.update(overrides)
    return record


def listing_record(directory: str, slug: str, **overrides: Any) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "Directory Identifier": directory,
        "Slug": slug,
        "Title": slug.replace("-", " ").title(),
        "Description": "",
    }
    record.update(overrides)
    return record


SAMPLE_TABLES: Dict[str, List[Dict[str, Any]]] = {
    "Directories": [
        directory_record(
            "french-desserts",
            Name="French Desserts",
            Domain="french-desserts.example.com",
            Theme="elegant",
            Available_Layouts="Card,Map",
            Primary_Color="#8e44ad",
            Categories=json.dumps(
                [
                    {"id": "patisserie", "name": "Patisserie"},
                    {"id": "chocolate", "name": "Chocolate"},
                ]
            ),
            Meta_Tags=json.dumps({"title": "French Desserts", "keywords": ["dessert"]}),
        ),
        directory_record(
            "dog-parks-warsaw",
            Name="Dog Parks Warsaw",
            Theme="nature",
            Categories=json.dumps([{"id": "park", "name": "Park"}]),
        ),
    ],
    "Listings": [
        listing_record(
            "french-desserts",
            "macarons-paris",
            Title="Macarons de Paris",
            Description="Delicate almond meringue cookies",
            Category="patisserie",
            Tags=json.dumps(["macaron", "almond"]),
            Featured=1,
            Address="12 Rue Cler",
            UpdatedAt="2024-03-01T10:00:00Z",
            Content="# Macarons\n\nBest in town.",
        ),
        listing_record(
            "french-desserts",
            "chocolate-house",
            Title="Chocolate House",
            Description="Pralines and truffles",
            Category="chocolate",
            Tags=json.dumps(["chocolate", "almond"]),
            Featured=0,
            Address="5 Avenue Montaigne",
            UpdatedAt="2024-04-01T10:00:00Z",
        ),
        listing_record(
            "french-desserts",
            "eclair-corner",
            Title="Eclair Corner",
            Description="Classic eclairs",
            Category="patisserie",
            Tags=json.dumps(["eclair"]),
            Featured=True,
            Address="1 Place Vendome",
            UpdatedAt="2024-02-01T10:00:00Z",
        ),
        listing_record(
            "dog-parks-warsaw",
            "pole-mokotowskie",
            Title="Pole Mokotowskie",
            Description="Large park with open fields",
            Category="park",
            Tags=json.dumps(["off-leash"]),
            Address="Warsaw",
            UpdatedAt="2024-01-15T10:00:00Z",
        ),
    ],
    "Landing Pages": [
        {
            "Directory Identifier": "french-desserts",
            "Slug": "best-macarons",
            "Title": "Best Macarons",
            "Featured_Image": "https://img.test/macarons.jpg",
            "UpdatedAt": "2024-03-10T00:00:00Z",
            "Content": "Our *favourite* macarons.",
        }
    ],
}


class FakeNocoDB:
    """In-memory stand-in for the NocoDB records endpoint.

    Understands ``eq`` and ``like`` terms, ``sort``, ``limit`` and
    ``offset`` closely enough for the client's queries.
    """

    def __init__(self, tables: Mapping[str, List[Dict[str, Any]]] | None = None) -> None:
        source = tables if tables is not None else SAMPLE_TABLES
        self.tables = {name: [dict(row) for row in rows] for name, rows in source.items()}
        self.calls: List[str] = []
        self.headers: List[Mapping[str, str]] = []
        self.fail_with: Optional[Exception] = None

    def __call__(self, url: str, headers: Mapping[str, str], timeout: float) -> Any:
        self.calls.append(url)
        self.headers.append(dict(headers))
        if self.fail_with is not None:
            raise self.fail_with
        parts = urlsplit(url)
        match = re.search(r"/tables/([^/]+)/records$", parts.path)
        assert match, url
        table = unquote(match.group(1))
        query = {key: values[0] for key, values in parse_qs(parts.query).items()}
        rows = [row for row in self.tables.get(table, []) if _matches(row, query.get("where", ""))]
        sort = query.get("sort")
        if sort:
            field = sort.lstrip("-")
            rows.sort(key=lambda row: str(row.get(field) or ""), reverse=sort.startswith("-"))
        offset = int(query.get("offset", 0))
        limit = int(query.get("limit", 25))
        page = rows[offset : offset + limit]
        return {
            "list": page,
            "pageInfo": {"isLastPage": offset + limit >= len(rows), "totalRows": len(rows)},
        }

    def calls_for(self, table: str) -> List[str]:
        marker = f"/tables/{table.replace(' ', '%20')}/"
        return [call for call in self.calls if marker in call]


def _matches(row: Mapping[str, Any], where: str) -> bool:
    likes: List[bool] = []
    for field, op, value in _TERM.findall(where):
        actual = row.get(field)
        if op == "eq":
            if isinstance(actual, bool) or field == "Featured":
                if str(bool(actual) and actual not in (0, "0")).lower() != value.lower():
                    return False
            elif str(actual) != value:
                return False
        else:
            likes.append(value.strip("%").lower() in str(actual or "").lower())
    return any(likes) if likes else True




@contextmanager
def hangup_server() -> Iterator[str]:
    """Yield a base URL whose server reads each request and closes without replying."""
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(5)
    listener.settimeout(0.1)
    stop = threading.Event()

    def serve() -> None:
        while not stop.is_set():
            try:
                conn, _ = listener.accept()
            except socket.timeout:
                continue
            with conn:
                conn.settimeout(1.0)
                try:
                    conn.recv(65536)
                except OSError:
                    pass

    worker = threading.Thread(target=serve, daemon=True)
    worker.start()
    host, port = listener.getsockname()
    try:
        yield f"http://{host}:{port}/api/v2"
    finally:
        stop.set()
        worker.join(timeout=2)
        listener.close()
