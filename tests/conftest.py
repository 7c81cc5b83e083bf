"""Shared fixtures and helpers for tests."""

from __future__ import annotations

import asyncio
import os
from io import BytesIO
from pathlib import Path
from typing import Any

import httpx
import pytest
from pypdf import PdfWriter

from figma_export.fetcher import RemoteFetcher
from figma_export.models import ExportOptions

API_URL = "https://api.test"
CDN_HOST = "cdn.test"

_TESTS_ROOT = Path(__file__).parent


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        rel = Path(str(item.fspath)).relative_to(_TESTS_ROOT)
        if rel.parts and rel.parts[0] == "unit":
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_pdf(width: float = 100, height: float = 100, pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=width, height=height)
    buf = BytesIO()
    writer.write(buf)
    return buf.getvalue()


def frame(node_id: str, x: float, y: float, width: float = 100, height: float = 100, name: str | None = None) -> dict[str, Any]:
    return {
        "id": node_id,
        "name": name or f"Frame {node_id}",
        "type": "FRAME",
        "absoluteBoundingBox": {"x": x, "y": y, "width": width, "height": height},
    }


def canvas(node_id: str, name: str, children: list[dict[str, Any]]) -> dict[str, Any]:
    return {"id": node_id, "name": name, "type": "CANVAS", "children": children}


# ---------------------------------------------------------------------------
# Fake Figma API served through httpx.MockTransport
# ---------------------------------------------------------------------------


class FakeFigmaApi:
    """In-memory stand-in for the files, projects, images and CDN endpoints."""

    def __init__(self) -> None:
        self.files: dict[str, dict[str, Any]] = {}
        self.projects: dict[str, list[dict[str, str]]] = {}
        self.failed_renders: set[str] = set()
        self.delays: dict[str, float] = {}
        self.requests: list[httpx.Request] = []

    def add_file(self, key: str, name: str, canvases: list[dict[str, Any]]) -> None:
        self.files[key] = {"name": name, "document": {"id": "0:0", "type": "DOCUMENT", "children": canvases}}

    def add_project(self, key: str, file_keys: list[str]) -> None:
        self.projects[key] = [{"key": k, "name": self.files[k]["name"]} for k in file_keys]

    def frames(self) -> dict[str, dict[str, Any]]:
        result = {}
        for body in self.files.values():
            for page in body["document"]["children"]:
                for node in page.get("children", []):
                    result[node["id"]] = node
        return result

    def paths(self, prefix: str) -> list[str]:
        return [r.url.path for r in self.requests if r.url.path.startswith(prefix)]

    @property
    def cdn_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == CDN_HOST]

    def render(self, node_id: str, fmt: str) -> bytes:
        if fmt == "pdf":
            node = self.frames()[node_id]
            box = node["absoluteBoundingBox"]
            return make_pdf(width=box["width"], height=box["height"])
        return f"{fmt}:{node_id}".encode()

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == CDN_HOST:
            _, file_key, name = path.split("/")
            node_id, fmt = name.rsplit(".", 1)
            return httpx.Response(200, content=self.render(node_id, fmt))

        parts = path.strip("/").split("/")
        if parts[:2] == ["v1", "files"]:
            key = parts[2]
            if key in self.delays:
                await asyncio.sleep(self.delays[key])
            if key not in self.files:
                return httpx.Response(404, json={"status": 404, "err": "Not found"})
            return httpx.Response(200, json=self.files[key])

        if parts[:2] == ["v1", "projects"]:
            key = parts[2]
            if key not in self.projects:
                return httpx.Response(404, json={"status": 404, "err": "Not found"})
            return httpx.Response(200, json={"name": key, "files": self.projects[key]})

        if parts[:2] == ["v1", "images"]:
            key = parts[2]
            ids = request.url.params["ids"].split(",")
            fmt = request.url.params["format"]
            images = {
                node_id: None if node_id in self.failed_renders
                else f"https://{CDN_HOST}/{key}/{node_id}.{fmt}"
                for node_id in ids
            }
            return httpx.Response(200, json={"err": None, "images": images})

        return httpx.Response(404, text="unknown route")


@pytest.fixture
def api() -> FakeFigmaApi:
    return FakeFigmaApi()


@pytest.fixture
def fetcher(api: FakeFigmaApi) -> RemoteFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(api.handler))
    return RemoteFetcher(client=client)


@pytest.fixture
def options(tmp_path: Path) -> ExportOptions:
    return ExportOptions(directory=tmp_path, format="pdf", api_url=API_URL)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Drop FIGMA_* variables and work from an empty directory."""
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.upper().startswith("FIGMA_"):
            monkeypatch.delenv(name)
