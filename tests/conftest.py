"""
Shared fixtures: an offline requests-style session serving canned gallery pages.
"""

from pathlib import Path

import pytest
import requests

from sfpg_components.core import GalleryCrawler
from sfpg_components.types import CrawlOptions
from sfpg_components.ui import TerminalUI

BASE_URL = "https://host/gallery.php"

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 32
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
GIF_BYTES = b"GIF89a" + b"\x00" * 32


def image_request(link, base=BASE_URL):
    return f"{base}?cmd=image&sfpg={link}"


def dir_request(link, base=BASE_URL):
    return f"{base}?sfpg={link}"


def gallery_page(this_dir=None, images=(), subdirs=()):
    """Render a page in the SFPG script's JavaScript declaration style.

    ``this_dir`` is a (name, link) pair, ``images`` and ``subdirs`` are
    sequences of (name, link) pairs.
    """
    lines = ["<html><head><script type=\"text/javascript\">"]
    if this_dir:
        name, link = this_dir
        lines.append(f"dirLink[0] = '{link}'; dirName[0] = '{name}';")
    for i, (name, link) in enumerate(subdirs, start=1):
        lines.append(f"dirName[{i}] = '{name}'; dirLink[{i}] = '{link}'; dirThumb[{i}] = 'thumb{i}';")
    for i, (name, link) in enumerate(images):
        lines.append(f"imgLink[{i}] = '{link}'; imgName[{i}] = '{name}'; imgInfo[{i}] = '800x600';")
    lines.append("</script></head><body></body></html>")
    return "\n".join(lines).encode("utf-8")


class FakeResponse:
    def __init__(self, status_code=200, body=b"", headers=None):
        self.status_code = status_code
        self.content = body
        self.headers = headers or {"Content-Length": str(len(body))}
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class FakeSession:
    """Maps URLs to bytes, FakeResponse objects or exceptions to raise."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, timeout=None, **kwargs):
        self.calls.append(url)
        target = self.routes.get(url)
        if target is None:
            return FakeResponse(status_code=404, body=b"not found")
        if isinstance(target, Exception):
            raise target
        if isinstance(target, FakeResponse):
            return target
        return FakeResponse(body=target)

    def close(self):
        pass


@pytest.fixture
def make_crawler(tmp_path):
    def _make(session, failed_logger=None, **option_values):
        option_values.setdefault("output_root", tmp_path)
        options = CrawlOptions(**option_values)
        return GalleryCrawler(
            session=session,
            ui=TerminalUI(pretty=False),
            options=options,
            failed_logger=failed_logger,
        )

    return _make


def files_in(path: Path):
    return sorted(p.name for p in path.iterdir() if p.is_file())
