import re
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode, urlparse, urlunparse

from .types import INVALID_FS_CHARS, KNOWN_EXTENSIONS, MAGIC_EXTENSIONS, InvalidURLError

JS_ESCAPE = re.compile(r"\\(.)")


def unescape_js(value: str) -> str:
    return JS_ESCAPE.sub(r"\1", value)


def clean_filename(name: str, fallback: str) -> str:
    name = (name or "").strip()
    name = INVALID_FS_CHARS.sub("_", name).strip(" ")
    if not name or name in {".", ".."}:
        return fallback
    return name


def ensure_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        raise InvalidURLError(url)
    try:
        parsed = urlparse(url)
    except ValueError as exc:
        raise InvalidURLError(url) from exc
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise InvalidURLError(url)
    return url


def build_gallery_url(base_url: str, link: str, cmd: Optional[str] = None) -> str:
    """Point ``base_url`` at a gallery item.

    The existing query string and fragment are dropped; the new query is
    ``cmd=<cmd>&sfpg=<link>`` (or just ``sfpg=<link>``), in that order.
    """
    p = urlparse(base_url)
    params: list[tuple[str, str]] = []
    if cmd:
        params.append(("cmd", cmd))
    params.append(("sfpg", link))
    return urlunparse((p.scheme, p.netloc, p.path, p.params, urlencode(params), ""))


def image_url(base_url: str, link: str) -> str:
    return build_gallery_url(base_url, link, cmd="image")


def directory_url(base_url: str, link: str) -> str:
    return build_gallery_url(base_url, link)


def sniff_extension(data: bytes) -> Optional[str]:
    if not data:
        return None
    return MAGIC_EXTENSIONS.get(data[0])


def find_existing(out_dir: Path, name: str) -> Optional[Path]:
    for ext in KNOWN_EXTENSIONS:
        candidate = out_dir / f"{name}.{ext}"
        if candidate.exists():
            return candidate
    return None


def human_bytes(value: Optional[float]) -> str:
    if value is None:
        return "?"
    value = float(max(0.0, value))
    units = ["B", "KB", "MB", "GB", "TB"]
    idx = 0
    while value >= 1024 and idx < len(units) - 1:
        value /= 1024.0
        idx += 1
    return f"{value:.2f}{units[idx]}"
