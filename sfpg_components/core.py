import random
import re
import time
from pathlib import Path
from typing import Optional

import requests

from .state import CrawlState, FailedLinkLogger
from .types import (
    CHUNK_SIZE,
    RETRY_HTTP_STATUS,
    CrawlOptions,
    FetchError,
    GalleryEntry,
    InvalidOutputError,
    OutputDirectoryIsFileError,
    RetryableHTTPError,
)
from .ui import TerminalUI
from .utils import (
    clean_filename,
    directory_url,
    ensure_url,
    find_existing,
    image_url,
    sniff_extension,
    unescape_js,
)

# Body of a single-quoted JS string literal.
_JS_STR = r"(?:[^'\\\n]|\\.)*"

# The page declares the current directory link-first and its subdirectories
# name-first; each order gets its own rule.
THIS_DIRECTORY_PATTERN = re.compile(
    r"dirLink\[(?P<index>[0-9]*)\]\s*=\s*'(?P<link>" + _JS_STR + r")';"
    r"\s*dirName\[(?P=index)\]\s*=\s*'(?P<name>" + _JS_STR + r")';"
)
SUBDIRECTORY_PATTERN = re.compile(
    r"dirName\[(?P<index>[0-9]*)\]\s*=\s*'(?P<name>" + _JS_STR + r")';"
    r"\s*dirLink\[(?P=index)\]\s*=\s*'(?P<link>" + _JS_STR + r")';"
)
IMAGE_PATTERN = re.compile(
    r"imgLink\[(?P<index>[0-9]*)\]\s*=\s*'(?P<link>" + _JS_STR + r")';"
    r"\s*imgName\[(?P=index)\]\s*=\s*'(?P<name>" + _JS_STR + r")';"
)


def get_with_retry(
    session: requests.Session,
    url: str,
    timeout: int,
    retries: int,
    **kwargs,
) -> requests.Response:
    """GET ``url``, retrying connection errors and gateway-style statuses.

    With ``retries=0`` this is a single plain request.
    """
    attempt = 0
    while True:
        try:
            resp = session.get(url, timeout=timeout, **kwargs)
        except requests.RequestException:
            if attempt >= retries:
                raise
        else:
            if resp.status_code not in RETRY_HTTP_STATUS:
                return resp
            resp.close()
            if attempt >= retries:
                raise RetryableHTTPError(f"{url} answered HTTP {resp.status_code}")
        attempt += 1
        time.sleep(min(20.0, 1.25 * (2 ** (attempt - 1)) + random.uniform(0.1, 0.45)))


def _entry_from_match(match: re.Match, is_directory: bool) -> GalleryEntry:
    index_str = match.group("index")
    link = unescape_js(match.group("link")) or None
    name = unescape_js(match.group("name")) or None
    return GalleryEntry(
        index=int(index_str) if index_str else None,
        link=link,
        name=name,
        is_directory=is_directory,
    )


def extract_this_directory(page_html: str) -> Optional[GalleryEntry]:
    m = THIS_DIRECTORY_PATTERN.search(page_html)
    if not m:
        return None
    return _entry_from_match(m, is_directory=True)


def extract_subdirectories(page_html: str) -> list[GalleryEntry]:
    return [_entry_from_match(m, is_directory=True) for m in SUBDIRECTORY_PATTERN.finditer(page_html)]


def extract_images(page_html: str) -> list[GalleryEntry]:
    return [_entry_from_match(m, is_directory=False) for m in IMAGE_PATTERN.finditer(page_html)]


def resolve_output_dir(parent: Path, dir_name: str) -> Path:
    path = parent / clean_filename(dir_name, fallback="folder")
    if path.exists():
        if not path.is_dir():
            raise OutputDirectoryIsFileError(str(path))
    else:
        path.mkdir(parents=True, exist_ok=True)
    return path


def save_image(
    session: requests.Session,
    url: str,
    out_dir: Path,
    name: str,
    timeout: int,
    retries: int,
    ui: Optional[TerminalUI] = None,
) -> Optional[Path]:
    """Stream ``url`` into ``out_dir/<name>.<ext>``.

    The extension comes from the first byte of the body. Returns the written
    path, or None when the type is not recognised (nothing is written).
    Network errors propagate as ``requests.RequestException`` or
    ``RetryableHTTPError``; filesystem errors as ``OSError``.
    """
    resp = get_with_retry(
        session=session,
        url=url,
        timeout=timeout,
        retries=retries,
        stream=True,
    )
    with resp as r:
        r.raise_for_status()
        content_len = int(r.headers.get("Content-Length", "0") or "0")
        total = content_len if content_len > 0 else None

        chunks = r.iter_content(chunk_size=CHUNK_SIZE)
        first = b""
        for chunk in chunks:
            if chunk:
                first = chunk
                break
        ext = sniff_extension(first)
        if ext is None:
            return None

        out_path = out_dir / f"{name}.{ext}"
        tmp_path = out_path.with_name(out_path.name + ".part")
        downloaded = 0
        try:
            with tmp_path.open("wb") as f:
                f.write(first)
                downloaded += len(first)
                for chunk in chunks:
                    if not chunk:
                        continue
                    f.write(chunk)
                    downloaded += len(chunk)
                    if ui:
                        ui.progress(key=url, label=name, current=downloaded, total=total)
            tmp_path.replace(out_path)
        except BaseException:
            if tmp_path.is_file():
                tmp_path.unlink()
            raise
        if ui:
            ui.progress(key=url, label=name, current=downloaded, total=total or downloaded, force=True)
            ui.finish_progress_line()
        return out_path


class GalleryCrawler:
    """Depth-first downloader for a Single File PHP Gallery."""

    def __init__(
        self,
        session: requests.Session,
        ui: TerminalUI,
        options: CrawlOptions,
        failed_logger: Optional[FailedLinkLogger] = None,
    ):
        self.session = session
        self.ui = ui
        self.options = options
        self.failed_logger = failed_logger
        self.root_url = ""

    def run(self, root_url: str) -> CrawlState:
        self.root_url = ensure_url(root_url)
        output_root = Path(self.options.output_root)
        if not output_root.is_dir():
            raise InvalidOutputError(str(output_root))
        state = CrawlState()
        self.crawl_node(self.root_url, output_root, 0, state)
        return state

    def _record_failure(self, state: CrawlState, item_url: str, name: Optional[str], reason: str) -> None:
        state.failed += 1
        if self.failed_logger:
            self.failed_logger.add(
                gallery_url=self.root_url,
                item_url=item_url,
                name=name,
                reason=reason,
            )
        if self.options.fail_fast:
            label = name or item_url
            raise FetchError(f"{label}: {reason}")
        if self.options.verbose:
            self.ui.warn(f"{name or item_url}: {reason}")

    def fetch_page(self, url: str, state: CrawlState) -> Optional[str]:
        try:
            r = get_with_retry(
                session=self.session,
                url=url,
                timeout=self.options.timeout,
                retries=self.options.retries,
            )
            r.raise_for_status()
            return r.content.decode("utf-8")
        except (requests.RequestException, RetryableHTTPError) as exc:
            self._record_failure(state, url, None, f"page fetch failed: {exc}")
        except UnicodeDecodeError:
            self._record_failure(state, url, None, "page is not UTF-8 text")
        return None

    def _limit_reached(self, state: CrawlState) -> bool:
        limit = self.options.max_downloaded
        if limit is not None and state.total_downloaded >= limit:
            state.limit_reached = True
        return state.limit_reached

    def process_image(self, node_url: str, image: GalleryEntry, out_dir: Path, state: CrawlState) -> str:
        """Handle one image record.

        Returns one of ``invalid``, ``existing``, ``limit``, ``failed``,
        ``unknown`` or ``downloaded``. Only ``invalid`` and ``limit`` leave
        the image unaccounted for.
        """
        if not image.link or not image.display_name:
            return "invalid"
        name = clean_filename(image.display_name, fallback=image.link)
        url = image_url(node_url, image.link)

        existing = find_existing(out_dir, name)
        if existing is not None:
            state.existing += 1
            if self.options.verbose:
                self.ui.info(f"{existing.name} already exists, skipped")
            return "existing"

        if self._limit_reached(state):
            return "limit"

        if self.options.verbose:
            self.ui.info(f"Downloading {name}...")
        try:
            path = save_image(
                session=self.session,
                url=url,
                out_dir=out_dir,
                name=name,
                timeout=self.options.timeout,
                retries=self.options.retries,
                ui=self.ui if self.options.verbose else None,
            )
        except (requests.RequestException, RetryableHTTPError) as exc:
            self.ui.finish_progress_line()
            self._record_failure(state, url, name, f"image fetch failed: {exc}")
            return "failed"
        except OSError as exc:
            self.ui.finish_progress_line()
            state.total_downloaded += 1
            self._record_failure(state, url, name, f"write failed: {exc}")
            return "failed"

        state.total_downloaded += 1
        if path is None:
            self._record_failure(state, url, name, "unrecognized image type")
            return "unknown"
        if self.options.verbose:
            self.ui.ok(f"{name} saved -> {path.name}")
        return "downloaded"

    def _saved_budget_left(self, state: CrawlState) -> bool:
        return self.options.max_saved is None or state.total_saved < self.options.max_saved

    def crawl_node(self, url: str, output_dir: Path, depth: int, state: CrawlState) -> None:
        state.visited.add(url)
        state.nodes += 1
        page_html = self.fetch_page(url, state)
        if page_html is None:
            return

        this_dir = extract_this_directory(page_html)
        subdirs = extract_subdirectories(page_html)
        images = extract_images(page_html)
        if self.options.verbose:
            self.ui.info(f"{len(images)} images found.")

        if self.options.max_saved is not None:
            budget = max(0, self.options.max_saved - state.total_saved)
            images = images[:budget]

        if this_dir and this_dir.name:
            output_dir = resolve_output_dir(output_dir, this_dir.name)
            if self.options.verbose:
                self.ui.info(f"Saving to {output_dir.name}/")

        processed = 0
        for image in images:
            status = self.process_image(url, image, output_dir, state)
            if status == "limit":
                break
            if status != "invalid":
                processed += 1
        state.total_saved += processed
        self._limit_reached(state)

        for subdir in subdirs:
            if not self.options.allows_depth(depth):
                break
            if state.limit_reached or not self._saved_budget_left(state):
                break
            if not subdir.link:
                continue
            child_url = directory_url(url, subdir.link)
            # Galleries can link back to an ancestor.
            if child_url in state.visited:
                continue
            self.crawl_node(child_url, output_dir, depth + 1, state)
