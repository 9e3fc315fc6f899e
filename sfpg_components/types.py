from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import re


INVALID_FS_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1F]+')
RETRY_HTTP_STATUS = {408, 425, 429, 500, 502, 503, 504}
CHUNK_SIZE = 1024 * 512

# First byte of the body -> saved extension.
MAGIC_EXTENSIONS = {
    0xFF: "jpg",
    0x89: "png",
    0x47: "gif",
}
KNOWN_EXTENSIONS = ("jpg", "png", "gif")


class SFPGDError(Exception):
    pass


class InvalidURLError(SFPGDError):
    def __init__(self, url: str = ""):
        super().__init__("Invalid URL")
        self.url = url


class InvalidOutputError(SFPGDError):
    def __init__(self, path: str = ""):
        super().__init__("Invalid output directory")
        self.path = path


class OutputDirectoryIsFileError(SFPGDError):
    def __init__(self, path: str):
        super().__init__(f"{path} file exists.")
        self.path = path


class FetchError(SFPGDError):
    pass


class RetryableHTTPError(Exception):
    pass


@dataclass(frozen=True)
class GalleryEntry:
    index: Optional[int] = None
    link: Optional[str] = None
    name: Optional[str] = None
    is_directory: bool = False

    @property
    def display_name(self) -> Optional[str]:
        return self.name or self.link

    def __str__(self) -> str:
        out = ""
        if self.index is not None:
            out += f"[{self.index}] "
        if self.name:
            out += self.name + ": "
        if self.link:
            out += self.link
        return out


@dataclass(frozen=True)
class CrawlOptions:
    output_root: Path
    max_depth: Optional[int] = None
    recursive: bool = False
    max_saved: Optional[int] = None
    max_downloaded: Optional[int] = None
    verbose: bool = False
    timeout: int = 60
    retries: int = 0
    fail_fast: bool = False

    def allows_depth(self, depth: int) -> bool:
        """Whether a node at ``depth`` may descend into its subdirectories."""
        if self.max_depth is not None:
            return depth < self.max_depth
        return self.recursive
