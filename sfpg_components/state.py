import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import requests


class SessionFactory:
    def __init__(self):
        self.session: Optional[requests.Session] = None

    def get(self) -> requests.Session:
        if self.session is None:
            self.session = requests.Session()
        return self.session

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None


@dataclass
class CrawlState:
    """Counters shared by every node of one run.

    ``total_saved`` counts images accounted for, fetched or already on disk.
    ``total_downloaded`` counts images fetched over the network, so it never
    exceeds ``total_saved``.
    """

    total_saved: int = 0
    total_downloaded: int = 0
    existing: int = 0
    failed: int = 0
    nodes: int = 0
    limit_reached: bool = False
    visited: set[str] = field(default_factory=set)

    def summary(self) -> str:
        return (
            f"downloaded={self.total_downloaded}, "
            f"existing={self.existing}, "
            f"saved={self.total_saved}, "
            f"failed={self.failed}"
        )


class FailedLinkLogger:
    def __init__(self, path: Path):
        self.path = path
        self.header_written = path.exists() and path.stat().st_size > 0

    @staticmethod
    def _safe(value: Optional[str]) -> str:
        if value is None:
            return ""
        return str(value).replace("\t", " ").replace("\r", " ").replace("\n", " ").strip()

    def add(
        self,
        gallery_url: str,
        item_url: str,
        name: Optional[str],
        reason: str,
    ) -> None:
        ts = time.strftime("%Y-%m-%d %H:%M:%S")
        fields = [
            ts,
            self._safe(gallery_url),
            self._safe(item_url),
            self._safe(name),
            self._safe(reason),
        ]
        line = "\t".join(fields) + "\n"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            if not self.header_written:
                f.write("timestamp\tgallery_url\titem_url\tname\treason\n")
                self.header_written = True
            f.write(line)
