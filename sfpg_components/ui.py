import os
import shutil
import sys
import time
from typing import Optional

from .utils import human_bytes


def enable_ansi_colors() -> bool:
    if not sys.stdout.isatty():
        return False
    if os.name != "nt":
        return True
    try:
        import ctypes

        kernel32 = ctypes.windll.kernel32
        handle = kernel32.GetStdHandle(-11)
        mode = ctypes.c_uint()
        if kernel32.GetConsoleMode(handle, ctypes.byref(mode)) == 0:
            return False
        if kernel32.SetConsoleMode(handle, mode.value | 0x0004) == 0:
            return False
        return True
    except Exception:
        return False


class TerminalUI:
    RESET = "\033[0m"
    CYAN = "\033[96m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"

    def __init__(self, pretty: bool):
        self.is_tty = sys.stdout.isatty()
        self.dynamic = pretty and self.is_tty
        self.use_color = pretty and enable_ansi_colors()
        self.last_progress_at: dict[str, float] = {}
        self.term_width = shutil.get_terminal_size((120, 20)).columns
        self.dynamic_active = False

    def _truncate(self, text: str) -> str:
        if len(text) <= self.term_width - 1:
            return text
        return text[: self.term_width - 1]

    def _color(self, text: str, color: str) -> str:
        if not self.use_color:
            return text
        return f"{color}{text}{self.RESET}"

    def _line(self, text: str) -> None:
        if self.dynamic and self.dynamic_active:
            sys.stdout.write("\n")
            self.dynamic_active = False
        print(text, flush=True)

    def plain(self, msg: str) -> None:
        self._line(msg)

    def info(self, msg: str) -> None:
        self._line(self._color("[INFO]", self.CYAN) + f" {msg}")

    def ok(self, msg: str) -> None:
        self._line(self._color("[ OK ]", self.GREEN) + f" {msg}")

    def warn(self, msg: str) -> None:
        self._line(self._color("[WARN]", self.YELLOW) + f" {msg}")

    def _render_bar(self, current: int, total: Optional[int], width: int = 22) -> str:
        if not total or total <= 0:
            return "[" + ("." * width) + "]"
        pct = max(0.0, min(1.0, current / total))
        fill = int(width * pct)
        return "[" + ("#" * fill) + ("-" * (width - fill)) + "]"

    def progress(
        self,
        key: str,
        label: str,
        current: int,
        total: Optional[int],
        force: bool = False,
    ) -> None:
        if not self.dynamic:
            return
        now = time.monotonic()
        last = self.last_progress_at.get(key, 0.0)
        if not force and (now - last) < 0.20:
            return
        self.last_progress_at[key] = now

        pct = (current / total * 100.0) if total and total > 0 else 0.0
        bar = self._render_bar(current, total)
        total_str = human_bytes(total) if total else "?"
        line = f"{label:<30} {bar} {pct:6.2f}% {human_bytes(current):>10}/{total_str:<10}"
        sys.stdout.write("\r" + self._truncate(line).ljust(self.term_width))
        sys.stdout.flush()
        self.dynamic_active = True

    def finish_progress_line(self) -> None:
        if self.dynamic and self.dynamic_active:
            sys.stdout.write("\n")
            sys.stdout.flush()
            self.dynamic_active = False
