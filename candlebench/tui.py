"""A small terminal dashboard for a SafeTensors or GGUF model file."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

from .gguf import GgufSummary, inspect_gguf
from .inspect import InspectSummary, inspect_safetensors
from .util import format_number, format_shape, format_size, truncate

ModelSummary = Union[InspectSummary, GgufSummary]

_TITLE = "Candlebench"
_HINT = "q/Esc quit, j/k scroll"
_FOOTER = "Use --json on non-TUI commands for machine-readable output."
_HEADER_HEIGHT = 7
_FOOTER_HEIGHT = 3
_ESCAPE = 27

_NO_FILE_STATS = [
    "Open a file with: candlebench tui ./model.safetensors",
    "Supported files: .safetensors, .gguf",
]

_COMMANDS = [
    "inspect <path> -- inspect SafeTensors or GGUF metadata",
    "download --repo <id> <file> -- download from Hugging Face Hub",
    "tokenize <tokenizer.json> <text> -- inspect tokenizer output",
    "embed --text <text> -- run BERT-style embedding inference",
    "similarity --text <a> --text <b> -- compare embeddings",
    "bench-embed --text <text> -- benchmark embedding throughput",
    "bench-matmul --backend auto -- benchmark Candle matmul",
]


class TuiError(ValueError):
    """Raised when the dashboard cannot open the requested file."""


def load_summary(path: str | os.PathLike) -> ModelSummary:
    """Inspect a .safetensors or .gguf file for display."""
    path = Path(path)
    if not path.exists():
        raise TuiError(f"file does not exist: {path}")
    if path.suffix == ".gguf":
        return inspect_gguf(path)
    if path.suffix == ".safetensors":
        return inspect_safetensors(path)
    raise TuiError("TUI supports .safetensors and .gguf files")


def summary_stats(summary: Optional[ModelSummary]) -> list[str]:
    """Header lines describing the file, or usage hints when there is none."""
    if summary is None:
        return list(_NO_FILE_STATS)
    if isinstance(summary, GgufSummary):
        format_line = (
            f"format: GGUF {summary.version} | size: {format_size(summary.file_size_bytes)}"
            f" | tensors: {summary.tensor_count} | metadata: {summary.metadata_count}"
        )
    else:
        format_line = (
            f"format: SafeTensors | size: {format_size(summary.file_size_bytes)}"
            f" | tensors: {summary.tensor_count}"
        )
    return [
        f"file: {summary.path}",
        format_line,
        f"tensor data: {format_size(summary.total_tensor_bytes)}"
        f" | rough parameters: {format_number(summary.total_parameters)}",
    ]


def summary_title(summary: Optional[ModelSummary]) -> str:
    """Title of the main list panel."""
    if summary is None:
        return "Commands"
    if isinstance(summary, GgufSummary):
        return "GGUF Metadata"
    return "Largest Tensors"


def _row_parts(summary: Optional[ModelSummary], scroll: int, height: int) -> list[tuple[str, str, str]]:
    visible = max(height - 2, 0)
    if summary is None:
        return [("", "", command) for command in _COMMANDS[:visible]]
    scroll = max(scroll, 0)
    if isinstance(summary, GgufSummary):
        return [
            (
                f"{truncate(row.key, 32):<34}",
                f"{truncate(row.value_type, 14):<14}",
                truncate(row.value, 80),
            )
            for row in summary.metadata[scroll:scroll + visible]
        ]
    return [
        (
            f"{truncate(row.name, 40):<42}",
            f"{row.dtype:<8}",
            f" {truncate(format_shape(row.shape), 22):<22}"
            f" {format_number(row.parameters):>12} {format_size(row.bytes):>10}",
        )
        for row in summary.tensors[scroll:scroll + visible]
    ]


def summary_rows(summary: Optional[ModelSummary], scroll: int, height: int) -> list[str]:
    """Lines shown in a list panel of ``height`` rows (borders included)."""
    return ["".join(parts) for parts in _row_parts(summary, scroll, height)]


def _put(win, y: int, x: int, text: str, attr: int = 0) -> None:
    import curses

    _, width = win.getmaxyx()
    room = width - x - 1
    if room <= 0:
        return
    try:
        win.addstr(y, x, text[:room], attr)
    except curses.error:
        pass


def _panel(stdscr, top: int, height: int, title: str, title_attr: int = 0):
    import curses

    _, width = stdscr.getmaxyx()
    try:
        win = stdscr.derwin(height, width, top, 0)
        win.box()
    except curses.error:
        return None
    if title:
        _put(win, 0, 1, title, title_attr)
    return win


def _draw(stdscr, summary: Optional[ModelSummary], scroll: int, colors: bool) -> None:
    import curses

    stdscr.erase()
    rows, _ = stdscr.getmaxyx()
    cyan = curses.color_pair(1) if colors else 0
    yellow = curses.color_pair(2) if colors else 0

    header = _panel(stdscr, 0, min(_HEADER_HEIGHT, rows), "")
    if header is not None:
        _put(header, 0, 1, _TITLE, cyan | curses.A_BOLD)
        _put(header, 0, 1 + len(_TITLE), "  " + _HINT)
        for line_no, line in enumerate(summary_stats(summary)[: _HEADER_HEIGHT - 2], start=1):
            _put(header, line_no, 1, line.strip())

    body_height = rows - _HEADER_HEIGHT - _FOOTER_HEIGHT
    if body_height >= 2:
        body = _panel(stdscr, _HEADER_HEIGHT, body_height, summary_title(summary))
        if body is not None:
            for line_no, (head, middle, tail) in enumerate(
                _row_parts(summary, scroll, body_height), start=1
            ):
                _put(body, line_no, 1, head)
                _put(body, line_no, 1 + len(head), middle, yellow)
                _put(body, line_no, 1 + len(head) + len(middle), tail)

    if rows >= _HEADER_HEIGHT + _FOOTER_HEIGHT:
        footer = _panel(stdscr, rows - _FOOTER_HEIGHT, _FOOTER_HEIGHT, "")
        if footer is not None:
            _put(footer, 1, 1, _FOOTER)
    stdscr.refresh()


def _loop(stdscr, summary: Optional[ModelSummary]) -> None:
    import curses

    try:
        curses.curs_set(0)
    except curses.error:
        pass
    colors = curses.has_colors()
    if colors:
        curses.start_color()
        curses.init_pair(1, curses.COLOR_CYAN, curses.COLOR_BLACK)
        curses.init_pair(2, curses.COLOR_YELLOW, curses.COLOR_BLACK)
    stdscr.timeout(200)
    stdscr.keypad(True)

    steps = {
        curses.KEY_DOWN: 1, ord("j"): 1,
        curses.KEY_UP: -1, ord("k"): -1,
        curses.KEY_NPAGE: 10, curses.KEY_PPAGE: -10,
    }
    scroll = 0
    while True:
        _draw(stdscr, summary, scroll, colors)
        key = stdscr.getch()
        if key in (ord("q"), _ESCAPE):
            break
        if key in steps:
            scroll = max(scroll + steps[key], 0)


def run(path: str | os.PathLike | None) -> None:
    """Open the dashboard, optionally for a model file, until q or Esc."""
    import curses

    summary = load_summary(path) if path is not None else None
    curses.wrapper(_loop, summary)