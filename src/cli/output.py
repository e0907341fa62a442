"""Console output for the scholarcache CLI.

Every line printed to the terminal is mirrored to the log file, so a run
can be reconstructed from the log alone.
"""

import logging
from typing import Any, Dict, List, Optional

TITLE_WIDTH = 70
ABSTRACT_WIDTH = 200


def _truncate(text: str, width: int) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."


class OutputManager:
    """Print to stdout and log the same line.

    Usage:
        out = get_output("scholarcache.search")
        out.header("Search")
        out.stat("Limit", 10)
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _emit(self, text: str, level: int = logging.INFO, log_text: Optional[str] = None) -> None:
        print(text)
        self.logger.log(level, log_text if log_text is not None else text.strip())

    def info(self, msg: str) -> None:
        self._emit(msg)

    def success(self, msg: str) -> None:
        self._emit(f"✓ {msg}")

    def warning(self, msg: str) -> None:
        self._emit(f"⚠ {msg}", logging.WARNING, msg)

    def error(self, msg: str) -> None:
        self._emit(f"❌ {msg}", logging.ERROR, msg)

    def header(self, title: str, width: int = 60) -> None:
        rule = "=" * width
        print(f"\n{rule}\n  {title}\n{rule}\n")
        self.logger.info(f"=== {title} ===")

    def stat(self, label: str, value: Any, indent: int = 3) -> None:
        self._emit(f"{' ' * indent}{label}: {value}")

    def table_row(self, columns: List[Any], widths: Optional[List[int]] = None, indent: int = 0) -> None:
        """Print one row of ``|`` separated columns, left-padded to ``widths`` when given."""
        cells = [str(c) for c in columns]
        if widths:
            cells = [c.ljust(w) for c, w in zip(cells, widths)]
        self._emit(" " * indent + " | ".join(cells))

    def blank(self) -> None:
        print()

    def paper(self, paper: Dict[str, Any], index: int, verbose: bool = False, cached: bool = False) -> None:
        """Print a paper record (``Paper.to_dict()`` form) as a short numbered block."""
        title = _truncate(paper.get("title") or "Unknown", TITLE_WIDTH)
        self._emit(f"{index}. {title}{' [cached]' if cached else ''}")

        names = [a.get("name", "") for a in paper.get("authors") or []]
        if names:
            more = " ..." if len(names) > 3 else ""
            self._emit(f"   Authors: {', '.join(names[:3])}{more}")

        details = [f"Year: {paper.get('year') or 'N/A'}", f"Citations: {paper.get('citation_count') or 0}"]
        if paper.get("venue"):
            details.append(f"Venue: {paper['venue']}")
        self._emit("   " + " | ".join(details))

        if verbose:
            for label, field in (("DOI", "doi"), ("PDF", "pdf_url")):
                if paper.get(field):
                    self._emit(f"   {label}: {paper[field]}")
            if paper.get("abstract"):
                self._emit(f"   Abstract: {_truncate(paper['abstract'], ABSTRACT_WIDTH)}")

        print()


_output_managers: Dict[str, OutputManager] = {}


def get_output(name: str = "scholarcache") -> OutputManager:
    """Return the OutputManager bound to logger ``name``, creating it on first use."""
    if name not in _output_managers:
        _output_managers[name] = OutputManager(logging.getLogger(name))
    return _output_managers[name]


__all__ = ["OutputManager", "get_output"]
