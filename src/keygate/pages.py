"""Static HTML pages served by the gateway."""

import html
from datetime import datetime
from pathlib import Path
from string import Template

from keygate.config import Settings

ACCESS_DENIED_PAGE = "accessdenied.html"
NOT_FOUND_PAGE = "404.html"
KEY_PAGE_TEMPLATE = "keysite.html"


class PageStore:
    """Read-only access to the page files in ``static_dir``.

    Files are read on first use and kept in memory afterwards.
    """

    def __init__(self, static_dir: Path) -> None:
        self._static_dir = Path(static_dir)
        self._cache: dict[str, str] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "PageStore":
        return cls(settings.static_dir)

    def _read(self, name: str) -> str:
        if name not in self._cache:
            self._cache[name] = (self._static_dir / name).read_text(encoding="utf-8")
        return self._cache[name]

    def access_denied(self) -> str:
        return self._read(ACCESS_DENIED_PAGE)

    def not_found(self) -> str:
        return self._read(NOT_FOUND_PAGE)

    def key_page(self, key: str, issued_at: datetime) -> str:
        """Render the key page with ``${key}`` and ``${timestamp}`` filled in."""
        template = Template(self._read(KEY_PAGE_TEMPLATE))
        return template.safe_substitute(key=html.escape(key), timestamp=format_timestamp(issued_at))


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. ``2026-01-01T00:00:00.000Z``."""
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
