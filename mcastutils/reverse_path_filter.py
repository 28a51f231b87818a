"""Switch off the kernel's IPv4 reverse path filter and switch it back on."""

from __future__ import annotations

import logging
from pathlib import Path

__all__ = ["ReversePathFilter", "DEFAULT_BASE_PATH", "ALL_INTERFACES"]

_log = logging.getLogger(__name__)

DEFAULT_BASE_PATH = "/proc/sys/net/ipv4/conf/"
ALL_INTERFACES = "all"


class ReversePathFilter:
    """Disable ``rp_filter`` on interfaces and remember which ones to restore.

    The first interface disabled also disables the filter of the "all"
    pseudo interface. Leaving the ``with`` block turns every filter that
    this object disabled back on.
    """

    def __init__(self, base_path: str | Path = DEFAULT_BASE_PATH):
        self._base = Path(base_path)
        self._used_earlier = False
        self._disabled: set[str] = set()

    def _path(self, if_name: str) -> Path:
        return self._base / if_name / "rp_filter"

    def _is_enabled(self, if_name: str) -> bool:
        path = self._path(if_name)
        try:
            text = path.read_text().strip()
        except OSError as exc:
            _log.error("failed to open file %s: %s", path, exc)
            return False
        try:
            return int(text) != 0
        except ValueError:
            _log.error("unexpected content in %s: %r", path, text)
            return False

    def _write(self, if_name: str, enabled: bool) -> bool:
        path = self._path(if_name)
        try:
            path.write_text("1" if enabled else "0")
        except OSError as exc:
            _log.error(
                "failed to open file %s and set rp_filter to %s: %s",
                path, enabled, exc,
            )
            return False
        return True

    def reset(self, if_name: str) -> bool:
        """Disable the filter of ``if_name``; True if this call disabled it."""
        if not self._is_enabled(if_name) or not self._write(if_name, False):
            return False
        self._disabled.add(if_name)
        if not self._used_earlier:
            self._used_earlier = True
            self.reset(ALL_INTERFACES)
        return True

    def restore(self, if_name: str) -> bool:
        """Turn the filter of ``if_name`` back on if this object disabled it."""
        if if_name not in self._disabled:
            return False
        self._disabled.discard(if_name)
        return self._write(if_name, True)

    def restore_all(self) -> None:
        """Turn every filter that this object disabled back on."""
        for if_name in sorted(self._disabled):
            self._write(if_name, True)
        self._disabled.clear()

    @property
    def disabled_interfaces(self) -> tuple[str, ...]:
        """Names of the interfaces whose filter is disabled, sorted."""
        return tuple(sorted(self._disabled))

    def __enter__(self) -> ReversePathFilter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore_all()

    def __str__(self) -> str:
        lines = ["disabled reverse path filter on following interfaces:"]
        lines.extend(f"\t-{name}" for name in self.disabled_interfaces)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"ReversePathFilter({str(self._base)!r})"