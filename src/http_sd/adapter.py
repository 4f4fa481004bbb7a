"""
file_sd writer.

Consumes the target group lists produced by one discovery loop and keeps
a file_sd compatible JSON file up to date. Every delivery replaces the
file contents entirely.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from ._types import TargetGroup
from .shutdown import ShutdownSignal

logger = logging.getLogger(__name__)


def generate_file_sd(name: str, groups: list[TargetGroup]) -> list[dict[str, Any]]:
    """
    Render target groups as file_sd entries.

    Entries are keyed ``<name>:<source>`` and ordered by that key so the
    output only changes when the targets do. Groups without targets are
    left out.
    """
    by_key = {
        f"{name}:{group.source}": group.to_file_sd()
        for group in groups
        if group.addresses
    }
    return [by_key[key] for key in sorted(by_key)]


class FileSDWriter:
    """
    Writes one discovery source's targets to a file_sd file.

    Args:
        output_file: Path of the JSON file to maintain
        name: Prefix of the per-group keys
        logger: Logger to report through (default: module logger)
    """

    def __init__(
        self,
        output_file: str | Path,
        name: str = "httpSD",
        logger: Optional[logging.Logger] = None,
    ):
        self.output_file = Path(output_file)
        self.name = name
        self.logger = logger or logging.getLogger(__name__)
        self._last_content: Optional[str] = None

        self.stats = {
            "updates_received": 0,
            "files_written": 0,
            "write_errors": 0,
        }

    def render(self, groups: list[TargetGroup]) -> str:
        return json.dumps(generate_file_sd(self.name, groups), indent=4)

    def _write_atomic(self, content: str) -> None:
        """Write to a temp file next to the target, then rename over it."""
        self.output_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.output_file.with_name(self.output_file.name + ".tmp")
        tmp_path.write_text(content)
        os.replace(tmp_path, self.output_file)

    def update(self, groups: list[TargetGroup]) -> bool:
        """
        Replace the file contents with *groups*.

        Returns:
            True if the file was written, False if unchanged or on error
        """
        self.stats["updates_received"] += 1
        content = self.render(groups)

        if content == self._last_content:
            self.logger.debug(f"Targets unchanged, not rewriting {self.output_file}")
            return False

        try:
            self._write_atomic(content)
        except OSError as e:
            self.stats["write_errors"] += 1
            self.logger.error(f"Error writing file_sd output {self.output_file}: {e}")
            return False

        self._last_content = content
        self.stats["files_written"] += 1
        self.logger.info(f"Wrote {len(groups)} target group(s) to {self.output_file}")
        return True

    async def run(self, shutdown: ShutdownSignal, queue: asyncio.Queue) -> None:
        """Consume *queue* until *shutdown* is set or the task is cancelled."""
        while not shutdown.is_set():
            groups = await queue.get()
            try:
                self.update(groups)
            finally:
                queue.task_done()
