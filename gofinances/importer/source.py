"""File source: how the pipeline opens, inspects and removes input files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO


class LocalFileSource:
    """Read and delete files on the local filesystem."""

    def open_read_stream(self, path: Path | str) -> BinaryIO:
        return open(path, "rb")

    def snapshot(self, path: Path | str) -> tuple[int, int]:
        """Size and mtime in nanoseconds; both move while a writer is active."""
        st = os.stat(path)
        return st.st_size, st.st_mtime_ns

    def delete(self, path: Path | str) -> None:
        Path(path).unlink()
