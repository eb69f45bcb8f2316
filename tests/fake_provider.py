#!/usr/bin/env python3
"""
In-memory stand-ins for git and the working tree, used by the FixEol tests.
"""

import io
import sys
from pathlib import Path
from typing import Dict, List, Optional

# Add parent directory to path to import FixEol modules
sys.path.insert(0, str(Path(__file__).parent.parent))
from eol_engine import Ending  # pylint: disable=wrong-import-position

BASE_LINE = "az"


class KeepOpenBytesIO(io.BytesIO):
    """BytesIO whose content stays readable after the code under test closes it."""

    def close(self) -> None:
        self.seek(0)


class FakeProvider:
    def __init__(self) -> None:
        self.tips: Dict[str, Optional[bytes]] = {}
        self.local: Dict[str, KeepOpenBytesIO] = {}
        self.copies: Dict[str, bytes] = {}
        self.pending: List[str] = []
        self.writes: List[str] = []

    def add(self, path: str, tip: Optional[bytes], local: bytes) -> "FakeProvider":
        self.tips[path] = tip
        self.local[path] = KeepOpenBytesIO(local)
        return self

    def content(self, path: str) -> bytes:
        return self.local[path].getvalue()

    def initialize_repository(self, directory: str) -> None:
        pass

    def get_pending_files(self):
        yield from self.pending

    def get_tip_stream(self, path: str):
        tip = self.tips.get(path)
        return None if tip is None else io.BytesIO(tip)

    def open_local_file(self, path: str, mode: str = "rb"):
        if path not in self.local:
            raise FileNotFoundError(path)
        stream = self.local[path]
        stream.seek(0)
        return stream

    def write_local_file(self, path: str, data: bytes) -> None:
        self.writes.append(path)
        self.local[path] = KeepOpenBytesIO(data)

    def local_file_copy(self, source: str, destination: str) -> None:
        if destination in self.copies:
            raise FileExistsError(destination)
        self.copies[destination] = self.content(source)

    def __enter__(self) -> "FakeProvider":
        return self

    def __exit__(self, *exc_info: object) -> None:
        pass


class DocumentGenerator:
    """Builds document bytes from blocks of identical lines."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding
        self.parts: List[str] = []

    def add(self, lines: int, ending: Ending) -> "DocumentGenerator":
        for _ in range(lines):
            self.parts.append(BASE_LINE + ending.terminator)
        return self

    def add_empty(self, ending: Ending) -> "DocumentGenerator":
        self.parts.append(ending.terminator)
        return self

    def done(self) -> bytes:
        return "".join(self.parts).encode(self.encoding)
