#!/usr/bin/env python3
"""
Line ending engine for FixEol.

Splits text into lines that keep their terminators, classifies and counts
terminators, aligns working-copy lines with the committed lines and rebuilds
the working copy with the committed terminators.
"""

import enum
import logging
import os
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Iterator, List, Optional, TextIO, Tuple

logger = logging.getLogger("FixEol")

CR = "\r"
LF = "\n"

# Half width of the window searched around the expected baseline index
SEARCH_DELTA = 10

READ_CHUNK_SIZE = 8192


class Ending(enum.Enum):
    """Kind of terminator found at the end of a line."""

    OTHER = ""
    CRLF = "\r\n"
    CR = "\r"
    LF = "\n"

    @property
    def terminator(self) -> str:
        return self.value

    @classmethod
    def from_name(cls, name: str) -> "Ending":
        """Look up an ending by its case-insensitive name (lf, crlf, cr)."""
        try:
            return cls[name.upper()]
        except KeyError:
            raise ValueError(f"Unknown line ending: {name}") from None


def iter_lines(chunks: Iterable[str]) -> Iterator[str]:
    """
    Yield the lines of a stream of text chunks, each line keeping its terminator.

    A CR is only known to be a line terminator on its own once the next
    character arrives, so the previous character is carried across chunks.
    Joining the yielded lines gives back the input exactly.
    """
    current: List[str] = []
    previous = ""
    for chunk in chunks:
        for char in chunk:
            if char == LF:
                current.append(char)
                yield "".join(current)
                current = []
            elif previous == CR:
                yield "".join(current)
                current = [char]
            else:
                current.append(char)
            previous = char

    if current:
        yield "".join(current)


def split_lines(text: str) -> List[str]:
    return list(iter_lines([text]))


def read_lines(reader: TextIO) -> List[str]:
    """Read all lines from a text stream opened with newline=''."""
    return list(iter_lines(iter(lambda: reader.read(READ_CHUNK_SIZE), "")))


def get_line_type(line: str) -> Ending:
    """Classify the terminator at the end of a line."""
    if not line:
        return Ending.OTHER
    if line.endswith("\r\n"):
        return Ending.CRLF
    if line[-1] == CR:
        return Ending.CR
    if line[-1] == LF:
        return Ending.LF
    return Ending.OTHER


@dataclass(frozen=True)
class FileStats:
    """Terminator counts of a file, or the signed difference between two files."""

    lf: int = 0
    crlf: int = 0
    cr: int = 0
    other: int = 0

    @classmethod
    def unix(cls, lines: int) -> "FileStats":
        return cls(lf=lines)

    @classmethod
    def windows(cls, lines: int) -> "FileStats":
        return cls(crlf=lines)

    @classmethod
    def mac(cls, lines: int) -> "FileStats":
        return cls(cr=lines)

    @classmethod
    def all_lines(cls, kind: Ending, lines: int) -> "FileStats":
        """Stats of a file where every one of `lines` lines ends with `kind`."""
        if kind is Ending.LF:
            return cls.unix(lines)
        if kind is Ending.CRLF:
            return cls.windows(lines)
        if kind is Ending.CR:
            return cls.mac(lines)
        return cls(other=lines)

    @property
    def total(self) -> int:
        return self.lf + self.crlf + self.cr + self.other

    @property
    def absolute_total(self) -> int:
        return abs(self.lf) + abs(self.crlf) + abs(self.cr) + abs(self.other)

    @property
    def is_mixed(self) -> bool:
        """True when more than one kind of terminator is present."""
        return sum(1 for count in (self.lf, self.crlf, self.cr, self.other) if count > 0) > 1

    def diff(self, other: "FileStats") -> "FileStats":
        """Return the change going from these stats to `other`."""
        return FileStats(
            lf=other.lf - self.lf,
            crlf=other.crlf - self.crlf,
            cr=other.cr - self.cr,
            other=other.other - self.other,
        )

    def __str__(self) -> str:
        parts = [
            (label, count)
            for label, count in (
                ("LF", self.lf),
                ("CRLF", self.crlf),
                ("CR", self.cr),
                ("XX", self.other),
            )
            if count != 0
        ]
        return ";".join(f"{label}:{count}" for label, count in parts)


def get_stats(lines: List[str]) -> FileStats:
    """
    Count the terminators of a sequence of lines.

    An unterminated last line means "no newline at end of file" and is not
    counted. Unterminated lines anywhere else are counted as `other`.
    """
    lf = crlf = cr = other = 0
    for index, line in enumerate(lines):
        kind = get_line_type(line)
        if kind is Ending.CRLF:
            crlf += 1
        elif kind is Ending.CR:
            cr += 1
        elif kind is Ending.LF:
            lf += 1
        elif index + 1 < len(lines):
            other += 1
    return FileStats(lf=lf, crlf=crlf, cr=cr, other=other)


def get_stream_stats(stream: BinaryIO, encoding: Optional[str] = None) -> FileStats:
    """
    Read a binary stream to the end and count its terminators.

    Without an encoding the content is decoded like local files are
    (UTF-8, then latin-1). Undecodable bytes never make this fail.
    """
    data = stream.read()
    if encoding is None:
        text, _ = decode_content(data)
    else:
        text = data.decode(encoding, errors="replace")
    return get_stats(split_lines(text))


def search_line(
    line: str,
    expected_index: int,
    original_lines: List[str],
    delta: int = SEARCH_DELTA,
) -> Optional[int]:
    """
    Find the index of the baseline line with the same content as `line`.

    Content is compared with surrounding whitespace and terminators stripped.
    The expected index is tried first, then every index within `delta` of it
    in increasing order. Returns None when nothing in the window matches.
    """
    wanted = line.strip()
    count = len(original_lines)

    if 0 <= expected_index < count and original_lines[expected_index].strip() == wanted:
        return expected_index

    start = max(expected_index - delta, 0)
    end = min(expected_index + delta, count - 1)
    for index in range(start, end + 1):
        if original_lines[index].strip() == wanted:
            return index
    return None


def align_lines(
    local_lines: List[str], original_lines: List[str]
) -> Iterator[Optional[int]]:
    """Yield the matching baseline index (or None) for every local line."""
    derived_index = -1
    for line in local_lines:
        found = search_line(line, derived_index + 1, original_lines)
        if found is None:
            derived_index += 1
            logger.debug("No baseline match near index %d: %r", derived_index, line)
        else:
            derived_index = found
        yield found


def convert_line(line: str, line_type: Ending, new_type: Ending) -> str:
    """Replace the terminator of `line` (of kind `line_type`) with `new_type`."""
    if line_type is new_type:
        return line
    payload = line[: len(line) - len(line_type.terminator)]
    return payload + new_type.terminator


def rewrite_lines(
    local_lines: List[str],
    original_lines: List[str],
    fallback: Ending = Ending.LF,
) -> str:
    """
    Rebuild the local content using the terminators of the baseline.

    Each local line takes the terminator of its aligned baseline line, or
    `fallback` when it has no counterpart. Line payloads are never changed,
    and the result reads back as the same number of lines.
    """
    parts: List[str] = []
    last = len(local_lines) - 1
    for index, (line, found) in enumerate(
        zip(local_lines, align_lines(local_lines, original_lines))
    ):
        line_type = get_line_type(line)
        new_type = fallback if found is None else get_line_type(original_lines[found])
        if new_type is Ending.OTHER and index != last:
            # only the last line may go without a terminator
            new_type = line_type
        piece = convert_line(line, line_type, new_type)
        if piece == LF and parts and parts[-1].endswith(CR):
            # a bare CR followed by an empty LF line would read back as one CRLF
            piece = Ending.CRLF.terminator
        parts.append(piece)
    return "".join(parts)


def decode_content(data: bytes, path: str = "") -> Tuple[str, str]:
    """Decode file content as UTF-8, falling back to latin-1. Returns (text, encoding)."""
    try:
        return data.decode("utf-8"), "utf-8"
    except UnicodeDecodeError:
        logger.warning("UTF-8 decoding failed for %s, falling back to latin-1", path)
        return data.decode("latin-1"), "latin-1"


BINARY_EXTENSIONS = frozenset(
    {
        ".bin", ".exe", ".dll", ".so", ".dylib", ".obj", ".o", ".a", ".lib",
        ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".tif", ".tiff",
        ".zip", ".tar", ".gz", ".bz2", ".xz", ".7z", ".rar", ".pdf",
        ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
        ".class", ".pyc", ".pyo", ".pyd", ".mp3", ".mp4", ".avi", ".mov",
    }
)

BINARY_SIGNATURES = (b"\x89PNG", b"GIF8", b"\xff\xd8\xff", b"%PDF", b"PK\x03\x04")

_TEXT_BYTES = bytes(bytearray({7, 8, 9, 10, 12, 13, 27} | set(range(0x20, 0x100)) - {0x7F}))


def is_binary_content(path: str, data: bytes) -> bool:
    """Guess whether file content is binary from its extension and first bytes."""
    if not data:
        return False

    if os.path.splitext(path)[1].lower() in BINARY_EXTENSIONS:
        return True

    chunk = data[:READ_CHUNK_SIZE]
    if b"\x00" in chunk:
        return True
    if chunk.startswith(BINARY_SIGNATURES):
        return True

    non_text = chunk.translate(None, _TEXT_BYTES)
    return float(len(non_text)) / len(chunk) > 0.2
