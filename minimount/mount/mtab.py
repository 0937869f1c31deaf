# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
"""Reading and writing fstab(5) style mount tables."""

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional

from minimount.mount.errors import TableReadError
from minimount.schemas.mount_table import MountTableRecord

logger = logging.getLogger(__name__)

BIND_FSTYPE = "--bind"

_ESCAPES = (("\\", "\\134"), (" ", "\\040"), ("\t", "\\011"), ("\n", "\\012"))
_OCTAL_ESCAPE = re.compile(r"\\(040|011|012|134)")


def unescape(value: str) -> str:
    """Decode the octal escapes used for whitespace in mount tables.

    >>> unescape("/mnt/my\\\\040disk")
    '/mnt/my disk'
    """
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), value)


def escape(value: str) -> str:
    for raw, escaped in _ESCAPES:
        value = value.replace(raw, escaped)
    return value


def _int_field(fields: List[str], idx: int) -> int:
    try:
        return int(fields[idx])
    except (IndexError, ValueError):
        return 0


def as_mount_table_record(line: str) -> Optional[MountTableRecord]:
    """Parse one table line. Returns None for comments, blank or malformed lines."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    fields = stripped.split()
    if len(fields) < 2:
        logger.debug(f"Ignoring malformed mount table line: {line!r}")
        return None
    return MountTableRecord(
        source=unescape(fields[0]),
        target=unescape(fields[1]),
        fstype=unescape(fields[2]) if len(fields) > 2 else "",
        options=unescape(fields[3]) if len(fields) > 3 else "defaults",
        freq=_int_field(fields, 4),
        passno=_int_field(fields, 5),
    )


def parse_mount_table(lines: Iterable[str]) -> List[MountTableRecord]:
    records = []
    for line in lines:
        record = as_mount_table_record(line)
        if record is not None:
            records.append(record)
    return records


def read_mount_table(path: Path) -> List[MountTableRecord]:
    """Read every record of the table at `path`.

    Raises:
        TableReadError if the file cannot be opened.
    """
    try:
        with open(path, "r") as f:
            return parse_mount_table(f)
    except OSError as e:
        raise TableReadError(str(path), e.strerror or str(e)) from e


def format_record(record: MountTableRecord) -> str:
    return " ".join(
        (
            escape(record.source),
            escape(record.target),
            escape(record.fstype or BIND_FSTYPE),
            escape(record.options),
            str(record.freq),
            str(record.passno),
        )
    )


def append_record(path: Path, record: MountTableRecord) -> None:
    with open(path, "a") as f:
        f.write(format_record(record) + "\n")
