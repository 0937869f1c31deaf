# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
import logging
from pathlib import Path
from typing import Iterable, List

logger = logging.getLogger(__name__)

ETC_FILESYSTEMS = Path("/etc/filesystems")
PROC_FILESYSTEMS = Path("/proc/filesystems")


def parse_filesystem_list(lines: Iterable[str]) -> List[str]:
    """Return the block device backed filesystems listed in `lines`.

    Lines flagged `nodev` are dropped entirely, as are blank lines and comments
    (`#` or `*` as the first non-blank character).

    >>> parse_filesystem_list(["nodev\\tproc", "\\text4", "# comment", ""])
    ['ext4']
    """
    filesystems = []
    for line in lines:
        line = line.rstrip("\n")
        if line.startswith("nodev") and line[5:6].isspace():
            continue
        fs = line.lstrip()
        if not fs or fs[0] in "#*":
            continue
        filesystems.append(fs)
    return filesystems


def read_filesystem_lists(paths: Iterable[Path]) -> List[str]:
    """Concatenate the filesystem lists found at `paths`, skipping missing files.

    Duplicates across files are kept; autodetection just tries them twice.
    """
    filesystems: List[str] = []
    for path in paths:
        try:
            with open(path, "r") as f:
                found = parse_filesystem_list(f)
        except FileNotFoundError:
            logger.debug(f"{path} does not exist, skipping")
            continue
        logger.debug(f"{len(found)} filesystem(s) listed in {path}")
        filesystems.extend(found)
    return filesystems
