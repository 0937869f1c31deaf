# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
import logging
from pathlib import Path
from typing import Generator, Iterable, Optional

from minimount.mount.context import MountContext
from minimount.mount.errors import EntryNotFoundError, MountError
from minimount.mount.mtab import read_mount_table
from minimount.mount.options import (
    append_mount_options,
    MountFlag,
    parse_mount_options,
    PSEUDO_FLAGS,
)
from minimount.mount.single import simplify_path, single_mount
from minimount.schemas.mount_request import MountRequest
from minimount.schemas.mount_table import MountTableRecord

logger = logging.getLogger(__name__)

_SKIP_FLAGS = MountFlag.NOAUTO | MountFlag.SWAP


def mount_direct(
    ctx: MountContext,
    source: str,
    target: str,
    fstype: Optional[str],
    options: str,
) -> int:
    """Mount `source` on `target` without consulting any table."""
    request = MountRequest(
        source=source, target=target, fstype=fstype, options=options
    )
    return single_mount(ctx, request)


def table_path_for(ctx: MountContext, options: str) -> Path:
    """Remounts are looked up in the mount table, everything else in fstab."""
    if parse_mount_options(options) & MountFlag.REMOUNT:
        return ctx.mtab_path
    return ctx.fstab_path


def matches(record: MountTableRecord, spec: str) -> bool:
    """Whether `record` mounts `spec`, given either as the exact table text (e.g.
    "proc") or as a path."""
    candidates = (spec, simplify_path(spec))
    return record.source in candidates or record.target in candidates


def find_last_match(
    records: Iterable[MountTableRecord], spec: str
) -> Optional[MountTableRecord]:
    """The last record matching `spec`.

    A table may list a mountpoint more than once when something was mounted over
    it; the last occurrence is the one in effect.
    """
    best: Optional[MountTableRecord] = None
    for record in records:
        if matches(record, spec):
            best = record
    return best


def should_mount_all(record: MountTableRecord, fstype: Optional[str]) -> bool:
    if fstype is not None and record.fstype != fstype:
        return False
    return not parse_mount_options(record.options) & _SKIP_FLAGS


def mount_all(
    ctx: MountContext,
    records: Iterable[MountTableRecord],
    fstype: Optional[str],
) -> int:
    """Mount every eligible record. Returns the number of failed mounts.

    Already mounted filesystems are not failures.
    """
    failures = 0
    for record in records:
        if not should_mount_all(record, fstype):
            logger.debug(f"skipping {record.source} on {record.target}")
            continue
        request = MountRequest(
            source=record.source,
            target=record.target,
            fstype=record.fstype,
            options=record.options,
        )
        if single_mount(ctx, request, ignore_busy=True):
            failures += 1
    return failures


def mount_from_table(
    ctx: MountContext,
    spec: Optional[str],
    options: str,
    fstype: Optional[str],
) -> int:
    """Mount the table entry for `spec`, or every eligible entry if `spec` is None.

    Raises:
        TableReadError if the table cannot be read.
        EntryNotFoundError if `spec` is not in the table.
        PermissionDeniedError if a mount is refused with EPERM.
    """
    path = table_path_for(ctx, options)
    records = read_mount_table(path)

    if spec is None:
        return mount_all(ctx, records, fstype)

    record = find_last_match(records, spec)
    if record is None:
        raise EntryNotFoundError(spec, str(path))
    logger.debug(f"{spec} found in {path}: {record}")
    request = MountRequest(
        source=record.source,
        target=record.target,
        fstype=record.fstype,
        options=append_mount_options(record.options, options),
    )
    return single_mount(ctx, request)


def change_propagation(ctx: MountContext, target: str, flags: int) -> None:
    """Change the propagation type (shared, slave, ...) of an existing mount."""
    if ctx.fake:
        return
    try:
        ctx.client.mount("", target, "", flags & ~int(PSEUDO_FLAGS), "")
    except OSError as e:
        raise MountError(f"{target}: {e.strerror}") from e


def list_mounted(
    ctx: MountContext, fstype: Optional[str]
) -> Generator[str, None, None]:
    """Describe the filesystems in the legacy mount table, one line each."""
    for record in read_mount_table(ctx.mtab_path):
        if record.source == "rootfs":
            continue
        if fstype is None or record.fstype == fstype:
            yield (
                f"{record.source} on {record.target} "
                f"type {record.fstype} ({record.options})"
            )
