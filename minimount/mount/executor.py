# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
import errno
import logging

from minimount.mount.context import MountContext
from minimount.mount.errors import PermissionDeniedError
from minimount.mount.mtab import append_record
from minimount.mount.options import canonical_options, MountFlag, PSEUDO_FLAGS
from minimount.schemas.mount_request import MountRequest
from minimount.schemas.mount_table import MountTableRecord

logger = logging.getLogger(__name__)

_READ_ONLY_ERRORS = (errno.EACCES, errno.EROFS)


def mtab_options(flags: int, filteropts: str) -> str:
    """The options string recorded in the legacy mount table.

    >>> mtab_options(MountFlag.RDONLY | MountFlag.NOSUID, "uid=1000")
    'nosuid,ro,uid=1000'
    """
    options = canonical_options(flags)
    if filteropts:
        options.append(filteropts)
    return ",".join(options) or "defaults"


def strip_trailing_separator(path: str) -> str:
    if len(path) > 1 and path.endswith("/"):
        return path[:-1]
    return path


def record_mount(ctx: MountContext, request: MountRequest) -> None:
    record = MountTableRecord(
        source=request.source,
        target=strip_trailing_separator(request.target),
        fstype=request.fstype or "",
        options=request.mtab_extra,
    )
    try:
        append_record(ctx.mtab_path, record)
    except OSError:
        logger.error(f"no {ctx.mtab_path}")
        logger.debug("Could not append to the mount table", exc_info=True)


def mount_it_now(
    ctx: MountContext, request: MountRequest, flags: int, filteropts: str
) -> int:
    """Mount `request` once, falling back to read-only if the device is
    write-protected.

    Returns 0 on success, otherwise the errno of the last attempt.

    Raises:
        PermissionDeniedError if the kernel reports EPERM.
    """
    if ctx.fake:
        return 0

    rc = 0
    while True:
        logger.debug(
            f"mount({request.source!r}, {request.target!r}, {request.fstype!r}, {flags:#x}, {filteropts!r})"
        )
        try:
            ctx.client.mount(
                request.source,
                request.target,
                request.fstype or "",
                flags & ~int(PSEUDO_FLAGS),
                filteropts,
            )
        except OSError as e:
            rc = e.errno or errno.EIO
        else:
            rc = 0
        if rc == 0 or flags & MountFlag.RDONLY or rc not in _READ_ONLY_ERRORS:
            break
        logger.warning(f"{request.source} is write-protected, mounting read-only")
        flags |= MountFlag.RDONLY

    if rc == errno.EPERM:
        raise PermissionDeniedError(request.source)

    if rc == 0 and ctx.use_mtab:
        request.mtab_extra = mtab_options(flags, filteropts)
        record_mount(ctx, request)

    return rc
