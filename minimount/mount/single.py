# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
"""Mount one request: CIFS, NFS, loopback, bind autodetection and filesystem type
detection."""

import errno
import logging
import os
import stat
from typing import List, Optional

from minimount.mount.context import MountContext
from minimount.mount.executor import mount_it_now
from minimount.mount.options import ACTION_FLAGS, MountFlag, parse_mount_options
from minimount.schemas.mount_request import MountRequest

logger = logging.getLogger(__name__)

CIFS_FSTYPE = "cifs"
NFS_FSTYPE = "nfs"


def simplify_path(path: str) -> str:
    """Absolute, normalized form of `path` without resolving symlinks."""
    return os.path.normpath(os.path.abspath(path))


def is_cifs(request: MountRequest) -> bool:
    source = request.source
    return (
        request.fstype in (None, CIFS_FSTYPE)
        and len(source) >= 2
        and source[0] == source[1]
        and source[0] in "/\\"
    )


def is_nfs(request: MountRequest) -> bool:
    return request.fstype in (None, NFS_FSTYPE) and ":" in request.source


def mount_cifs(
    ctx: MountContext, request: MountRequest, flags: int, unrecognized: List[str]
) -> int:
    """Mount a `//server/share` style source, addressing the server by IP."""
    unc = request.source.replace("/", "\\")
    sep = unc.find("\\", 2)
    if sep < 0:
        logger.error(f"{request.source} is not of the form //server/share")
        return -1
    host = unc[2:sep]
    addr = ctx.client.gethostbyname(host)
    if addr is None:
        logger.error(f"cannot resolve host {host}")
        return -1

    parse_mount_options(f"ip={addr}", unrecognized)
    request.source = f"\\\\{addr}{unc[sep:]}"
    request.fstype = CIFS_FSTYPE
    return mount_it_now(
        ctx, request, flags | MountFlag.MANDLOCK, ",".join(unrecognized)
    )


def _lstat_mode(path: str) -> Optional[int]:
    try:
        return os.lstat(path).st_mode
    except OSError:
        return None


def autodetect_fstype(
    ctx: MountContext, request: MountRequest, flags: int, filteropts: str
) -> int:
    """Try each candidate filesystem type in turn until one mounts."""
    rc = -1
    for fstype in ctx.candidate_filesystems():
        request.fstype = fstype
        rc = mount_it_now(ctx, request, flags, filteropts)
        if rc == 0:
            logger.debug(f"{request.source} mounted as {fstype}")
            break
        request.fstype = None
    return rc


def mount_local(
    ctx: MountContext, request: MountRequest, flags: int, filteropts: str
) -> int:
    loop_device = None
    if not flags & ACTION_FLAGS:
        # A missing source is fine: remounts and synthetic filesystems like proc
        # have no backing path.
        mode = _lstat_mode(request.source)
        if mode is not None and stat.S_ISREG(mode):
            loop_file = simplify_path(request.source)
            try:
                loop_device = ctx.client.set_loop(loop_file)
            except OSError as e:
                if e.errno in (errno.EPERM, errno.EACCES):
                    logger.error("permission denied. (are you root?)")
                else:
                    logger.error("cannot setup loop device")
                return e.errno or -1
            logger.debug(f"{loop_file} attached to {loop_device}")
            request.source = loop_device
        elif mode is not None and stat.S_ISDIR(mode) and request.fstype is None:
            flags |= MountFlag.BIND

    rc = -1
    try:
        if request.fstype is not None or flags & ACTION_FLAGS:
            rc = mount_it_now(ctx, request, flags, filteropts)
        else:
            rc = autodetect_fstype(ctx, request, flags, filteropts)
    finally:
        # also runs when PermissionDeniedError aborts the invocation
        if rc != 0 and loop_device is not None:
            ctx.client.del_loop(loop_device)
    return rc


def single_mount(
    ctx: MountContext, request: MountRequest, ignore_busy: bool = False
) -> int:
    """Mount one request. Returns 0 on success, nonzero on failure.

    With `ignore_busy`, an already mounted (EBUSY) filesystem counts as success.

    Raises:
        PermissionDeniedError if the kernel refuses with EPERM.
    """
    unrecognized: List[str] = []
    flags = parse_mount_options(request.options, unrecognized)
    filteropts = ",".join(unrecognized)

    if request.fstype in ("", "auto"):
        request.fstype = None

    if is_cifs(request):
        rc = mount_cifs(ctx, request, flags, unrecognized)
    elif is_nfs(request):
        rc = 0 if ctx.fake else ctx.client.nfsmount(request, flags, filteropts)
    else:
        rc = mount_local(ctx, request, flags, filteropts)

    if rc == errno.EBUSY and ignore_busy:
        rc = 0
    if rc != 0:
        logger.error(f"mounting {request.source} on {request.target} failed")
    return rc
