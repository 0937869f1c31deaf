# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
import ctypes
import errno
import logging
import os
import re
import socket
import subprocess
from ctypes.util import find_library
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional, Protocol

from minimount.mount.options import (
    append_mount_options,
    canonical_options,
    PSEUDO_FLAGS,
)
from minimount.schemas.mount_request import MountRequest
from minimount.utils.shell import run_shell

logger = logging.getLogger(__name__)

SHELL_CMD_TIMEOUT = 30

_BUSY_PATTERN = re.compile(r"busy|already mounted", re.IGNORECASE)


class MountClient(Protocol):
    """The operating system services needed to carry out a mount."""

    def mount(
        self, source: str, target: str, fstype: str, flags: int, data: str
    ) -> None:
        """Call mount(2).

        Raises:
            OSError carrying the errno reported by the kernel.
        """

    def set_loop(self, path: str) -> str:
        """Attach `path` to a free loop device and return the device name.

        Raises:
            OSError; errno is EPERM or EACCES when the caller lacks privileges.
        """

    def del_loop(self, device: str) -> None:
        """Detach the given loop device."""

    def nfsmount(self, request: MountRequest, flags: int, filteropts: str) -> int:
        """Mount an NFS export. Returns 0 on success, an errno-like code otherwise."""

    def gethostbyname(self, host: str) -> Optional[str]:
        """Return the first IPv4 address of `host`, or None if it can't be resolved."""


@lru_cache(maxsize=None)
def _libc_mount() -> Any:
    libc = ctypes.CDLL(find_library("c"), use_errno=True)
    if not getattr(libc, "mount", None):
        raise RuntimeError("Unsupported libc: mount(2) is not available")
    fn = libc.mount
    fn.argtypes = [
        ctypes.c_char_p,  # source
        ctypes.c_char_p,  # target
        ctypes.c_char_p,  # filesystem type
        ctypes.c_ulong,  # mount flags
        ctypes.c_char_p,  # data
    ]
    fn.restype = ctypes.c_int
    return fn


def _encode(value: str) -> bytes:
    return os.fsencode(value)


@dataclass
class MountClientImpl:
    timeout_secs: int = SHELL_CMD_TIMEOUT

    def mount(
        self, source: str, target: str, fstype: str, flags: int, data: str
    ) -> None:
        res = _libc_mount()(
            _encode(source),
            _encode(target),
            _encode(fstype),
            flags,
            _encode(data) if data else None,
        )
        if res < 0:
            err = ctypes.get_errno()
            raise OSError(
                err,
                os.strerror(err),
                f"mount({source!r}, {target!r}, {fstype!r}, {flags:#x})",
            )

    def set_loop(self, path: str) -> str:
        cmd = ["losetup", "--find", "--show", path]
        logger.debug(f"Running command '{' '.join(cmd)}'")
        try:
            out = run_shell(cmd, self.timeout_secs)
        except (RuntimeError, subprocess.TimeoutExpired) as e:
            raise OSError(errno.ENXIO, str(e)) from e
        if out.returncode != 0:
            reason = out.stdout.strip()
            code = errno.EPERM if "ermission denied" in reason else errno.ENXIO
            raise OSError(code, reason or os.strerror(code), path)
        return out.stdout.strip()

    def del_loop(self, device: str) -> None:
        cmd = ["losetup", "--detach", device]
        logger.debug(f"Running command '{' '.join(cmd)}'")
        try:
            out = run_shell(cmd, self.timeout_secs)
        except (RuntimeError, subprocess.TimeoutExpired):
            logger.warning(f"cannot release loop device {device}", exc_info=True)
            return
        if out.returncode != 0:
            logger.warning(
                f"cannot release loop device {device}: {out.stdout.strip()}"
            )

    def nfsmount(self, request: MountRequest, flags: int, filteropts: str) -> int:
        options = ",".join(canonical_options(flags & ~int(PSEUDO_FLAGS)))
        if filteropts:
            options = append_mount_options(options, filteropts)
        # -n: mount.nfs leaves the mount table alone
        cmd = ["mount.nfs", request.source, request.target, "-n"]
        if options:
            cmd += ["-o", options]
        logger.debug(f"Running command '{' '.join(cmd)}'")
        try:
            out = run_shell(cmd, self.timeout_secs)
        except RuntimeError:
            logger.error("mount.nfs is not installed", exc_info=True)
            return errno.ENOENT
        except subprocess.TimeoutExpired:
            logger.error(f"mount.nfs timed out after {self.timeout_secs} seconds")
            return errno.ETIMEDOUT
        if out.returncode == 0:
            return 0
        output = out.stdout.strip()
        # mount(8) exit statuses are not errnos; 16 would read as EBUSY
        if _BUSY_PATTERN.search(output):
            logger.info(output)
            return errno.EBUSY
        logger.error(output)
        return errno.EIO

    def gethostbyname(self, host: str) -> Optional[str]:
        try:
            return socket.gethostbyname(host)
        except (socket.gaierror, socket.herror, UnicodeError):
            return None
