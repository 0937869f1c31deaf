# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
"""Mount option table and the resolver that turns option text into kernel flags."""

from dataclasses import dataclass
from enum import IntFlag
from typing import Dict, Iterable, List, Optional, Tuple, Union

from typeguard import typechecked


class MountFlag(IntFlag):
    """Values taken from the kernel interface in <sys/mount.h>."""

    NONE = 0
    RDONLY = 1
    NOSUID = 2
    NODEV = 4
    NOEXEC = 8
    SYNCHRONOUS = 16
    REMOUNT = 32
    MANDLOCK = 64
    DIRSYNC = 128
    NOATIME = 1024
    NODIRATIME = 2048
    BIND = 4096
    MOVE = 8192
    REC = 16384
    SILENT = 32768
    UNBINDABLE = 1 << 17
    PRIVATE = 1 << 18
    SLAVE = 1 << 19
    SHARED = 1 << 20
    # Not real kernel flags; only used to filter fstab entries.
    NOAUTO = 1 << 29
    SWAP = 1 << 30


PSEUDO_FLAGS = MountFlag.NOAUTO | MountFlag.SWAP
ACTION_FLAGS = MountFlag.REMOUNT | MountFlag.BIND | MountFlag.MOVE
PROPAGATION_FLAGS = (
    MountFlag.SHARED | MountFlag.SLAVE | MountFlag.PRIVATE | MountFlag.UNBINDABLE
)
DEFAULT_FLAGS = MountFlag.SILENT


@dataclass(frozen=True)
class SetBits:
    mask: int


@dataclass(frozen=True)
class ClearBits:
    mask: int


@dataclass(frozen=True)
class NoOp:
    pass


Effect = Union[SetBits, ClearBits, NoOp]


@dataclass(frozen=True)
class OptionEffect:
    name: str
    effect: Effect


@dataclass(frozen=True)
class ResolvedOptions:
    flags: int
    unrecognized: str


MOUNT_OPTIONS: Tuple[OptionEffect, ...] = (
    OptionEffect("loop", NoOp()),
    # fstab
    OptionEffect("defaults", NoOp()),
    OptionEffect("quiet", NoOp()),
    OptionEffect("noauto", SetBits(MountFlag.NOAUTO)),
    OptionEffect("swap", SetBits(MountFlag.SWAP)),
    # vfs flags
    OptionEffect("nosuid", SetBits(MountFlag.NOSUID)),
    OptionEffect("suid", ClearBits(MountFlag.NOSUID)),
    OptionEffect("dev", ClearBits(MountFlag.NODEV)),
    OptionEffect("nodev", SetBits(MountFlag.NODEV)),
    OptionEffect("exec", ClearBits(MountFlag.NOEXEC)),
    OptionEffect("noexec", SetBits(MountFlag.NOEXEC)),
    OptionEffect("sync", SetBits(MountFlag.SYNCHRONOUS)),
    OptionEffect("async", ClearBits(MountFlag.SYNCHRONOUS)),
    OptionEffect("atime", ClearBits(MountFlag.NOATIME)),
    OptionEffect("noatime", SetBits(MountFlag.NOATIME)),
    OptionEffect("diratime", ClearBits(MountFlag.NODIRATIME)),
    OptionEffect("nodiratime", SetBits(MountFlag.NODIRATIME)),
    OptionEffect("loud", ClearBits(MountFlag.SILENT)),
    # action flags
    OptionEffect("bind", SetBits(MountFlag.BIND)),
    OptionEffect("move", SetBits(MountFlag.MOVE)),
    OptionEffect("shared", SetBits(MountFlag.SHARED)),
    OptionEffect("slave", SetBits(MountFlag.SLAVE)),
    OptionEffect("private", SetBits(MountFlag.PRIVATE)),
    OptionEffect("unbindable", SetBits(MountFlag.UNBINDABLE)),
    OptionEffect("rshared", SetBits(MountFlag.SHARED | MountFlag.REC)),
    OptionEffect("rslave", SetBits(MountFlag.SLAVE | MountFlag.REC)),
    OptionEffect("rprivate", SetBits(MountFlag.PRIVATE | MountFlag.REC)),
    OptionEffect("runbindable", SetBits(MountFlag.UNBINDABLE | MountFlag.REC)),
    # always understood
    OptionEffect("ro", SetBits(MountFlag.RDONLY)),
    OptionEffect("rw", ClearBits(MountFlag.RDONLY)),
    OptionEffect("remount", SetBits(MountFlag.REMOUNT)),
)


def build_option_index(table: Iterable[OptionEffect]) -> Dict[str, Effect]:
    """Index option effects by lowercased name.

    Raises:
        ValueError: if two options share a name (ignoring case).
    """
    index: Dict[str, Effect] = {}
    for option in table:
        key = option.name.lower()
        if key in index:
            raise ValueError(f"Duplicate mount option definition: {option.name!r}")
        index[key] = option.effect
    return index


_OPTION_INDEX = build_option_index(MOUNT_OPTIONS)


def apply_effect(flags: int, effect: Effect) -> int:
    if isinstance(effect, SetBits):
        return flags | int(effect.mask)
    if isinstance(effect, ClearBits):
        return flags & ~int(effect.mask)
    return flags


@typechecked
def parse_mount_options(options: str, unrecognized: Optional[List[str]] = None) -> int:
    """Return the kernel flags for a comma separated option string.

    Options are applied left to right, so a later option wins over an earlier one
    touching the same bit. Tokens not found in the option table are appended to
    `unrecognized` when given; otherwise they do not affect the result.
    """
    flags = int(DEFAULT_FLAGS)
    for token in options.split(","):
        if not token:
            continue
        effect = _OPTION_INDEX.get(token.lower())
        if effect is not None:
            flags = apply_effect(flags, effect)
        elif unrecognized is not None:
            unrecognized.append(token)
    return flags


def resolve_options(options: str) -> ResolvedOptions:
    unrecognized: List[str] = []
    flags = parse_mount_options(options, unrecognized)
    return ResolvedOptions(flags=flags, unrecognized=",".join(unrecognized))


def append_mount_options(old: Optional[str], new: str) -> str:
    """Join two option strings with a comma.

    >>> append_mount_options("ro,noexec", "user_xattr")
    'ro,noexec,user_xattr'
    >>> append_mount_options("", "ro")
    'ro'
    """
    if old and new:
        return f"{old},{new}"
    return old or new


def canonical_options(flags: int) -> List[str]:
    """Spell out the set-bit options fully contained in `flags`, in table order.

    The remount entry and everything after it is never reported.
    """
    names = []
    for option in MOUNT_OPTIONS:
        if option.name == "remount":
            break
        effect = option.effect
        if isinstance(effect, SetBits) and flags & effect.mask == effect.mask:
            names.append(option.name)
    return names
