# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
from dataclasses import dataclass


@dataclass(frozen=True)
class MountTableRecord:
    """One line of fstab(5) or the legacy mtab."""

    source: str
    target: str
    fstype: str
    options: str
    freq: int = 0
    passno: int = 0
