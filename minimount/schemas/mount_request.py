# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
from dataclasses import dataclass
from typing import Optional


@dataclass
class MountRequest:
    """A single mount to perform.

    Mutated in place while it is being mounted: the source may be rewritten (CIFS
    address substitution, loop device) and the fstype is filled in by
    autodetection.
    """

    source: str
    target: str
    fstype: Optional[str] = None
    options: str = ""
    mtab_extra: str = ""
