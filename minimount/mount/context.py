# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from minimount.mount.client import MountClient, MountClientImpl
from minimount.mount.filesystems import (
    ETC_FILESYSTEMS,
    PROC_FILESYSTEMS,
    read_filesystem_lists,
)

FSTAB_PATH = Path("/etc/fstab")
MTAB_PATH = Path("/etc/mtab")


@dataclass
class MountContext:
    """Everything a mount invocation shares between requests.

    Constructed once by the entry point and passed to every mount operation.
    """

    client: MountClient = field(default_factory=MountClientImpl)
    use_mtab: bool = True
    fake: bool = False
    fstab_path: Path = FSTAB_PATH
    mtab_path: Path = MTAB_PATH
    filesystem_lists: Sequence[Path] = (ETC_FILESYSTEMS, PROC_FILESYSTEMS)
    _candidates: Optional[List[str]] = field(default=None, init=False, repr=False)

    def candidate_filesystems(self) -> List[str]:
        """Filesystem types to try when autodetecting, read on first use.

        Reading is deferred so that during "mount all" entries mounted after /proc
        can still autodetect.
        """
        if self._candidates is None:
            self._candidates = read_filesystem_lists(self.filesystem_lists)
        return self._candidates

    def close(self) -> None:
        self._candidates = None
