# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.


class MountError(Exception):
    """Base class for errors which abort the whole invocation."""


class PermissionDeniedError(MountError):
    """The kernel refused the mount with EPERM. Continuing other entries under the
    same privileges is futile, so this is never handled per entry."""

    def __init__(self, source: str) -> None:
        super().__init__(f"mounting {source}: permission denied. (are you root?)")
        self.source = source


class TableReadError(MountError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"cannot read {path}: {reason}")
        self.path = path


class EntryNotFoundError(MountError):
    def __init__(self, spec: str, path: str) -> None:
        super().__init__(f"can't find {spec} in {path}")
        self.spec = spec
        self.path = path
