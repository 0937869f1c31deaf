# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
from pathlib import Path

import pytest

from minimount.mount.context import MountContext
from minimount.tests.fakes import FakeMountClient


@pytest.fixture
def client() -> FakeMountClient:
    return FakeMountClient()


@pytest.fixture
def ctx(tmp_path: Path, client: FakeMountClient) -> MountContext:
    """A context whose tables live under `tmp_path` and which never touches the
    kernel."""
    filesystems = tmp_path / "filesystems"
    filesystems.write_text("ext4\nvfat\n")
    return MountContext(
        client=client,
        fstab_path=tmp_path / "fstab",
        mtab_path=tmp_path / "mtab",
        filesystem_lists=(filesystems, tmp_path / "missing"),
    )
