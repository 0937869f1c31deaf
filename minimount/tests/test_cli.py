# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
import errno
import logging
from importlib import resources
from pathlib import Path
from typing import List, Sequence

import pytest
from click.testing import CliRunner, Result

from minimount.cli.mount import build_option_text, main, split_args
from minimount.mount.mtab import read_mount_table
from minimount.mount.options import MountFlag
from minimount.tests import data
from minimount.tests.fakes import FakeMountClient
from typeguard import typechecked

SAMPLE_MTAB = """rootfs / rootfs rw 0 0
/dev/sda1 / ext4 rw 0 0
tmpfs /run tmpfs rw,nosuid 0 0
/dev/sdb1 /data ext4 rw,noatime 0 0
"""


@pytest.fixture
def tables(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "fstab").write_text(
        resources.files(data).joinpath("sample-fstab.txt").read_text()
    )
    (tmp_path / "filesystems").write_text("ext4\nvfat\n")
    return tmp_path


def invoke(
    tables: Path, client: FakeMountClient, args: Sequence[str]
) -> Result:
    runner = CliRunner()
    return runner.invoke(
        main,
        [
            "--config=/dev/null",
            f"--fstab={tables / 'fstab'}",
            f"--mtab={tables / 'mtab'}",
            f"--filesystems={tables / 'filesystems'}",
            *args,
        ],
        obj=client,
    )


@pytest.mark.parametrize(
    "args, expected_long, expected_positional",
    [
        ([], [], []),
        (["/data"], [], ["/data"]),
        (["--bind", "/srv", "/mnt"], ["bind"], ["/srv", "/mnt"]),
        (["--remount,ro", "/data"], ["remount,ro"], ["/data"]),
    ],
)
@typechecked
def test_split_args(
    args: List[str], expected_long: List[str], expected_positional: List[str]
) -> None:
    assert split_args(args) == (expected_long, expected_positional)


def test_build_option_text() -> None:
    assert build_option_text(["bind"], ["noexec", "uid=1", "ro"]) == (
        "bind,noexec,uid=1,ro"
    )
    assert build_option_text(["remount,rw"], [""]) == "remount,rw"
    assert build_option_text([], []) == ""


def test_lists_mounted_filesystems(tables: Path) -> None:
    (tables / "mtab").write_text(SAMPLE_MTAB)

    result = invoke(tables, FakeMountClient(), [])

    assert result.exit_code == 0
    assert "rootfs" not in result.output
    assert "/dev/sda1 on / type ext4 (rw)\n" in result.output
    assert "tmpfs on /run type tmpfs (rw,nosuid)\n" in result.output


def test_lists_mounted_filesystems_of_type(tables: Path) -> None:
    (tables / "mtab").write_text(SAMPLE_MTAB)

    result = invoke(tables, FakeMountClient(), ["-t", "tmpfs"])

    assert result.exit_code == 0
    assert "/dev/sda1" not in result.output
    assert "tmpfs on /run type tmpfs (rw,nosuid)\n" in result.output


def test_mount_source_on_target(tables: Path) -> None:
    client = FakeMountClient()

    result = invoke(
        tables, client, ["-t", "ext4", "-o", "noexec", "-r", "/dev/sdb1", "/data"]
    )

    assert result.exit_code == 0
    call = client.mounts[0]
    assert (call.source, call.target, call.fstype) == ("/dev/sdb1", "/data", "ext4")
    assert call.flags & MountFlag.RDONLY
    assert call.flags & MountFlag.NOEXEC
    assert read_mount_table(tables / "mtab")[0].options == "noexec,ro"


@pytest.mark.parametrize(
    "options, read_only",
    [
        (["-w", "-o", "ro"], True),
        (["-o", "ro", "-w"], False),
        (["-r", "-o", "rw"], False),
        (["-o", "rw", "-r"], True),
        (["-o", "ro", "-o", "rw"], False),
    ],
)
@typechecked
def test_last_read_write_option_wins(
    tables: Path, options: List[str], read_only: bool
) -> None:
    client = FakeMountClient()

    result = invoke(tables, client, ["-t", "ext4", *options, "/dev/sdb1", "/data"])

    assert result.exit_code == 0
    assert bool(client.mounts[0].flags & MountFlag.RDONLY) is read_only


def test_long_options_are_mount_options(tables: Path) -> None:
    client = FakeMountClient()
    (tables / "srv").mkdir()

    result = invoke(tables, client, ["--bind", "srv", "/mnt"])

    assert result.exit_code == 0
    assert client.mounts[0].flags & MountFlag.BIND


def test_mount_from_fstab(tables: Path) -> None:
    client = FakeMountClient()

    result = invoke(tables, client, ["/data"])

    assert result.exit_code == 0
    assert [c.source for c in client.mounts] == ["/dev/sdb2"]


def test_remount_from_mtab(tables: Path) -> None:
    client = FakeMountClient()
    (tables / "mtab").write_text(SAMPLE_MTAB)

    result = invoke(tables, client, ["--remount,ro", "/data"])

    assert result.exit_code == 0
    call = client.mounts[0]
    assert call.source == "/dev/sdb1"
    assert call.flags & MountFlag.REMOUNT
    assert call.flags & MountFlag.RDONLY


def test_change_propagation(tables: Path) -> None:
    client = FakeMountClient()

    result = invoke(tables, client, ["--rprivate", "/data"])

    assert result.exit_code == 0
    call = client.mounts[0]
    assert (call.source, call.target, call.fstype) == ("", "/data", "")
    assert call.flags & MountFlag.PRIVATE
    assert call.flags & MountFlag.REC
    assert not (tables / "mtab").exists()


def test_mount_all_exits_with_failure_count(tables: Path) -> None:
    client = FakeMountClient(mount_errors=[0, 0, errno.ENODEV, errno.EINVAL, 0])

    result = invoke(tables, client, ["-a"])

    assert result.exit_code == 2
    assert len(client.mounts) == 5


def test_failed_mount_exits_with_errno(
    caplog: pytest.LogCaptureFixture, tables: Path
) -> None:
    client = FakeMountClient(mount_errors=[errno.ENODEV])

    result = invoke(tables, client, ["-t", "ext4", "/dev/sdb1", "/data"])

    assert result.exit_code == errno.ENODEV
    assert "mounting /dev/sdb1 on /data failed" in caplog.text


@pytest.mark.parametrize(
    "args, mount_errors, expected_message",
    [
        (["/nowhere"], [], "can't find /nowhere in"),
        (["-t", "ext4", "/dev/sdb1", "/data"], [errno.EPERM], "are you root"),
    ],
)
def test_fatal_errors(
    tables: Path, args: List[str], mount_errors: List[int], expected_message: str
) -> None:
    result = invoke(tables, FakeMountClient(mount_errors=mount_errors), args)

    assert result.exit_code == 1
    assert expected_message in result.output


@pytest.mark.parametrize(
    "args",
    [
        ["/dev/sdb1", "/data", "/extra"],
        ["-x", "/data"],
    ],
)
def test_usage_errors(tables: Path, args: List[str]) -> None:
    client = FakeMountClient()

    result = invoke(tables, client, args)

    assert result.exit_code == 2
    assert client.mounts == []


def test_fake_mode(tables: Path) -> None:
    client = FakeMountClient()

    result = invoke(tables, client, ["-f", "-t", "ext4", "/dev/sdb1", "/data"])

    assert result.exit_code == 0
    assert client.mounts == []
    assert not (tables / "mtab").exists()


def test_no_mtab(tables: Path) -> None:
    client = FakeMountClient()

    result = invoke(tables, client, ["-n", "-t", "ext4", "/dev/sdb1", "/data"])

    assert result.exit_code == 0
    assert len(client.mounts) == 1
    assert not (tables / "mtab").exists()


def test_verbose_logs_debug(
    caplog: pytest.LogCaptureFixture, tables: Path
) -> None:
    caplog.set_level(logging.DEBUG)

    result = invoke(tables, FakeMountClient(), ["-v", "-t", "ext4", "/dev/sdb1", "/data"])

    assert result.exit_code == 0
    assert "mount('/dev/sdb1', '/data', 'ext4'" in caplog.text


def test_log_folder(tables: Path) -> None:
    log_folder = tables / "logs"

    result = invoke(
        tables,
        FakeMountClient(mount_errors=[errno.ENODEV]),
        [f"--log-folder={log_folder}", "-t", "ext4", "/dev/sdb1", "/data"],
    )

    assert result.exit_code == errno.ENODEV
    assert "mounting /dev/sdb1 on /data failed" in (
        log_folder / "minimount.log"
    ).read_text()


def test_config_file_sets_defaults(tables: Path) -> None:
    other_fstab = tables / "other-fstab"
    other_fstab.write_text("/dev/sdz9 /data xfs defaults 0 0\n")
    config = tables / "config.toml"
    config.write_text(
        f"""
        [minimount]
        fstab = "{other_fstab}"
        fake = false
        """
    )
    client = FakeMountClient()

    result = CliRunner().invoke(
        main,
        [
            f"--config={config}",
            f"--mtab={tables / 'mtab'}",
            "/data",
        ],
        obj=client,
    )

    assert result.exit_code == 0
    assert [(c.source, c.fstype) for c in client.mounts] == [("/dev/sdz9", "xfs")]
