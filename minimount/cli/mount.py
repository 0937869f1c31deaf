# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
"""Attach a filesystem to a directory, optionally looking it up in fstab.

Argument handling only. The mount decisions live in `minimount.mount`.
"""

import logging
import sys
from contextlib import closing, ExitStack
from pathlib import Path
from typing import List, Literal, Optional, Sequence, Tuple, Union

import click

from minimount._version import __version__
from minimount.click import log_folder_option, log_level_option, toml_config_option
from minimount.mount.client import MountClient, MountClientImpl
from minimount.mount.context import FSTAB_PATH, MountContext, MTAB_PATH
from minimount.mount.errors import MountError
from minimount.mount.filesystems import ETC_FILESYSTEMS, PROC_FILESYSTEMS
from minimount.mount.options import parse_mount_options, PROPAGATION_FLAGS
from minimount.mount.table import (
    change_propagation,
    list_mounted,
    mount_direct,
    mount_from_table,
)
from minimount.utils.log import init_logger
from typeguard import typechecked

LOGGER_NAME = "minimount"
OPTION_TEXT_KEY = "minimount.option_text"


def split_args(args: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Separate `--flag` style mount options (e.g. `--bind`, `--remount,rw`) from
    positional arguments.

    >>> split_args(["--bind", "/srv", "/mnt"])
    (['bind'], ['/srv', '/mnt'])
    """
    long_options = []
    positional = []
    for arg in args:
        if arg.startswith("--"):
            long_options.append(arg[2:])
        else:
            positional.append(arg)
    return long_options, positional


def build_option_text(long_options: Sequence[str], options: Sequence[str]) -> str:
    return ",".join(p for p in [*long_options, *options] if p)


def _collect_options(
    ctx: click.Context, param: click.Parameter, value: Union[bool, Tuple[str, ...]]
) -> None:
    """Keep -o, -r and -w in command line order so the last one wins.

    click runs callbacks in the order options first appear, so every -o value
    lands at the position of the first -o.
    """
    collected = ctx.meta.setdefault(OPTION_TEXT_KEY, [])
    if param.name == "options":
        collected.extend(value)
    elif value:
        collected.append("ro" if param.name == "read_only" else "rw")


def run_mount(
    ctx: MountContext,
    positional: Sequence[str],
    option_text: str,
    fstype: Optional[str],
    mount_all_entries: bool,
) -> int:
    if not positional:
        if mount_all_entries:
            return mount_from_table(ctx, None, option_text, fstype)
        for line in list_mounted(ctx, fstype):
            click.echo(line)
        return 0

    if len(positional) == 2:
        source, target = positional
        return mount_direct(ctx, source, target, fstype, option_text)

    flags = parse_mount_options(option_text)
    if flags & PROPAGATION_FLAGS:
        change_propagation(ctx, positional[0], flags)
        return 0

    return mount_from_table(ctx, positional[0], option_text, fstype)


@click.command(
    context_settings={"ignore_unknown_options": True},
    epilog=f"minimount version: {__version__}",
)
@toml_config_option("minimount")
@click.option(
    "-o",
    "--options",
    "options",
    multiple=True,
    callback=_collect_options,
    expose_value=False,
    help="Comma separated mount options. May be repeated.",
)
@click.option(
    "-t",
    "--types",
    "fstype",
    default=None,
    help="Filesystem type. With --all, only entries of this type are mounted.",
)
@click.option(
    "-r",
    "--read-only",
    is_flag=True,
    callback=_collect_options,
    expose_value=False,
    help="Same as -o ro.",
)
@click.option(
    "-w",
    "--rw",
    "read_write",
    is_flag=True,
    callback=_collect_options,
    expose_value=False,
    help="Same as -o rw.",
)
@click.option(
    "-a",
    "--all",
    "mount_all_entries",
    is_flag=True,
    help="Mount every fstab entry not marked noauto or swap.",
)
@click.option(
    "-n",
    "--no-mtab",
    is_flag=True,
    help="Do not record successful mounts in the mount table.",
)
@click.option(
    "-f",
    "--fake",
    is_flag=True,
    help="Go through the motions without calling mount(2).",
)
@click.option("-v", "--verbose", is_flag=True, help="Same as --log-level=DEBUG.")
@click.option(
    "--fstab",
    type=click.Path(dir_okay=False, path_type=Path),
    default=str(FSTAB_PATH),
    show_default=True,
    help="The filesystem table to look entries up in.",
)
@click.option(
    "--mtab",
    type=click.Path(dir_okay=False, path_type=Path),
    default=str(MTAB_PATH),
    show_default=True,
    help="The legacy mount table. Used for remounts, listing and recording mounts.",
)
@click.option(
    "--filesystems",
    "filesystem_lists",
    type=click.Path(dir_okay=False, path_type=Path),
    multiple=True,
    default=[str(ETC_FILESYSTEMS), str(PROC_FILESYSTEMS)],
    show_default=True,
    help="Files listing the filesystem types to try when -t is omitted.",
)
@log_level_option
@log_folder_option
@click.version_option(__version__)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_obj
@typechecked
def main(
    obj: Optional[MountClient],
    fstype: Optional[str],
    mount_all_entries: bool,
    no_mtab: bool,
    fake: bool,
    verbose: bool,
    fstab: Path,
    mtab: Path,
    filesystem_lists: Tuple[Path, ...],
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    log_folder: Optional[str],
    args: Tuple[str, ...],
) -> None:
    """Mount SOURCE on TARGET, or the fstab entry for a single SOURCE or TARGET.

    Without arguments, list the mounted filesystems (or mount them all with -a).
    Long options such as --bind, --move or --remount,rw are mount options.
    """
    long_options, positional = split_args(args)
    unknown = [arg for arg in positional if arg.startswith("-") and arg != "-"]
    if unknown:
        raise click.NoSuchOption(unknown[0])
    if len(positional) > 2:
        raise click.UsageError(
            f"Expected at most SOURCE and TARGET, got {len(positional)} arguments."
        )
    option_text = build_option_text(
        long_options, click.get_current_context().meta.get(OPTION_TEXT_KEY, [])
    )

    logger, handlers = init_logger(
        logger_name=LOGGER_NAME,
        log_dir=log_folder,
        log_level=logging.DEBUG if verbose else getattr(logging, log_level),
    )
    with ExitStack() as s:
        for handler in handlers:
            s.callback(handler.close)
            s.callback(logger.removeHandler, handler)
        logger.debug(
            f"options={option_text!r} type={fstype} arguments={positional} all={mount_all_entries}"
        )

        ctx = s.enter_context(
            closing(
                MountContext(
                    client=MountClientImpl() if obj is None else obj,
                    use_mtab=not no_mtab,
                    fake=fake,
                    fstab_path=fstab,
                    mtab_path=mtab,
                    filesystem_lists=filesystem_lists,
                )
            )
        )
        try:
            rc = run_mount(ctx, positional, option_text, fstype, mount_all_entries)
        except MountError as e:
            raise click.ClickException(str(e)) from e

    if rc != 0:
        sys.exit(min(abs(rc), 255))


if __name__ == "__main__":
    main()
