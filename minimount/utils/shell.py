# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
import os
import subprocess

from typing import List


def run_shell(command: List[str], timeout_secs: int) -> subprocess.CompletedProcess:
    """Run `command` and return its result with stderr folded into stdout.

    Raises:
        RuntimeError if the executable cannot be found.
        subprocess.TimeoutExpired if the command does not finish in time.
    """
    try:
        return subprocess.run(
            command,
            encoding="utf-8",
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=timeout_secs,
        )
    except FileNotFoundError as e:
        path = os.environ.get("PATH", "")
        raise RuntimeError(
            f"Could not find executable '{command[0]}'. Current PATH: {path}"
        ) from e
