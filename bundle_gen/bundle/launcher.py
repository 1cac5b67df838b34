"""Shell wrappers that start bundled programs with ``lib/`` on the loader path."""

from __future__ import annotations

import shlex
from typing import List, Tuple

from ..errors import BadCommand

RUN_SCRIPT = "run.sh"
LAUNCH_SCRIPT = "launch.sh"

_TEMPLATE = """#!/bin/sh

set -x

P=$(dirname "$(busybox realpath "$0")")

export LD_LIBRARY_PATH="${{LD_LIBRARY_PATH}}:${{P}}/lib"

"${{P}}/{command}" {arguments}"$@"
"""


def split_command(startup_command: str) -> Tuple[str, List[str]]:
    """Split a spec command into program and arguments.

    Unparseable strings (for instance unbalanced quotes) are treated as a bare
    program name.
    """

    try:
        parts = shlex.split(startup_command)
    except ValueError:
        return startup_command, []
    if not parts:
        raise BadCommand(startup_command)
    return parts[0], parts[1:]


def render_launcher(startup_command: str) -> str:
    command, args = split_command(startup_command)
    arguments = "".join(f"{shlex.quote(arg)} " for arg in args)
    return _TEMPLATE.format(command=command, arguments=arguments)
