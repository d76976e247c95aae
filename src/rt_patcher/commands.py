# commands.py
# External tool runner for work units.
#
# The child inherits the terminal, so whatever it prints lands in the
# active step's scroll region. Nothing is captured; the log file records
# the command line and the exit status only.

import logging
import os
import shlex
import subprocess
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from rt_patcher.errors import ExternalToolError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    cwd: str | os.PathLike | None = None,
    env: Mapping[str, str] | None = None,
    answer_defaults: bool = False,
) -> CmdResult:
    """
    Run a command in the foreground and wait for it.

    answer_defaults feeds an endless stream of empty lines to stdin, the
    same as piping `yes ''` into the tool, so interactive prompts (kernel
    config questions) take their default answer.

    Raises ExternalToolError on a nonzero exit when check is True.
    """
    argv_list = [str(a) for a in argv]
    logger.info("CMD %s (cwd=%s)", shlex.join(argv_list), cwd or os.getcwd())
    sys.stdout.flush()

    run_env = dict(os.environ, **(env or {}))
    if answer_defaults:
        yes = subprocess.Popen(["yes", ""], stdout=subprocess.PIPE)
        try:
            returncode = subprocess.run(argv_list, stdin=yes.stdout, cwd=cwd, env=run_env).returncode
        finally:
            yes.stdout.close()
            yes.kill()
            yes.wait()
    else:
        returncode = subprocess.run(argv_list, cwd=cwd, env=run_env).returncode

    logger.info("EXIT %d %s", returncode, argv_list[0])
    if check and returncode != 0:
        raise ExternalToolError(argv_list, returncode)
    return CmdResult(argv=argv_list, returncode=returncode)
