# run.py
# Entry point. Config and wiring only, no logic lives here.
#
# Configure with RT_PATCHER_* environment variables or a .env file, e.g.
#   RT_PATCHER_COMPILE_KERNEL=false RT_PATCHER_KERNEL_BASE=6.8 rt-patcher

import logging
import tempfile
from contextlib import closing
from pathlib import Path

from rt_patcher.config import load_config
from rt_patcher.executor import PipelineExecutor
from rt_patcher.logging_utils import LOG_FILENAME, configure_logging
from rt_patcher.models import WizardSession
from rt_patcher.steps import DONE_STEP, HEADER, TITLE, KernelPatcher

logger = logging.getLogger(__name__)


def main() -> int:
    config = load_config()

    # Left on disk after exit so a failed build can be inspected or resumed by hand.
    if config.workdir:
        workdir = Path(config.workdir)
        workdir.mkdir(parents=True, exist_ok=True)
    else:
        workdir = Path(tempfile.mkdtemp(prefix="kernel-patching-"))

    log_path = configure_logging(config.log_path or workdir / LOG_FILENAME)
    logger.info("Working directory %s, log %s", workdir, log_path)

    session = WizardSession(title=TITLE, header=list(HEADER))
    executor = PipelineExecutor(session)

    with closing(KernelPatcher(config, executor, workdir)) as patcher:
        patcher.register_steps()
        result = executor.run(patcher.phases(), finish_step=DONE_STEP, farewell=patcher.farewell())

    logger.info("Exit code %d (failed step: %s)", result.exit_code, result.failed)
    return result.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
