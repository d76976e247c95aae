# logging_utils.py
# Log setup. The terminal belongs to the renderer, so records only ever go
# to a file.

import logging
from pathlib import Path

LOG_FILENAME = "rt-patcher.log"


def configure_logging(log_path: str | Path, level: int = logging.INFO) -> str:
    """
    Attach a file handler to the root logger and return the path in use.

    Falls back to ./rt-patcher.log when `log_path` cannot be opened.
    Calling it again is a no-op that returns the first path.
    """
    root = logging.getLogger()
    root.setLevel(level)

    if getattr(root, "_rt_patcher_configured", False):
        return getattr(root, "_rt_patcher_log_path")

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    chosen = Path(log_path)
    try:
        chosen.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(chosen, encoding="utf-8")
    except OSError:
        chosen = Path.cwd() / LOG_FILENAME
        handler = logging.FileHandler(chosen, encoding="utf-8")
    handler.setFormatter(fmt)
    root.addHandler(handler)

    setattr(root, "_rt_patcher_configured", True)
    setattr(root, "_rt_patcher_log_path", str(chosen))

    logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", log_path, chosen)
    return str(chosen)
