"""Logging setup for the papersum CLI.

``setup_logging`` is called once from ``cli.main()`` and configures the
``"papersum"`` package logger.  Every other module uses
``logging.getLogger(__name__)`` and relies on propagation to reach it.
"""

import logging
import sys
from pathlib import Path

_FMT = "%(asctime)s  %(levelname)-7s %(name)s: %(message)s"
_DATE = "%H:%M:%S"


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure the ``papersum`` logger for a CLI session.

    Args:
        verbose:  DEBUG level when True (per-step agent traces, tool
                  arguments).  INFO otherwise.
        log_file: Optional path for a ``FileHandler`` in addition to stderr.
                  Missing parent directories are created.

    Safe to call repeatedly; previous handlers are dropped first.
    """
    logger = logging.getLogger("papersum")
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    fmt = logging.Formatter(_FMT, datefmt=_DATE)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(fmt)
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(fmt)
        logger.addHandler(fh)
