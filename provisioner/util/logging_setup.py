# provisioner/util/logging_setup.py
from __future__ import annotations

import logging
import os
import sys
from typing import Optional

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Libraries that log per request while we poll health endpoints or fetch shards
_NOISY = ("urllib3", "huggingface_hub", "filelock")


def init_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Initialize the root logger for operator-facing progress output:
    'YYYY-mm-dd HH:MM:SS,ms | LEVEL | message'
    - Single StreamHandler to stdout at the requested level
    - Optional log_file: every record at DEBUG, tagged with the logger name,
      appended across runs so an interrupted install can be read back
    - External tools (apt, cmake, git) keep writing straight to the terminal
    """
    lvl_name = (level or "info").lower()
    lvl = _LEVELS.get(lvl_name, logging.INFO)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(lvl)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)

    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        fh = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(FILE_FORMAT))
        root.addHandler(fh)
        root.setLevel(logging.DEBUG)
    else:
        root.setLevel(lvl)

    for name in _NOISY:
        logging.getLogger(name).setLevel(max(lvl, logging.INFO))
