"""Alert command runner.

The alert executable runs with no arguments and the measured skew in the
MAXSKEW environment variable. A failed alert stops the monitor.
"""

from __future__ import annotations

import os
import subprocess

from skewwatch.errors import AlertError
from skewwatch.utils.logging_config import get_logger

logger = get_logger(__name__)


class AlertDispatcher:
    def __init__(self, command: str):
        self.command = command

    def dispatch(self, max_skew: int) -> str:
        """Run the alert command and return its combined output."""
        env = dict(os.environ)
        env["MAXSKEW"] = str(int(max_skew))
        try:
            proc = subprocess.run(
                [self.command],
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=False,
            )
        except OSError as exc:
            raise AlertError(self.command, None, str(exc)) from exc

        output = proc.stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            raise AlertError(self.command, proc.returncode, output)

        logger.info("alert_dispatched", command=self.command, max_skew=max_skew)
        return output
