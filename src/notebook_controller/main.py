"""Main entry point for the notebook operator.

Turns SIGINT/SIGTERM into a cancel token so that a running wait stops at the
next poll instead of being killed mid-call.
"""

from __future__ import annotations

import logging
import signal
from types import FrameType

from .cli import CliState, cli

logger = logging.getLogger(__name__)


def run() -> None:
    """Entry point for the nbctl console script."""
    state = CliState()

    def signal_handler(signum: int, _frame: FrameType | None) -> None:
        logger.info("Received signal, cancelling", extra={"signal": signal.Signals(signum).name})
        state.cancel.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, signal_handler)

    cli(obj=state)


if __name__ == "__main__":
    run()
