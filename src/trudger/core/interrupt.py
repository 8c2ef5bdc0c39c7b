"""Cooperative interrupt handling.

SIGINT/SIGTERM only set a flag; the run loop polls it between blocking
steps and exits with 130. Subprocesses already running are not killed.
"""

import signal
import threading
from typing import Callable, Dict, Iterable

from .run_state import RunState, make_quit

INTERRUPT_EXIT_CODE = 130

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_signal_handlers(
    interrupt: threading.Event,
    signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
) -> Dict[signal.Signals, Callable]:
    """
    Route termination signals to the interrupt flag.

    Args:
        interrupt: Flag set when a signal arrives
        signals: Signals to handle

    Returns:
        Previous handlers, keyed by signal, for restore_signal_handlers()

    Raises:
        ValueError: If called outside the main thread
    """
    def handler(signum, frame):
        interrupt.set()

    previous = {}
    for sig in signals:
        previous[sig] = signal.getsignal(sig)
        signal.signal(sig, handler)
    return previous


def restore_signal_handlers(previous: Dict[signal.Signals, Callable]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def check_interrupted(state: RunState) -> None:
    """Raise ``Quit(130, "interrupted")`` once the interrupt flag is set."""
    if state.interrupt.is_set():
        raise make_quit("interrupted", INTERRUPT_EXIT_CODE)
