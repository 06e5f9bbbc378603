"""
Request Phase Logging for the Mail Parse Service
================================================

Colored, phase-scoped log lines for a single /parse request.
IMPORTANT: No emojis in console output (Windows encoding issues).
"""

import logging
import time
from contextlib import contextmanager
from typing import Dict, Optional

from colorama import Fore, Style, init

# Initialize colorama for Windows
init(autoreset=True)


class Phase:
    """Phase constants for the parse request"""
    VALIDATION = "REQUEST_VALIDATION"
    PARSE = "MIME_PARSE"
    ATTACHMENTS = "ATTACHMENT_PROCESSING"
    COMPLETION = "COMPLETION"


PHASE_COLORS = {
    Phase.VALIDATION: Fore.CYAN,
    Phase.PARSE: Fore.BLUE,
    Phase.ATTACHMENTS: Fore.MAGENTA,
    Phase.COMPLETION: Fore.GREEN + Style.BRIGHT,
}

# Text-based icons, no emojis for Windows
PHASE_ICONS = {
    Phase.VALIDATION: "[VAL]",
    Phase.PARSE: "[MIM]",
    Phase.ATTACHMENTS: "[ATT]",
    Phase.COMPLETION: "[OK ]",
}


class TimingTracker:
    """Track timing for phases"""

    def __init__(self):
        self._timings: Dict[str, float] = {}
        self._start_times: Dict[str, float] = {}

    def start(self, key: str):
        self._start_times[key] = time.perf_counter()

    def end(self, key: str) -> float:
        """End timing and return elapsed seconds"""
        if key not in self._start_times:
            return 0.0
        elapsed = time.perf_counter() - self._start_times.pop(key)
        self._timings[key] = elapsed
        return elapsed

    def get(self, key: str) -> Optional[float]:
        return self._timings.get(key)

    def get_all(self) -> Dict[str, float]:
        return self._timings.copy()


class PhaseLogger:
    """
    Logger bound to one request, with phase tracking and timing

    Usage:
        phase_logger = PhaseLogger(request_id="abc123", verbose=True)

        with phase_logger.phase(Phase.PARSE):
            phase_logger.info("Parsing 2048 bytes")
    """

    def __init__(
        self,
        request_id: str,
        verbose: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        self.request_id = request_id
        self.verbose = verbose
        self.logger = logger or logging.getLogger(__name__)
        self.timing_tracker = TimingTracker()
        self._current_phase: Optional[str] = None

    @contextmanager
    def phase(self, phase_name: str):
        """Context manager for a phase; logs entry (verbose only) and elapsed time"""
        previous = self._current_phase
        self._current_phase = phase_name
        self.timing_tracker.start(phase_name)
        self.debug(f"{phase_name} started")
        try:
            yield self
        finally:
            elapsed = self.timing_tracker.end(phase_name)
            self.debug(f"{phase_name} finished in {elapsed:.3f}s")
            self._current_phase = previous

    def _prefix(self) -> str:
        if not self._current_phase:
            return f"[{self.request_id}]"
        color = PHASE_COLORS.get(self._current_phase, Fore.WHITE)
        icon = PHASE_ICONS.get(self._current_phase, "[???]")
        return f"{color}{icon}{Style.RESET_ALL} [{self.request_id}]"

    def info(self, message: str):
        self.logger.info(f"{self._prefix()} {message}")

    def debug(self, message: str):
        """Only emitted when verbose"""
        if self.verbose:
            self.logger.info(f"{self._prefix()} {Style.DIM}{message}{Style.RESET_ALL}")

    def warning(self, message: str):
        self.logger.warning(f"{Fore.YELLOW}[WARN]{Style.RESET_ALL} [{self.request_id}] {message}")

    def error(self, message: str):
        self.logger.error(f"{Fore.RED}{Style.BRIGHT}[ERROR]{Style.RESET_ALL} [{self.request_id}] {message}")

    def log_outcome_summary(self, outcomes: Dict[str, int]):
        """One line with the number of attachments per classification"""
        if not outcomes:
            self.info("No attachments")
            return
        summary = ", ".join(f"{status}={count}" for status, count in sorted(outcomes.items()))
        self.info(f"Attachments: {summary}")

    def log_timing_summary(self):
        """Log timing summary for all phases (verbose only)"""
        if not self.verbose:
            return
        for phase_name, elapsed in self.timing_tracker.get_all().items():
            color = PHASE_COLORS.get(phase_name, Fore.WHITE)
            self.logger.info(f"{color}{phase_name:24s} {elapsed:8.3f}s{Style.RESET_ALL}")


def create_phase_logger(request_id: str, verbose: bool = False) -> PhaseLogger:
    """Create a new PhaseLogger instance"""
    return PhaseLogger(request_id=request_id, verbose=verbose)
