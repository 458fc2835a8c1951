"""
Logging helpers for the Service Desk attachment forms
=====================================================

Colored console logging and a form-session logger that tags every line
with the form name and session id.
IMPORTANT: No emojis in console output (Windows encoding issues).
"""

import logging
import time
from contextlib import contextmanager
from typing import Dict, Iterable, Optional

from colorama import Fore, Style, init

# Initialize colorama for Windows
init(autoreset=True)


class Event:
    """Lifecycle event constants for an edit form session"""
    OPEN = "OPEN"
    ADD = "ADD"
    REMOVE = "REMOVE"
    UNMARK = "UNMARK"
    SUBMIT = "SUBMIT"
    RESET = "RESET"
    DISCARD = "DISCARD"


EVENT_COLORS = {
    Event.OPEN: Fore.CYAN,
    Event.ADD: Fore.GREEN,
    Event.REMOVE: Fore.YELLOW,
    Event.UNMARK: Fore.BLUE,
    Event.SUBMIT: Fore.MAGENTA,
    Event.RESET: Fore.GREEN + Style.BRIGHT,
    Event.DISCARD: Fore.WHITE + Style.DIM,
}

# Text-based tags, no emojis
EVENT_TAGS = {
    Event.OPEN: "[OPN]",
    Event.ADD: "[ADD]",
    Event.REMOVE: "[DEL]",
    Event.UNMARK: "[UND]",
    Event.SUBMIT: "[SUB]",
    Event.RESET: "[OK ]",
    Event.DISCARD: "[CLS]",
}

LEVEL_COLORS = {
    logging.DEBUG: Fore.WHITE + Style.DIM,
    logging.INFO: Fore.GREEN,
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
    logging.CRITICAL: Fore.RED + Style.BRIGHT,
}

# Silence noisy third-party loggers to avoid cluttering output
NOISY_LOGGERS = (
    "aiohttp",
    "aiohttp.access",
    "urllib3",
    "urllib3.connectionpool",
    "charset_normalizer",
)


class ColoredLevelFormatter(logging.Formatter):
    """Formatter that colors the level name only"""

    def format(self, record: logging.LogRecord) -> str:
        original = record.levelname
        color = LEVEL_COLORS.get(record.levelno)
        if color:
            record.levelname = f"{color}{original}{Style.RESET_ALL}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def setup_logging(level="INFO", noisy_loggers: Iterable[str] = NOISY_LOGGERS) -> logging.Logger:
    """Configure the root logger with a colored stream handler"""
    root = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)

    for handler in list(root.handlers):
        if getattr(handler, "_servicedesk_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(ColoredLevelFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    handler._servicedesk_handler = True
    root.addHandler(handler)

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
    return root


class TimingTracker:
    """Track timing for submissions and other operations"""

    def __init__(self):
        self._timings: Dict[str, float] = {}
        self._start_times: Dict[str, float] = {}

    def start(self, key: str):
        """Start timing for a key"""
        self._start_times[key] = time.monotonic()

    def end(self, key: str) -> float:
        """End timing and return elapsed seconds"""
        if key not in self._start_times:
            return 0.0
        elapsed = time.monotonic() - self._start_times.pop(key)
        self._timings[key] = elapsed
        return elapsed

    def get(self, key: str) -> Optional[float]:
        """Get timing for a key"""
        return self._timings.get(key)

    def get_all(self) -> Dict[str, float]:
        """Get all recorded timings"""
        return self._timings.copy()


class FormEventLogger:
    """
    Session-scoped logger for one open edit form

    Usage:
        events = FormEventLogger(form_name="job", session_id="abc123")
        events.event(Event.ADD, "2 files accepted")
        with events.timed(Event.SUBMIT):
            ...
    """

    def __init__(self, form_name: str, session_id: str, logger: Optional[logging.Logger] = None):
        self.form_name = form_name
        self.session_id = session_id
        self.logger = logger or logging.getLogger(__name__)
        self.timing_tracker = TimingTracker()

    def _prefix(self) -> str:
        return f"[{self.form_name}:{self.session_id}]"

    def event(self, event_name: str, message: str):
        """Log a lifecycle event with its color and tag"""
        color = EVENT_COLORS.get(event_name, Fore.WHITE)
        tag = EVENT_TAGS.get(event_name, "[???]")
        self.logger.info(f"{color}{tag}{Style.RESET_ALL} {self._prefix()} {message}")

    def debug(self, message: str):
        self.logger.debug(f"{Fore.WHITE}{Style.DIM}{self._prefix()} {message}{Style.RESET_ALL}")

    def warning(self, message: str):
        self.logger.warning(f"{Fore.YELLOW}[WARN] {self._prefix()} {message}{Style.RESET_ALL}")

    def error(self, message: str):
        self.logger.error(f"{Fore.RED}{Style.BRIGHT}[ERROR] {self._prefix()} {message}{Style.RESET_ALL}")

    @contextmanager
    def timed(self, event_name: str):
        """Log start and end of an operation with the elapsed time"""
        key = f"{event_name}_{len(self.timing_tracker.get_all())}"
        self.timing_tracker.start(key)
        self.event(event_name, "started")
        try:
            yield self
        finally:
            elapsed = self.timing_tracker.end(key)
            self.event(event_name, f"finished (Elapsed: {elapsed:.2f}s)")


def create_form_logger(form_name: str, session_id: str) -> FormEventLogger:
    """Create a new FormEventLogger instance"""
    return FormEventLogger(form_name=form_name, session_id=session_id)
