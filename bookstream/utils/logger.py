import logging
import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from bookstream.core.config import settings


# ── column widths ─────────────────────────────────────────────────────────────
_W_SERIAL  = 6
_W_DATE    = 12
_W_TIME    = 10
_W_LEVEL   = 8
_W_UID     = 8
_W_SUBJECT = 28
_W_MODULE  = 28
_W_EVENT   = 48
_SEP       = " | "
_TOTAL_WIDTH = (
    _W_SERIAL + _W_DATE + _W_TIME + _W_LEVEL
    + _W_UID + _W_SUBJECT + _W_MODULE + _W_EVENT
    + len(_SEP) * 7
)


class StructuredFileHandler(logging.FileHandler):
    """File handler that writes one fixed-width row per record.

    Column layout:
        Serial | Date | Time | Level | User ID | Subject | Module/Function | Event

    *Subject* is the user's email when known, otherwise the client IP the
    decision was about (``extra={"subject": ...}``).
    """

    def __init__(self, log_file_path: str):
        super().__init__(log_file_path, mode="a", encoding="utf-8")
        self.log_counter = self._get_next_serial_number()
        self._ensure_header_exists()

    def _get_next_serial_number(self) -> int:
        if not os.path.exists(self.baseFilename) or os.path.getsize(self.baseFilename) == 0:
            return 1
        try:
            with open(self.baseFilename, "r", encoding="utf-8") as f:
                for line in reversed(f.readlines()):
                    parts = line.split(_SEP)
                    if parts and parts[0].strip().isdigit():
                        return int(parts[0].strip()) + 1
        except OSError:
            pass
        return 1

    def _ensure_header_exists(self):
        if os.path.exists(self.baseFilename) and os.path.getsize(self.baseFilename) > 0:
            return
        header = (
            f"{'#':<{_W_SERIAL}}"
            f"{_SEP}{'Date':<{_W_DATE}}"
            f"{_SEP}{'Time':<{_W_TIME}}"
            f"{_SEP}{'Level':<{_W_LEVEL}}"
            f"{_SEP}{'User ID':<{_W_UID}}"
            f"{_SEP}{'Subject':<{_W_SUBJECT}}"
            f"{_SEP}{'Module/Function':<{_W_MODULE}}"
            f"{_SEP}{'Event':<{_W_EVENT}}"
        )
        with open(self.baseFilename, "w", encoding="utf-8") as f:
            f.write("=" * _TOTAL_WIDTH + "\n")
            f.write(f"{'BOOKSTREAM ENTITLEMENTS LOG':^{_TOTAL_WIDTH}}\n")
            f.write("=" * _TOTAL_WIDTH + "\n")
            f.write(header + "\n")
            f.write("-" * _TOTAL_WIDTH + "\n")

    def emit(self, record: logging.LogRecord):
        try:
            dt = datetime.fromtimestamp(record.created)
            module_func = f"{record.module}.{record.funcName}"

            uid = str(getattr(record, "user_id", "-") or "-")
            subject = str(getattr(record, "subject", "-") or "-")

            message = record.getMessage()
            preview = message if len(message) <= _W_EVENT else message[:_W_EVENT - 3] + "..."

            line = (
                f"{self.log_counter:<{_W_SERIAL}}"
                f"{_SEP}{dt.strftime('%Y-%m-%d'):<{_W_DATE}}"
                f"{_SEP}{dt.strftime('%H:%M:%S'):<{_W_TIME}}"
                f"{_SEP}{record.levelname:<{_W_LEVEL}}"
                f"{_SEP}{uid:<{_W_UID}}"
                f"{_SEP}{subject[:_W_SUBJECT]:<{_W_SUBJECT}}"
                f"{_SEP}{module_func[:_W_MODULE]:<{_W_MODULE}}"
                f"{_SEP}{preview:<{_W_EVENT}}"
            )

            indent = " " * (_W_SERIAL + len(_SEP))
            with open(self.baseFilename, "a", encoding="utf-8") as f:
                f.write(line + "\n")
                if len(message) > _W_EVENT:
                    f.write(f"{indent}Details: {message}\n")
                if record.exc_info:
                    tb = "".join(traceback.format_exception(*record.exc_info))
                    f.write(f"{indent}Exception: {tb}\n")
                if record.levelno >= logging.ERROR:
                    f.write("-" * _TOTAL_WIDTH + "\n")

            self.log_counter += 1
        except Exception:
            self.handleError(record)


# ── setup ─────────────────────────────────────────────────────────────────────

def setup_file_logging(log_level: int = logging.INFO, log_dir: Optional[str] = None) -> logging.Logger:
    """Configure structured file + console logging.

    The file handler records WARNING and above; every denial the engine
    makes is logged at WARNING so it lands in the file.
    """
    directory = Path(log_dir or settings.LOG_DIR)
    directory.mkdir(parents=True, exist_ok=True)

    file_handler = StructuredFileHandler(str(directory / "logs.txt"))
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(logging.Formatter("%(message)s"))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    )

    logging.basicConfig(level=log_level, handlers=[file_handler, console_handler], force=True)

    logger = logging.getLogger(__name__)
    logger.warning(
        "Bookstream SESSION STARTED at %s",
        datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
    )
    return logger


# ── helpers for callers ───────────────────────────────────────────────────────

def log_entitlement_event(
    decision: str,
    detail: str,
    user_id: Optional[int] = None,
    subject: Optional[str] = None,
    denied: bool = True,
):
    """Record an engine decision (block, conflict, cap rejection, trial start).

    Denials go out at WARNING so they reach the structured file; grants at INFO.
    """
    _log = logging.getLogger("entitlements")
    extra = {"user_id": user_id or "-", "subject": subject or "-"}
    level = logging.WARNING if denied else logging.INFO
    _log.log(level, "%s - %s", decision, detail, extra=extra)
