import datetime
import logging
import shutil
from pathlib import Path
from typing import Callable, TextIO
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .settings import settings

_LOGGING_CONFIGURED = False

APP_LOGGER_NAME = "promptchat"


def _resolve_tzinfo(timezone_name: str | None) -> datetime.tzinfo:
    if timezone_name:
        try:
            return ZoneInfo(timezone_name)
        except ZoneInfoNotFoundError:
            pass
    # Fallback to system local timezone
    return datetime.datetime.now().astimezone().tzinfo or datetime.UTC


class LocalTimezoneFormatter(logging.Formatter):
    """Render asctime in LOG_TIMEZONE (system local zone when unset or invalid)."""

    def __init__(self, *args, timezone_name: str | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._tzinfo = _resolve_tzinfo(timezone_name)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        dt = datetime.datetime.fromtimestamp(record.created, tz=self._tzinfo)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(timespec="milliseconds")


# (path fragment, bucket); first match wins.
_BUSINESS_PATHS = (
    ("/promptchat/services/relay_service.py", "relay"),
    ("/promptchat/api/v1/chat_routes.py", "relay"),
    ("/promptchat/services/identity_service.py", "identity"),
    ("/promptchat/visitor.py", "identity"),
    ("/promptchat/services/", "chat"),
    ("/promptchat/api/v1/", "chat"),
    ("/promptchat/db/", "db"),
)


def infer_log_business(record: logging.LogRecord) -> str:
    """
    Map a record to its business bucket.

    Modules share the `promptchat` logger, so the callsite path decides.
    """
    name = record.name or ""
    if name.startswith("uvicorn.access"):
        return "access"
    if name.startswith("uvicorn"):
        return "server"

    path = (record.pathname or "").replace("\\", "/")
    for fragment, biz in _BUSINESS_PATHS:
        if fragment in path:
            return biz
    return "app"


class DailyFolderFileHandler(logging.Handler):
    """
    Writes to <log_dir>/<YYYY-MM-DD>/<file> and keeps at most backup_days
    date folders.

    With `filename` every record lands in that file; without it the file is
    `<business>.log` as given by infer_log_business.
    """

    def __init__(
        self,
        log_dir: Path,
        *,
        filename: str | None = None,
        backup_days: int = 7,
        timezone_name: str | None = None,
        now_fn: Callable[[], datetime.datetime] | None = None,
        encoding: str = "utf-8",
    ) -> None:
        super().__init__()
        self.log_dir = log_dir
        self.filename = filename
        self.backup_days = backup_days
        self.encoding = encoding
        self._tzinfo = _resolve_tzinfo(timezone_name)
        # now_fn is mainly for tests.
        self._now_fn = now_fn
        self._current_date: datetime.date | None = None
        self._streams: dict[str, TextIO] = {}
        self._roll_if_needed()

    def _today(self) -> datetime.date:
        now = self._now_fn() if self._now_fn else datetime.datetime.now(tz=self._tzinfo)
        if now.tzinfo is None:
            now = now.replace(tzinfo=self._tzinfo)
        return now.date()

    def _close_streams(self) -> None:
        for stream in self._streams.values():
            try:
                stream.close()
            except OSError:
                pass
        self._streams.clear()

    def _roll_if_needed(self) -> None:
        today = self._today()
        if self._current_date == today:
            return
        self._current_date = today
        self._close_streams()
        (self.log_dir / today.isoformat()).mkdir(parents=True, exist_ok=True)
        _cleanup_old_dirs(self.log_dir, self.backup_days)

    def _stream_for(self, filename: str) -> TextIO:
        stream = self._streams.get(filename)
        if stream is None:
            assert self._current_date is not None
            path = self.log_dir / self._current_date.isoformat() / filename
            stream = open(path, "a", encoding=self.encoding)
            self._streams[filename] = stream
        return stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._roll_if_needed()
            filename = self.filename
            if filename is None:
                biz = infer_log_business(record)
                record.biz = biz
                filename = f"{biz}.log"
            stream = self._stream_for(filename)
            stream.write(self.format(record) + "\n")
            stream.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        try:
            self._close_streams()
        finally:
            super().close()


def _cleanup_old_dirs(log_dir: Path, backup_days: int) -> None:
    if backup_days <= 0:
        return
    dated: list[tuple[datetime.date, Path]] = []
    try:
        for p in log_dir.iterdir():
            try:
                dated.append((datetime.date.fromisoformat(p.name), p))
            except ValueError:
                continue
    except OSError:
        return

    dated.sort(key=lambda x: x[0])
    for _, old_dir in dated[: max(len(dated) - backup_days, 0)]:
        shutil.rmtree(old_dir, ignore_errors=True)


class BizFilter(logging.Filter):
    """Pin `record.biz` to a fixed bucket, or infer it when none is given."""

    def __init__(self, biz: str | None = None) -> None:
        super().__init__()
        self._biz = biz

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if self._biz is not None:
            record.biz = self._biz
        elif not hasattr(record, "biz"):
            record.biz = infer_log_business(record)
        return True


def setup_logging() -> None:
    """
    Configure application logging: per-day folders under LOG_DIR, split by
    business (e.g. logs/2025-12-12/relay.log), plus access.log / server.log
    for uvicorn and a console handler.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    log_dir = Path(settings.log_dir)
    if not log_dir.is_absolute():
        log_dir = Path(__file__).resolve().parents[1] / log_dir
    log_dir.mkdir(parents=True, exist_ok=True)

    level_value = getattr(logging, settings.log_level.upper(), logging.INFO)
    formatter = LocalTimezoneFormatter(
        "%(asctime)s [%(levelname)s] [%(biz)s] %(name)s - %(message)s",
        timezone_name=settings.log_timezone,
    )

    def _file_handler(filename: str | None, biz_filter: BizFilter) -> DailyFolderFileHandler:
        handler = DailyFolderFileHandler(
            log_dir,
            filename=filename,
            backup_days=settings.log_backup_days,
            timezone_name=settings.log_timezone,
        )
        handler.setFormatter(formatter)
        handler.addFilter(biz_filter)
        return handler

    app_handler = _file_handler(
        None if settings.log_split_by_business else "app.log", BizFilter()
    )
    access_handler = _file_handler("access.log", BizFilter("access"))
    server_handler = _file_handler("server.log", BizFilter("server"))
    server_handler.addFilter(lambda record: not record.name.startswith("uvicorn.access"))

    for name, handler in (
        (APP_LOGGER_NAME, app_handler),
        ("uvicorn.access", access_handler),
        ("uvicorn", server_handler),
    ):
        target = logging.getLogger(name)
        target.setLevel(level_value)
        target.propagate = True
        target.addHandler(handler)

    # Console handler on root so uvicorn and app logs show up in the terminal.
    root_logger = logging.getLogger()
    root_logger.setLevel(level_value)
    if not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in root_logger.handlers
    ):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        console_handler.addFilter(BizFilter())
        root_logger.addHandler(console_handler)

    _LOGGING_CONFIGURED = True


logger = logging.getLogger(APP_LOGGER_NAME)
