# src/lsm/util/log.py: Logging setup and rotation.
# This module provides the logging configuration for the daemon. A contextvar
# carries the name of the service being checked or restarted, and a filter
# injects it into every record so concurrent units stay distinguishable in the
# log. Output goes to stderr or to a size-rotated file whose limits come from
# the LogConfig stored in the registry.

import contextvars
import gzip
import logging
import os
import shutil
import sys
import time
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

from ..config import LogConfig

ROOT_LOGGER = "lsm"
TEXT_FORMAT = "%(asctime)s %(levelname)s [%(service)s] %(name)s: %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(service)s %(message)s"

service_context = contextvars.ContextVar("service_context", default=None)

class ServiceContextFilter(logging.Filter):
    def filter(self, record):
        record.service = service_context.get() or "-"
        return True

class RetentionRotatingFileHandler(RotatingFileHandler):
    """
    Size-based rotation with optional gzip compression of rotated files and
    removal of rotated files older than max_age days.

    A backup_count of 0 keeps every rotated file, each under a timestamped
    name, and leaves cleanup to max_age.
    """

    def __init__(self, filename, max_bytes, backup_count, max_age_days=0, compress=False):
        super().__init__(filename, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        self.keep_all = backup_count == 0
        self.max_age_days = max_age_days
        self.compress = compress
        if compress:
            self.namer = _gzip_namer
            self.rotator = _gzip_rotator

    def doRollover(self):
        if self.keep_all:
            self._rollover_timestamped()
        else:
            super().doRollover()
        if self.max_age_days > 0:
            self._prune_expired()

    def _rollover_timestamped(self):
        if self.stream:
            self.stream.close()
            self.stream = None
        stamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S.%f")
        dest = self.rotation_filename(f"{self.baseFilename}.{stamp}")
        suffix = 1
        while os.path.exists(dest):
            dest = self.rotation_filename(f"{self.baseFilename}.{stamp}-{suffix}")
            suffix += 1
        self.rotate(self.baseFilename, dest)
        if not self.delay:
            self.stream = self._open()

    def _prune_expired(self):
        cutoff = time.time() - self.max_age_days * 86400
        base = Path(self.baseFilename)
        for rotated in base.parent.glob(base.name + ".*"):
            try:
                if rotated.stat().st_mtime < cutoff:
                    rotated.unlink()
            except OSError:
                # Already gone or unreadable: nothing left to prune.
                continue

def _gzip_namer(name):
    return name + ".gz"

def _gzip_rotator(source, dest):
    if not os.path.exists(source):
        return
    with open(source, "rb") as src, gzip.open(dest, "wb") as dst:
        shutil.copyfileobj(src, dst)
    os.remove(source)

def build_handler(log_path: Optional[Path], log_config: LogConfig) -> logging.Handler:
    if log_path is None:
        return logging.StreamHandler(sys.stderr)
    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return RetentionRotatingFileHandler(
        log_path,
        max_bytes=log_config.max_size * 1024 * 1024,
        backup_count=log_config.max_backups,
        max_age_days=log_config.max_age,
        compress=log_config.compress,
    )

def setup_logging(
    log_path: Optional[Path] = None,
    log_config: Optional[LogConfig] = None,
    level: str = "INFO",
    json_format: bool = False,
) -> logging.Logger:
    """
    Configure the 'lsm' logger. Replaces any handler installed by an earlier call.
    """
    log_config = log_config or LogConfig()
    handler = build_handler(log_path, log_config)
    if json_format:
        handler.setFormatter(JsonFormatter(JSON_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    handler.addFilter(ServiceContextFilter())

    logger = logging.getLogger(ROOT_LOGGER)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False

    logger.info(
        "Logger initialized. File: %s, MaxSize: %dMB, MaxBackups: %d, MaxAge: %d days",
        log_path or "<stderr>", log_config.max_size, log_config.max_backups, log_config.max_age,
    )
    return logger

def get_logger(name):
    return logging.getLogger(name)
