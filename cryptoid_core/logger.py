import logging, json, sys, time, os


class JsonFormatter(logging.Formatter):
    """One JSON object per line; fields passed via ``extra={"fields": {...}}`` are merged in."""

    converter = time.gmtime

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%SZ")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        entry.update(getattr(record, "fields", None) or {})
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def get_logger(name="cryptoid", level=None, to_file=None):
    """Structured logger shared by the CryptoID store modules.

    ``level`` falls back to ``CRYPTOID_LOG_LEVEL`` (default INFO); ``to_file``
    falls back to ``CRYPTOID_LOG_FILE``.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level or os.getenv("CRYPTOID_LOG_LEVEL", "INFO").upper())
    to_file = to_file or os.getenv("CRYPTOID_LOG_FILE")

    if not logger.handlers:
        formatter = JsonFormatter()
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if to_file:
            os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
            file_handler = logging.FileHandler(to_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
