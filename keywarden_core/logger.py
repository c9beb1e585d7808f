import logging, json, sys, time, os

ROOT_LOGGER = "keywarden"


class JsonFormatter(logging.Formatter):
    """One JSON object per line, UTC timestamps."""

    converter = time.gmtime

    def format(self, record):
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def get_logger(name=ROOT_LOGGER, level=None, to_file=None):
    """Unified structured logger for all keywarden components.

    Handlers live on the ``keywarden`` root logger only; named loggers such as
    ``keywarden.store`` propagate to it.
    """
    root = logging.getLogger(ROOT_LOGGER)

    if not root.handlers:
        root.setLevel(level or os.getenv("KEYWARDEN_LOG_LEVEL", "INFO").upper())
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)
    elif level:
        root.setLevel(level)

    if to_file:
        add_file_handler(to_file)

    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def add_file_handler(to_file):
    root = logging.getLogger(ROOT_LOGGER)
    path = os.path.abspath(to_file)
    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and h.baseFilename == path:
            return h

    # Ensure the directory exists before writing
    os.makedirs(os.path.dirname(path), exist_ok=True)
    file_handler = logging.FileHandler(path)
    file_handler.setFormatter(JsonFormatter())
    root.addHandler(file_handler)
    return file_handler


def configure_for_cli(level="INFO", to_file=None, console_level=logging.WARNING):
    """Full records go to the log file, the terminal only sees warnings and up."""
    root = logging.getLogger(ROOT_LOGGER)
    get_logger(level=level)
    for h in root.handlers:
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
            h.setLevel(console_level)
    if to_file:
        add_file_handler(to_file)
    return root
