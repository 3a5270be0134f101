import logging
import sys


def setup_logging(debug: bool = False) -> None:
    """
    Route engine logs to stderr as "[HH:MM:SS] logger: message".

    Only installs a handler when the root logger has none, so embedding
    applications keep their own configuration.
    """
    root_logger = logging.getLogger()
    level = logging.DEBUG if debug else logging.WARNING
    root_logger.setLevel(level)

    if not root_logger.hasHandlers():
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(
            "[%(asctime)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))
        root_logger.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
