import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

NOISY_LOGGERS = ("googleapiclient", "google.auth", "urllib3", "stripe")


def configure_logging(level: str = "INFO") -> None:
    """Configure logging the same way for serverless and local runs."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
