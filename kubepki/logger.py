import logging, sys, time


def get_logger(name="kubepki", level=None):
    """Diagnostics logger for kubepki components; writes to stderr with UTC timestamps."""
    logger = logging.getLogger(name)

    root = logging.getLogger("kubepki")
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        formatter = logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
        formatter.converter = time.gmtime  # Use UTC timestamps
        handler.setFormatter(formatter)
        root.addHandler(handler)
        root.setLevel(logging.INFO)

    if level is not None:
        root.setLevel(level)
    return logger
