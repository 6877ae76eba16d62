"""Logging setup."""

import logging
import os

from contextlib import contextmanager

logging.basicConfig(level=logging.INFO)


def get_logger(name):
    """Return a module logger."""
    logger = logging.getLogger(name)
    return logger


@contextmanager
def suppress_fds():
    """Redirect FD 1 and 2 to /dev/null while the block runs.

    Native model loaders (onnxruntime, insightface) print straight to the
    process descriptors and bypass sys.stdout/sys.stderr.
    """
    devnull = os.open(os.devnull, os.O_RDWR)
    old_stdout = os.dup(1)
    old_stderr = os.dup(2)
    try:
        os.dup2(devnull, 1)
        os.dup2(devnull, 2)
        yield
    finally:
        os.dup2(old_stdout, 1)
        os.dup2(old_stderr, 2)
        os.close(devnull)
        os.close(old_stdout)
        os.close(old_stderr)
