"""
Helpers for logging upstream failures with enough detail for operators while
keeping credentials out of the log.
"""

import logging
from typing import Optional

from admin_proxy.utils import mask_token


def _safe_str(obj) -> str:
    """
    Convert an object to string without letting a broken ``__str__`` escape.
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _safe_get_exceptions(exception_group) -> list:
    try:
        return list(exception_group.exceptions)
    except Exception:
        return []


def format_exception_message(exception: Optional[BaseException]) -> str:
    """
    Describe an exception as ``Type: message``, following sub-exceptions of
    exception groups and the ``__cause__`` chain (httpx wraps socket errors).

    Args:
        exception: The exception to format

    Returns:
        A single-line description
    """
    if exception is None:
        return "None"

    parts = [f"{type(exception).__name__}: {_safe_str(exception)}"]

    sub_exceptions = (
        _safe_get_exceptions(exception) if hasattr(exception, "exceptions") else []
    )
    if sub_exceptions:
        subs = "; ".join(format_exception_message(sub) for sub in sub_exceptions)
        parts.append(f"(Sub-exceptions: {subs})")

    cause = exception.__cause__
    seen = {id(exception)}
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        parts.append(f"<- {type(cause).__name__}: {_safe_str(cause)}")
        cause = cause.__cause__

    return " ".join(parts)


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
    secret: Optional[str] = None,
) -> None:
    """
    Log an exception with its cause chain and traceback.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[DashboardRelay]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
        secret: Credential to mask if it shows up in the message
    """
    message = mask_token(
        f"{prefix} Exception: {format_exception_message(exception)}", secret
    )
    try:
        logger.log(level, message, exc_info=exception)
    except Exception:
        logger.log(level, f"{prefix} Exception (logging details failed)")
