import logging

import httpx
import pytest

from admin_proxy.utils import mask_token, token_fingerprint
from admin_proxy.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)


class TestFormatExceptionMessage:
    def test_plain_exception(self):
        assert format_exception_message(ValueError("bad")) == "ValueError: bad"

    def test_none(self):
        assert format_exception_message(None) == "None"

    def test_cause_chain(self):
        try:
            try:
                raise OSError("Connection refused")
            except OSError as inner:
                raise httpx.ConnectError("All connection attempts failed") from inner
        except httpx.ConnectError as e:
            message = format_exception_message(e)

        assert message.startswith("ConnectError: All connection attempts failed")
        assert "<- OSError: Connection refused" in message

    def test_exception_group(self):
        group = ExceptionGroup(
            "unhandled errors in a TaskGroup", [httpx.ReadTimeout("timed out")]
        )

        message = format_exception_message(group)

        assert "Sub-exceptions: ReadTimeout: timed out" in message

    def test_broken_str(self):
        class Broken(Exception):
            def __str__(self):
                raise RuntimeError("no")

        assert format_exception_message(Broken()).startswith("Broken: ")


class TestLogExceptionWithDetails:
    def test_logs_with_prefix_and_traceback(self, caplog):
        logger = logging.getLogger("test.exception_logging")
        error = httpx.ConnectError("refused")

        with caplog.at_level(logging.ERROR, logger="test.exception_logging"):
            log_exception_with_details(logger, "[DashboardRelay]", error)

        assert len(caplog.records) == 1
        record = caplog.records[0]
        assert record.getMessage() == "[DashboardRelay] Exception: ConnectError: refused"
        assert record.exc_info is not None

    def test_masks_secret(self, caplog):
        logger = logging.getLogger("test.exception_logging")
        error = RuntimeError("sent Bearer abcdefgh12345")

        with caplog.at_level(logging.WARNING, logger="test.exception_logging"):
            log_exception_with_details(
                logger, "[X]", error, level=logging.WARNING, secret="abcdefgh12345"
            )

        assert "abcdefgh12345" not in caplog.records[0].getMessage()
        assert "abcd****" in caplog.records[0].getMessage()


@pytest.mark.parametrize(
    "text, token, expected",
    [
        ("Bearer secret-token", "secret-token", "Bearer secr****"),
        ("nothing to hide", None, "nothing to hide"),
        ("nothing to hide", "", "nothing to hide"),
        ("Bearer abcd", "abcd", "Bearer ****"),
        ("Bearer abcdefgh", "abcdefgh", "Bearer ****"),
        ("token=abc123xyz", "abc123xyz", "token=abc1****"),
    ],
)
def test_mask_token(text, token, expected):
    assert mask_token(text, token) == expected


def test_token_fingerprint_does_not_contain_token():
    fingerprint = token_fingerprint("glsa_very_secret_value")
    assert "glsa_very_secret_value" not in fingerprint
    assert fingerprint.startswith("len=22 sha256=")
    assert token_fingerprint(None) == "<empty>"
