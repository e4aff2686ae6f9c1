"""Tests for the retry executor."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from aportes.core.exceptions import APIClientError, SchemaViolationError, TransientError
from aportes.utils.retry import compute_delay, is_retryable_error, with_retry


@pytest.fixture
def mock_sleep():
    """Patch the backoff sleep so tests run instantly."""
    with patch("aportes.utils.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


@pytest.mark.asyncio
async def test_succeeds_after_transient_failures(mock_sleep):
    operation = AsyncMock(side_effect=[TransientError("busy"), TransientError("busy"), "ok"])

    result = await with_retry(operation, max_retries=3, initial_delay=1.0, backoff_factor=2.0,
                              should_retry=is_retryable_error)

    assert result == "ok"
    assert operation.await_count == 3
    assert [c.args[0] for c in mock_sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_retries(mock_sleep):
    operation = AsyncMock(side_effect=TransientError("still busy"))

    with pytest.raises(TransientError):
        await with_retry(operation, max_retries=2, should_retry=is_retryable_error)

    assert operation.await_count == 3
    assert mock_sleep.await_count == 2


@pytest.mark.asyncio
async def test_non_retryable_error_fails_fast(mock_sleep):
    operation = AsyncMock(side_effect=SchemaViolationError("bad reply"))

    with pytest.raises(SchemaViolationError):
        await with_retry(operation, max_retries=5, should_retry=is_retryable_error)

    assert operation.await_count == 1
    mock_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_delay_is_capped(mock_sleep):
    operation = AsyncMock(side_effect=[TransientError("x")] * 3 + ["done"])

    await with_retry(operation, max_retries=3, initial_delay=4.0, max_delay=5.0, backoff_factor=2.0)

    assert [c.args[0] for c in mock_sleep.await_args_list] == [4.0, 5.0, 5.0]


def test_compute_delay():
    assert compute_delay(0, 1.0, 30.0, 2.0) == 1.0
    assert compute_delay(3, 1.0, 30.0, 2.0) == 8.0
    assert compute_delay(10, 1.0, 30.0, 2.0) == 30.0


def test_compute_delay_with_jitter():
    delay = compute_delay(1, 1.0, 30.0, 2.0, jitter=0.5)
    assert 2.0 <= delay <= 3.0


@pytest.mark.parametrize("error, expected", [
    (TransientError("lock"), True),
    (APIClientError("rate limited", status_code=429, retryable=True), True),
    (APIClientError("bad request", status_code=400), False),
    (httpx.ConnectTimeout("slow"), True),
    (OperationalError("SELECT 1", {}, Exception("server closed the connection")), True),
    (Exception("read ECONNRESET"), True),
    (Exception("deadlock detected"), True),
    (ValueError("bad value"), False),
    (SchemaViolationError("missing field"), False),
])
def test_is_retryable_error(error, expected):
    assert is_retryable_error(error) is expected
