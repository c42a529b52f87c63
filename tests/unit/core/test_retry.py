import errno

import pytest

from hypersock.core.errors import ConnectionIOError, ErrorSeverity, ReadTimeoutError
from hypersock.core.retry import RetryDecision, RetryPolicy, retry_with_backoff


class TestRetryPolicy:
    def test_transient_errno_retries(self):
        policy = RetryPolicy()

        assert policy.should_retry(OSError(errno.EAGAIN, "again")) == RetryDecision.RETRY

    def test_refused_aborts(self):
        policy = RetryPolicy()
        error = ConnectionRefusedError(errno.ECONNREFUSED, "refused")

        assert policy.should_retry(error) == RetryDecision.ABORT

    def test_transient_socket_error_retries(self):
        policy = RetryPolicy()

        assert policy.should_retry(ReadTimeoutError(1.0)) == RetryDecision.RETRY
        assert policy.should_retry(ConnectionIOError("reset")) == RetryDecision.ABORT
        assert policy.should_retry(
            ConnectionIOError("busy", severity=ErrorSeverity.TRANSIENT)
        ) == RetryDecision.RETRY

    def test_delay_is_capped(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=3.0, jitter=0)

        assert policy.get_delay(0) == 1.0
        assert policy.get_delay(1) == 2.0
        assert policy.get_delay(5) == 3.0

    def test_from_config(self):
        policy = RetryPolicy.from_config({
            'max_attempts': 5,
            'base_delay': 0.5,
            'max_delay': 4.0,
        })

        assert policy.max_attempts == 5
        assert policy.base_delay == 0.5
        assert policy.max_delay == 4.0


class TestRetryWithBackoff:
    @pytest.mark.asyncio
    async def test_retries_transient_errors_until_success(self):
        attempts = []

        async def flaky():
            attempts.append(len(attempts))
            if len(attempts) < 3:
                raise OSError(errno.EAGAIN, "again")

            return "connected"

        result = await retry_with_backoff(
            flaky,
            policy=RetryPolicy(max_attempts=3, base_delay=0, jitter=0),
        )

        assert result == "connected"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_raises_after_last_attempt(self):
        attempts = []

        async def failing():
            attempts.append(1)
            raise OSError(errno.EAGAIN, "again")

        with pytest.raises(OSError):
            await retry_with_backoff(
                failing,
                policy=RetryPolicy(max_attempts=2, base_delay=0, jitter=0),
            )

        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_non_retryable_error_raises_immediately(self):
        attempts = []

        async def refused():
            attempts.append(1)
            raise ConnectionRefusedError(errno.ECONNREFUSED, "refused")

        with pytest.raises(ConnectionRefusedError):
            await retry_with_backoff(refused, policy=RetryPolicy(base_delay=0))

        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_on_retry_sees_each_retry(self):
        retries = []

        async def flaky():
            if len(retries) < 2:
                raise OSError(errno.EINTR, "interrupted")

            return True

        async def on_retry(attempt: int, error: Exception, delay: float):
            retries.append(attempt)

        await retry_with_backoff(
            flaky,
            policy=RetryPolicy(max_attempts=3, base_delay=0, jitter=0),
            on_retry=on_retry,
        )

        assert retries == [1, 2]
