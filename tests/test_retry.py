import pytest

from bulk_email_check import (
    BackendError,
    ExhaustedRetries,
    RequestTimeout,
    TransportFailure,
    wait_for_backend,
    with_retry,
)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def flaky(failures, value="ok", exc_factory=lambda n: TransportFailure(f"refused #{n}")):
    calls = {"n": 0}

    async def operation():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise exc_factory(calls["n"])
        return value

    operation.calls = calls
    return operation


@pytest.mark.asyncio
async def test_first_attempt_success_does_not_sleep():
    sleep = RecordingSleep()
    value, attempts = await with_retry(flaky(0), attempts=3, backoff_base=1.0, sleep=sleep)
    assert (value, attempts) == ("ok", 1)
    assert sleep.delays == []


@pytest.mark.parametrize("failures", [1, 2, 4])
@pytest.mark.asyncio
async def test_succeeds_after_k_failures(failures):
    sleep = RecordingSleep()
    value, attempts = await with_retry(flaky(failures), attempts=5, backoff_base=0.5, sleep=sleep)
    assert value == "ok"
    assert attempts == failures + 1
    assert sleep.delays == [0.5 * k for k in range(1, failures + 1)]


@pytest.mark.asyncio
async def test_always_failing_operation_exhausts_with_last_error():
    sleep = RecordingSleep()
    operation = flaky(100)
    with pytest.raises(ExhaustedRetries) as excinfo:
        await with_retry(operation, attempts=4, backoff_base=1.0, sleep=sleep)

    err = excinfo.value
    assert err.attempts == 4
    assert operation.calls["n"] == 4
    assert str(err.exc) == "refused #4"
    assert err.history == ["exception:TransportFailure"] * 4
    # linear backoff, nothing after the final attempt: 1 + 2 + 3
    assert sleep.delays == [1.0, 2.0, 3.0]
    assert sum(sleep.delays) == 1.0 * (1 + 2 + 3)


@pytest.mark.asyncio
async def test_single_attempt_never_sleeps():
    sleep = RecordingSleep()
    with pytest.raises(ExhaustedRetries) as excinfo:
        await with_retry(flaky(1), attempts=1, backoff_base=5.0, sleep=sleep)
    assert excinfo.value.attempts == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_client_errors_are_retried_too():
    sleep = RecordingSleep()
    errors = {1: BackendError(404, "nope"), 2: RequestTimeout("slow")}
    operation = flaky(2, exc_factory=lambda n: errors[n])
    value, attempts = await with_retry(operation, attempts=3, backoff_base=0, sleep=sleep)
    assert (value, attempts) == ("ok", 3)


class FakeHealthClient:
    def __init__(self, failures):
        self.failures = failures
        self.probes = 0

    async def check_health(self, timeout):
        self.probes += 1
        if self.probes <= self.failures:
            raise TransportFailure("connection refused")


@pytest.mark.asyncio
async def test_gate_returns_true_after_exactly_p_probes():
    client = FakeHealthClient(failures=2)
    sleep = RecordingSleep()
    assert await wait_for_backend(client, probes=5, interval=0.25, probe_timeout=1, sleep=sleep) is True
    assert client.probes == 3
    assert sleep.delays == [0.25, 0.25]


@pytest.mark.asyncio
async def test_gate_returns_false_when_budget_exhausted():
    client = FakeHealthClient(failures=10)
    sleep = RecordingSleep()
    assert await wait_for_backend(client, probes=3, interval=1.0, probe_timeout=1, sleep=sleep) is False
    assert client.probes == 3
    assert sleep.delays == [1.0, 1.0]
