import pytest

from downloader_cli.client.polling import PollingTimeoutError, poll_job_status


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _statuses(*names: str):
    responses = iter(
        {"jobId": "j", "status": name, "progress": 100 if name == "completed" else 0}
        for name in names
    )
    return lambda job_id: next(responses)


def test_polls_until_terminal():
    clock = FakeClock()
    seen = []

    final = poll_job_status(
        "j",
        _statuses("queued", "processing", "completed"),
        interval=2.0,
        on_update=seen.append,
        sleep=clock.sleep,
        clock=clock,
    )

    assert final["status"] == "completed"
    assert [status["status"] for status in seen] == ["queued", "processing", "completed"]
    assert clock.sleeps == [2.0, 2.0]


def test_terminal_on_first_fetch_does_not_sleep():
    clock = FakeClock()

    final = poll_job_status(
        "j", _statuses("failed"), sleep=clock.sleep, clock=clock
    )

    assert final["status"] == "failed"
    assert clock.sleeps == []


def test_timeout_raises_with_last_status():
    clock = FakeClock()
    fetch = _statuses(*["processing"] * 10)

    with pytest.raises(PollingTimeoutError) as exc_info:
        poll_job_status(
            "j", fetch, interval=2.0, timeout=5.0, sleep=clock.sleep, clock=clock
        )

    assert exc_info.value.job_id == "j"
    assert exc_info.value.last_status["status"] == "processing"
    assert clock.sleeps == [2.0, 2.0]
