"""Unit tests for the in-process rate limiter."""

import pytest

from vilo.core import dependencies
from vilo.core.dependencies import check_rate_limit
from vilo.core.exceptions import RateLimitedError


def test_window_slides():
    check_rate_limit("quote:a", 2, 60, now=0.0)
    check_rate_limit("quote:a", 2, 60, now=10.0)

    with pytest.raises(RateLimitedError) as exc_info:
        check_rate_limit("quote:a", 2, 60, now=30.0)
    assert exc_info.value.details["retry_after_seconds"] == 31

    check_rate_limit("quote:a", 2, 60, now=60.0)


def test_idle_keys_are_swept(monkeypatch):
    monkeypatch.setattr(dependencies, "_RATE_LIMIT_SWEEP_AT", 3)

    for n in range(3):
        check_rate_limit(f"quote:10.0.0.{n}", 5, 60, now=float(n))
    assert len(dependencies._rate_limit_windows) == 3

    check_rate_limit("quote:10.0.0.9", 5, 60, now=61.5)

    assert set(dependencies._rate_limit_windows) == {"quote:10.0.0.2", "quote:10.0.0.9"}
