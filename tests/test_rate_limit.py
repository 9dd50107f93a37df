"""Tests for request pacing."""
import pytest

from samharvest.fetch.rate_limit import RateLimiter


@pytest.mark.asyncio
async def test_zero_rate_disables_pacing():
    limiter = RateLimiter(0)
    for _ in range(5):
        await limiter.acquire("https://api.sam.gov/x")
    assert limiter.waited_total == 0


@pytest.mark.asyncio
async def test_second_request_waits():
    """Test that back-to-back requests to one host are spaced."""
    limiter = RateLimiter(20)
    await limiter.acquire("https://api.sam.gov/a")
    await limiter.acquire("https://api.sam.gov/b")
    assert limiter.waited_total > 0


@pytest.mark.asyncio
async def test_hosts_paced_independently():
    limiter = RateLimiter(20)
    await limiter.acquire("https://api.sam.gov/a")
    await limiter.acquire("https://other.example/a")
    assert limiter.waited_total == 0
