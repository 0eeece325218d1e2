"""Tests for the X API v2 client and the xAI client."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.parsers.rate_limiter import RateLimiter
from src.parsers.twitter.client import TwitterApiError, TwitterClient, extract_handle
from src.parsers.xai.client import XaiApiError, XaiClient


def _resp(data, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json = lambda: data
    return resp


def _grok_output(text: str) -> dict:
    return {
        "output": [
            {"type": "x_search_call", "content": []},
            {"type": "message", "content": [{"type": "output_text", "text": text}]},
        ]
    }


@pytest.mark.parametrize(
    "value,expected",
    [
        ("PancakeSwap", "PancakeSwap"),
        ("@VenusProtocol", "VenusProtocol"),
        ("https://x.com/BNBCHAIN", "BNBCHAIN"),
        ("https://twitter.com/listadao/", "listadao"),
        ("not a handle!", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_handle(value, expected):
    assert extract_handle(value) == expected


# --- X API v2 ---


@pytest.mark.asyncio
async def test_twitter_activity_reads_user_and_latest_post():
    client = TwitterClient("token", rate_limiter=RateLimiter(6000, burst=10))
    user = {"data": {"id": "42", "username": "PancakeSwap", "public_metrics": {"followers_count": 2_000_000}}}
    posts = {"data": [{"id": "1", "text": "gm", "created_at": "2026-10-15T12:00:00Z"}]}
    with patch.object(client, "_client") as mock_http:
        mock_http.request = AsyncMock(side_effect=[_resp(user), _resp(posts)])
        activity = await client.get_activity("pancakeswap")

    assert activity.account_exists is True
    assert activity.handle == "PancakeSwap"
    assert activity.followers == 2_000_000
    assert activity.last_post_at == datetime(2026, 10, 15, 12, tzinfo=UTC)
    assert activity.last_post == "gm"
    assert activity.source == "twitter_api"
    tweets_params = mock_http.request.call_args_list[1].kwargs["params"]
    assert tweets_params["max_results"] == 5
    assert tweets_params["exclude"] == "retweets,replies"
    await client.close()


@pytest.mark.asyncio
async def test_twitter_missing_user_is_not_an_error():
    client = TwitterClient("token", rate_limiter=RateLimiter(6000, burst=10))
    with patch.object(client, "_client") as mock_http:
        mock_http.request = AsyncMock(return_value=_resp({"errors": [{"title": "Not Found Error"}]}))
        activity = await client.get_activity("ghost")

    assert activity.account_exists is False
    assert mock_http.request.await_count == 1


@pytest.mark.asyncio
async def test_twitter_429_exhausts_retries():
    client = TwitterClient("token", rate_limiter=RateLimiter(6000, burst=10))
    with (
        patch.object(client, "_client") as mock_http,
        patch("src.parsers.twitter.client.asyncio.sleep", new=AsyncMock()),
    ):
        mock_http.request = AsyncMock(return_value=_resp({}, 429))
        with pytest.raises(TwitterApiError):
            await client.get_user("busy")
    assert mock_http.request.await_count == 3


@pytest.mark.asyncio
async def test_twitter_retry_delays_clamp_past_the_table():
    client = TwitterClient("token", rate_limiter=RateLimiter(6000, burst=10))
    sleep = AsyncMock()
    with (
        patch.object(client, "_client") as mock_http,
        patch("src.parsers.twitter.client.MAX_RETRIES", 4),
        patch("src.parsers.twitter.client.asyncio.sleep", new=sleep),
    ):
        mock_http.request = AsyncMock(return_value=_resp({}, 429))
        with pytest.raises(TwitterApiError):
            await client.get_user("busy")
    assert mock_http.request.await_count == 5
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 3.0, 3.0, 3.0]


# --- xAI ---


@pytest.mark.asyncio
async def test_generate_returns_stripped_text():
    client = XaiClient("key")
    completion = {"choices": [{"message": {"role": "assistant", "content": "  Alive and shipping.  "}}]}
    with patch.object(client, "_client") as mock_http:
        mock_http.post = AsyncMock(return_value=_resp(completion))
        text = await client.generate("prompt", model="grok-3-mini-fast", max_tokens=300, temperature=0.4)

    assert text == "Alive and shipping."
    payload = mock_http.post.call_args.kwargs["json"]
    assert payload["model"] == "grok-3-mini-fast"
    assert payload["max_tokens"] == 300
    await client.close()


@pytest.mark.asyncio
async def test_generate_empty_completion_raises():
    client = XaiClient("key")
    with patch.object(client, "_client") as mock_http:
        mock_http.post = AsyncMock(return_value=_resp({"choices": []}))
        with pytest.raises(XaiApiError):
            await client.generate("prompt")


@pytest.mark.asyncio
async def test_batch_activity_parses_json_array():
    client = XaiClient("key")
    entries = [
        {"handle": "PancakeSwap", "lastPostDate": "2026-10-14", "accountExists": True,
         "followers": 2000000, "lastPost": "New farms live", "correctHandle": None},
        {"handle": "@deadproject", "lastPostDate": None, "accountExists": False},
        {"handle": "notrequested", "accountExists": True},
    ]
    text = "Here is the data:\n```json\n" + json.dumps(entries) + "\n```"
    with patch.object(client, "_client") as mock_http:
        mock_http.post = AsyncMock(return_value=_resp(_grok_output(text)))
        found = await client.batch_activity(["PancakeSwap", "deadproject"])

    assert set(found) == {"pancakeswap", "deadproject"}
    assert found["pancakeswap"].last_post_at == datetime(2026, 10, 14, tzinfo=UTC)
    assert found["pancakeswap"].source == "grok_xsearch"
    assert found["deadproject"].account_exists is False
    payload = mock_http.post.call_args.kwargs["json"]
    assert payload["tools"][0]["type"] == "x_search"
    assert payload["tools"][0]["allowed_x_handles"] == ["PancakeSwap", "deadproject"]
    assert payload["input"].startswith("from:PancakeSwap OR from:deadproject")


@pytest.mark.asyncio
async def test_batch_activity_without_json_returns_empty():
    client = XaiClient("key")
    with patch.object(client, "_client") as mock_http:
        mock_http.post = AsyncMock(return_value=_resp(_grok_output("I could not find those accounts.")))
        assert await client.batch_activity(["a", "b"]) == {}
