import asyncio
import socket
import threading
from decimal import Decimal
from unittest.mock import patch

import pytest

from exit_sentinel.config import FeedConfig
from exit_sentinel.errors import FeedError
from exit_sentinel.market_feed import MarketDataSource


def entry(symbol, token_id, price, percent=1.5):
    return {
        "token_info": {"symbol": symbol, "token_id": token_id},
        "market_info": {"price_usd": price},
        "percent": percent,
    }


@pytest.fixture
def source():
    return MarketDataSource(FeedConfig(user_agents=["ua-1", "ua-2", "ua-3"]))


def test_headers_rotate_user_agents(source):
    agents = [source.next_headers()["user-agent"] for _ in range(4)]
    assert agents == ["ua-1", "ua-2", "ua-3", "ua-1"]
    assert source.next_headers()["Referer"] == "https://nad.fun/"


def test_rotation_state_is_per_instance():
    first = MarketDataSource(FeedConfig(user_agents=["a", "b"]))
    second = MarketDataSource(FeedConfig(user_agents=["a", "b"]))
    first.next_headers()
    assert second.next_headers()["user-agent"] == "a"


def test_parse_keeps_price_precision(source):
    payload = {"tokens": [entry("TCG", "0xabc", "0.000374572087361472", -3.25)]}
    [obs] = source.parse(payload)
    assert obs.symbol == "TCG"
    assert obs.asset_id == "0xabc"
    assert obs.price == Decimal("0.000374572087361472")
    assert obs.percent_change == Decimal("-3.25")


def test_parse_skips_malformed_entries(source):
    payload = {
        "tokens": [
            entry("GOOD", "0x1", "1.0"),
            {"token_info": {"symbol": "NOPRICE", "token_id": "0x2"}, "market_info": {}},
            entry("BADPRICE", "0x3", "abc"),
            entry("NEG", "0x4", "-1"),
            entry("", "0x5", "1"),
            "garbage",
            entry("NAN", "0x6", "NaN"),
        ]
    }
    assert [o.symbol for o in source.parse(payload)] == ["GOOD"]


@pytest.mark.parametrize("payload", [None, [], {"tokens": None}, {"data": []}, "text"])
def test_parse_rejects_bad_shape(source, payload):
    with pytest.raises(FeedError):
        source.parse(payload)


def test_fetch_tracks_consecutive_errors(source):
    good = {"tokens": [entry("TCG", "0xabc", "0.1")]}
    with patch.object(source, "_request_sync", side_effect=[FeedError("API 503"), {"oops": 1}, good]):
        with pytest.raises(FeedError):
            asyncio.run(source.fetch())
        with pytest.raises(FeedError):
            asyncio.run(source.fetch())
        assert source.health.consecutive_errors == 2
        assert source.health.total_errors == 2

        observations = asyncio.run(source.fetch())

    assert len(observations) == 1
    assert source.health.consecutive_errors == 0
    assert source.health.total_errors == 2
    assert source.health.total_batches == 1


def test_fetch_sends_rotated_headers(source):
    with patch.object(source, "_request_sync", return_value={"tokens": []}) as request:
        asyncio.run(source.fetch())
        asyncio.run(source.fetch())
    sent = [call.args[0]["user-agent"] for call in request.call_args_list]
    assert sent == ["ua-1", "ua-2"]


def serve_once(response):
    """Accept one connection on localhost, send ``response`` (or nothing) and close."""
    listener = socket.create_server(("127.0.0.1", 0))
    port = listener.getsockname()[1]

    def handle():
        with listener:
            conn, _ = listener.accept()
            with conn:
                conn.recv(65536)
                if response is not None:
                    conn.sendall(response)

    thread = threading.Thread(target=handle, daemon=True)
    thread.start()
    return f"http://127.0.0.1:{port}/order/latest_trade", thread


def http_response(body, content_length=None):
    length = len(body) if content_length is None else content_length
    head = f"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\nContent-Length: {length}\r\nConnection: close\r\n\r\n"
    return head.encode("ascii") + body


@pytest.mark.parametrize(
    "response",
    [
        None,
        http_response(b'{"tokens": ["\xff\xfe"]}'),
        http_response(b'{"tokens": []}', content_length=500),
    ],
    ids=["closed-without-response", "invalid-utf8", "truncated-body"],
)
def test_transport_failures_are_counted_as_feed_errors(response):
    url, thread = serve_once(response)
    source = MarketDataSource(FeedConfig(url=url, timeout_sec=5, user_agents=["ua"]))

    with pytest.raises(FeedError):
        asyncio.run(source.fetch())
    thread.join(timeout=5)

    assert source.health.consecutive_errors == 1
    assert source.health.total_errors == 1
    assert source.health.total_batches == 0
