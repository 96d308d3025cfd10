from __future__ import annotations

import httpx
import pytest

from block_harvester.errors import ParseFailure, SourceUnreachable


def test_fetch_latest_returns_normalised_unit(make_source_client, json_response) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return json_response({"block": {"number": "0x64", "timestamp": "0x6553f100", "gasUsed": 5}})

    client, sleeps = make_source_client(handler)
    unit = client.fetch_latest()
    client.close()

    assert unit.sequence_number == 100
    assert unit.timestamp == 0x6553F100
    assert unit.resource_used == 5
    assert len(seen) == 1
    assert str(seen[0].url) == "https://source.test/api/blocks/latest"
    assert sleeps == []


def test_fetch_retries_with_exponential_backoff(make_source_client, json_response) -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ConnectError("refused", request=request)
        if calls["count"] == 2:
            return httpx.Response(503, text="busy")
        return json_response({"number": 9})

    client, sleeps = make_source_client(handler)
    unit = client.fetch_latest()

    assert unit.sequence_number == 9
    assert calls["count"] == 3
    assert sleeps == [2.0, 4.0]


def test_retry_exhaustion_raises_source_unreachable(make_source_client) -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        raise httpx.ReadTimeout("slow", request=request)

    client, sleeps = make_source_client(handler)
    with pytest.raises(SourceUnreachable) as excinfo:
        client.fetch_latest()

    assert calls["count"] == 3
    # backoff before each retry, none after the final attempt
    assert sleeps == [2.0, 4.0]
    assert sum(sleeps) >= 6
    assert isinstance(excinfo.value.__cause__, httpx.ReadTimeout)


def test_non_2xx_responses_are_failures(make_source_client) -> None:
    client, sleeps = make_source_client(lambda request: httpx.Response(404, text="missing"))
    with pytest.raises(SourceUnreachable):
        client.fetch_latest()
    assert len(sleeps) == 2


def test_unparseable_payload_raises_parse_failure(make_source_client, json_response) -> None:
    client, sleeps = make_source_client(lambda request: json_response({"status": "syncing"}))
    with pytest.raises(ParseFailure):
        client.fetch_latest()
    assert sleeps == [2.0, 4.0]


def test_attempt_count_and_backoff_are_configurable(make_source_client) -> None:
    client, sleeps = make_source_client(
        lambda request: httpx.Response(500), max_attempts=4, backoff_base=3.0
    )
    with pytest.raises(SourceUnreachable):
        client.fetch_latest()
    assert sleeps == [3.0, 9.0, 27.0]


def test_check_health(make_source_client, json_response) -> None:
    healthy, _ = make_source_client(lambda request: json_response({"number": 1}))
    assert healthy.check_health() is True

    unhealthy, _ = make_source_client(lambda request: httpx.Response(502))
    assert unhealthy.check_health() is False

    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    unreachable, sleeps = make_source_client(boom)
    assert unreachable.check_health() is False
    assert sleeps == []
