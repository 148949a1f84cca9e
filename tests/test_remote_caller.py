from __future__ import annotations

import httpx

from ndc_navigator.utils.remote_caller import RemoteCaller, is_retryable
from ndc_navigator.utils.result import Err, ErrorKind, Ok


def make_caller(responses, sleeps=None, max_retries=3):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        outcome = responses[min(len(calls) - 1, len(responses) - 1)]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    client = httpx.Client(base_url="https://rxnav.test/REST", transport=httpx.MockTransport(handler))
    sleeps = sleeps if sleeps is not None else []
    caller = RemoteCaller(client, "RxNorm", max_retries=max_retries, sleep=sleeps.append)
    return caller, calls


def test_503_then_200_makes_two_calls():
    caller, calls = make_caller([httpx.Response(503), httpx.Response(200, json={"ok": True})])

    result = caller.get_json("/rxcui.json", {"name": "lisinopril"})

    assert isinstance(result, Ok)
    assert result.value == {"ok": True}
    assert len(calls) == 2


def test_404_fails_immediately():
    caller, calls = make_caller([httpx.Response(404)])

    result = caller.get_json("/rxcui/0/properties.json")

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.UPSTREAM_SERVICE_ERROR
    assert result.details["status"] == 404
    assert result.details["retryable"] is False
    assert len(calls) == 1


def test_429_is_retried():
    caller, calls = make_caller([httpx.Response(429), httpx.Response(200, json={})])

    assert isinstance(caller.get_json("/x"), Ok)
    assert len(calls) == 2


def test_gives_up_after_max_retries_with_exponential_backoff():
    sleeps = []
    caller, calls = make_caller([httpx.Response(500)], sleeps=sleeps)

    result = caller.get_json("/x")

    assert isinstance(result, Err)
    assert result.details["attempts"] == 3
    assert result.retryable
    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]


def test_timeout_is_retried_and_reported():
    caller, calls = make_caller([httpx.ReadTimeout("slow")] * 3)

    result = caller.get_json("/x")

    assert isinstance(result, Err)
    assert result.details["timeout"] is True
    assert len(calls) == 3


def test_timeout_then_success():
    caller, calls = make_caller([httpx.ConnectTimeout("slow"), httpx.Response(200, json=[1])])

    result = caller.get_json("/x")

    assert result.value == [1]
    assert len(calls) == 2


def test_non_json_body_is_an_error():
    caller, _ = make_caller([httpx.Response(200, text="<html>")])

    result = caller.get_json("/x")

    assert isinstance(result, Err)
    assert result.details["retryable"] is False


def test_is_retryable_classification():
    request = httpx.Request("GET", "https://x")
    for status, expected in [(500, True), (502, True), (429, True), (400, False), (404, False)]:
        error = httpx.HTTPStatusError("x", request=request, response=httpx.Response(status, request=request))
        assert is_retryable(error) is expected
    assert is_retryable(httpx.ConnectError("down"))
    assert not is_retryable(ValueError("nope"))
