"""Tests for the serialized generation client."""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import replace

import httpx
import pytest

from src.mumbai_aqi.config import PipelineConfig
from src.mumbai_aqi.errors import ServiceUnavailable
from src.mumbai_aqi.llm_client import SerializedGenerationClient


def _completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _submit_all(handler, prompts, api_key="sk-test", config=None):
    async def _go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            gen = SerializedGenerationClient(
                client,
                config or PipelineConfig(generation_pause_seconds=0),
                api_key=api_key,
            )
            return await asyncio.gather(*(gen.submit(p) for p in prompts), return_exceptions=True)

    return asyncio.run(_go())


class TestCredentials:
    @pytest.mark.parametrize("key", ["", "YOUR_OPENAI_API_KEY_HERE"])
    def test_missing_or_placeholder_key(self, key):
        """No call is made without a real credential."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=_completion("[]"))

        [result] = _submit_all(handler, ["p"], api_key=key)

        assert isinstance(result, ServiceUnavailable)
        assert calls == []


class TestCall:
    def test_request_shape_and_content(self):
        """Body carries model, temperature, system + user messages; content is returned."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            captured["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=_completion('[{"title": "x"}]'))

        [result] = _submit_all(handler, ["zone prompt"])

        assert result == '[{"title": "x"}]'
        body = captured["body"]
        assert body["model"] == "gpt-4.1-mini"
        assert body["temperature"] == 0.7
        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert body["messages"][1]["content"] == "zone prompt"
        assert "JSON" in body["messages"][0]["content"]
        assert captured["auth"] == "Bearer sk-test"

    def test_http_error(self):
        def handler(request):
            return httpx.Response(429, json={"error": {"message": "rate limited"}})

        [result] = _submit_all(handler, ["p"])
        assert isinstance(result, ServiceUnavailable)

    def test_transport_error(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        [result] = _submit_all(handler, ["p"])
        assert isinstance(result, ServiceUnavailable)

    @pytest.mark.parametrize(
        "payload",
        [{"choices": []}, _completion(""), _completion(None), {}, {"choices": 5}, {"choices": [{"message": "hi"}]}],
    )
    def test_empty_payload(self, payload):
        def handler(request):
            return httpx.Response(200, json=payload)

        [result] = _submit_all(handler, ["p"])
        assert isinstance(result, ServiceUnavailable)


class TestSerialization:
    def test_one_request_in_flight(self):
        """Concurrent submitters are served one at a time, in order."""
        state = {"in_flight": 0, "max": 0, "order": []}

        async def handler(request: httpx.Request) -> httpx.Response:
            state["in_flight"] += 1
            state["max"] = max(state["max"], state["in_flight"])
            prompt = json.loads(request.content)["messages"][1]["content"]
            state["order"].append(prompt)
            await asyncio.sleep(0.01)
            state["in_flight"] -= 1
            return httpx.Response(200, json=_completion(f"reply to {prompt}"))

        prompts = [f"p{i}" for i in range(4)]
        results = _submit_all(handler, prompts)

        assert results == [f"reply to {p}" for p in prompts]
        assert state["max"] == 1
        assert state["order"] == prompts

    def test_pause_between_requests(self):
        """The next request waits out the configured pause."""
        starts = []

        def handler(request):
            starts.append(time.monotonic())
            return httpx.Response(200, json=_completion("ok"))

        config = replace(PipelineConfig(), generation_pause_seconds=0.05)
        _submit_all(handler, ["a", "b"], config=config)

        assert len(starts) == 2
        assert starts[1] - starts[0] >= 0.04

    def test_failure_does_not_block_queue(self):
        """An error for one caller still releases the next."""
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(500)
            return httpx.Response(200, json=_completion("ok"))

        results = _submit_all(handler, ["a", "b"])

        assert isinstance(results[0], ServiceUnavailable)
        assert results[1] == "ok"
