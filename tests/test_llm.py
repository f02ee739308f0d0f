"""Tests for the Ollama text generator with the HTTP layer patched out."""

import pytest
import requests

from deepwork import llm
from deepwork.errors import GenerationUnavailable
from deepwork.llm import OllamaTextGenerator


class FakeResponse:
    def __init__(self, payload=None, status=200):
        self.payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error", response=self)

    def json(self):
        if self.payload is None:
            raise ValueError("no JSON")
        return self.payload


def chat(text):
    return FakeResponse({"message": {"role": "assistant", "content": text}})


class FakeClock:
    """Replaces the time module inside deepwork.llm; sleeping advances it."""

    def __init__(self, now=1000.0):
        self.now = now
        self.sleeps = []

    def time(self):
        return self.now

    monotonic = time

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(llm, "time", fake)
    return fake


@pytest.fixture
def sleeps(clock):
    return clock.sleeps


def install_responses(monkeypatch, *outcomes):
    """Patch requests.post to return or raise the outcomes in order."""
    calls = []
    queue = list(outcomes)

    def fake_post(url, json=None, timeout=None):
        calls.append({"url": url, "json": json, "timeout": timeout})
        outcome = queue.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(llm.requests, "post", fake_post)
    return calls


class TestGenerateText:
    def test_sends_chat_request(self, monkeypatch, sleeps):
        calls = install_responses(monkeypatch, chat("  Great focus today.  "))
        generator = OllamaTextGenerator(model="llama3.2", ollama_host="http://ollama:11434/",
                                        timeout=12, temperature=0.5, max_tokens=200)

        assert generator.generate_text("How was my day?") == "Great focus today."

        request = calls[0]
        assert request["url"] == "http://ollama:11434/api/chat"
        assert request["timeout"] == 12
        assert request["json"]["model"] == "llama3.2"
        assert request["json"]["stream"] is False
        assert request["json"]["messages"][0]["role"] == "system"
        assert request["json"]["messages"][1] == {"role": "user", "content": "How was my day?"}
        assert request["json"]["options"] == {"temperature": 0.5, "num_predict": 200}
        assert generator.get_stats()["total_requests"] == 1
        assert sleeps == []

    def test_retries_transient_errors_with_backoff(self, monkeypatch, sleeps):
        calls = install_responses(
            monkeypatch,
            requests.exceptions.ConnectionError("refused"),
            FakeResponse(status=503),
            chat("Recovered"),
        )
        generator = OllamaTextGenerator(max_retries=3, retry_delay=0.5, min_request_interval=0)

        assert generator.generate_text("prompt") == "Recovered"
        assert len(calls) == 3
        assert sleeps == [0.5, 1.0]

    def test_gives_up_after_max_retries(self, monkeypatch, sleeps):
        install_responses(monkeypatch, *[requests.exceptions.Timeout("slow")] * 3)
        generator = OllamaTextGenerator(max_retries=2, retry_delay=1.0)

        with pytest.raises(GenerationUnavailable, match="timed out"):
            generator.generate_text("prompt")
        assert sleeps == [1.0, 2.0]

    def test_client_error_not_retried(self, monkeypatch, sleeps):
        calls = install_responses(monkeypatch, FakeResponse(status=404))
        with pytest.raises(GenerationUnavailable):
            OllamaTextGenerator().generate_text("prompt")
        assert len(calls) == 1
        assert sleeps == []

    def test_rate_limit_is_retried(self, monkeypatch, sleeps):
        install_responses(monkeypatch, FakeResponse(status=429), chat("ok"))
        assert OllamaTextGenerator(retry_delay=2.0).generate_text("prompt") == "ok"
        assert sleeps == [2.0]

    @pytest.mark.parametrize("response", [
        chat("   "),
        FakeResponse({"unexpected": True}),
        FakeResponse(None),
    ])
    def test_unusable_response_raises(self, monkeypatch, sleeps, response):
        install_responses(monkeypatch, response)
        with pytest.raises(GenerationUnavailable):
            OllamaTextGenerator().generate_text("prompt")


class TestAvailability:
    def test_model_listed(self, monkeypatch):
        monkeypatch.setattr(llm.requests, "get", lambda url, timeout=None: FakeResponse(
            {"models": [{"name": "gemma3:12b-it-qat"}, {"name": "llava:7b"}]}
        ))
        assert OllamaTextGenerator(model="gemma3:12b-it-qat").is_available()

    def test_model_missing(self, monkeypatch):
        monkeypatch.setattr(llm.requests, "get", lambda url, timeout=None: FakeResponse(
            {"models": [{"name": "llava:7b"}]}
        ))
        assert not OllamaTextGenerator(model="gemma3:12b-it-qat").is_available()

    def test_server_down(self, monkeypatch):
        def refuse(url, timeout=None):
            raise requests.exceptions.ConnectionError("refused")

        monkeypatch.setattr(llm.requests, "get", refuse)
        assert not OllamaTextGenerator().is_available()


class TestRequestPacing:
    def test_back_to_back_requests_are_spaced(self, monkeypatch, clock):
        install_responses(monkeypatch, chat("one"), chat("two"))
        generator = OllamaTextGenerator(min_request_interval=1.0)

        generator.generate_text("first")
        clock.now += 0.25
        generator.generate_text("second")

        assert clock.sleeps == [0.75]
        assert generator.get_stats()["last_request_time"] == 1001.0

    def test_no_wait_after_interval_elapsed(self, monkeypatch, clock):
        install_responses(monkeypatch, chat("one"), chat("two"))
        generator = OllamaTextGenerator(min_request_interval=1.0)

        generator.generate_text("first")
        clock.now += 5
        generator.generate_text("second")

        assert clock.sleeps == []


class TestDeadline:
    """A deadline bounds the whole call, retries included."""

    def test_retries_stop_at_deadline(self, monkeypatch, clock):
        timeouts = []

        def slow_post(url, json=None, timeout=None):
            timeouts.append(timeout)
            clock.now += timeout
            raise requests.exceptions.Timeout("read timed out")

        monkeypatch.setattr(llm.requests, "post", slow_post)
        generator = OllamaTextGenerator(timeout=15, max_retries=5, retry_delay=1.0,
                                        deadline=20, min_request_interval=0)

        with pytest.raises(GenerationUnavailable, match="deadline"):
            generator.generate_text("prompt")

        assert timeouts == [15, 4]
        assert clock.sleeps == [1.0]
        assert clock.now <= 1000 + 20

    def test_no_deadline_keeps_full_request_timeout(self, monkeypatch, clock):
        calls = install_responses(monkeypatch, chat("done"))
        OllamaTextGenerator(timeout=15).generate_text("prompt")
        assert calls[0]["timeout"] == 15
