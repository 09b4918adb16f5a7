import unittest
from types import SimpleNamespace
from unittest.mock import patch

from voicedoc.errors import UpstreamError
from voicedoc.llm import LLMClient, extract_chat_content


class _FakeCompletions:
    def __init__(self, owner):
        self._owner = owner

    async def create(self, **kwargs):
        model = kwargs.get("model")
        _FakeAsyncOpenAI.calls.append(model)
        behaviors = _FakeAsyncOpenAI.behavior_by_model.get(model, [])
        if behaviors:
            behavior = behaviors.pop(0)
        else:
            behavior = "ok"
        if isinstance(behavior, Exception):
            raise behavior
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=str(behavior)))]
        )


class _FakeChat:
    def __init__(self, owner):
        self.completions = _FakeCompletions(owner)


class _FakeAsyncOpenAI:
    behavior_by_model = {}
    calls = []
    last_init = {}

    def __init__(self, api_key, base_url, default_headers=None, **kwargs):
        self.api_key = api_key
        self.base_url = base_url
        self.default_headers = default_headers or {}
        _FakeAsyncOpenAI.last_init = dict(kwargs)
        self.chat = _FakeChat(self)


class TestLLMFallback(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        _FakeAsyncOpenAI.calls = []
        _FakeAsyncOpenAI.behavior_by_model = {}
        _FakeAsyncOpenAI.last_init = {}

    async def test_chat_create_falls_back_to_next_model(self):
        with patch("voicedoc.llm.AsyncOpenAI", _FakeAsyncOpenAI):
            _FakeAsyncOpenAI.behavior_by_model = {
                "model-a": [RuntimeError("declined")],
                "model-b": ["fallback-ok"],
            }
            client = LLMClient(api_key="k1", models=["model-a", "model-b"])
            resp, model = await client.chat_create(messages=[{"role": "user", "content": "ping"}])
            self.assertEqual(resp.choices[0].message.content, "fallback-ok")
            self.assertEqual(model, "model-b")
            self.assertEqual(_FakeAsyncOpenAI.calls, ["model-a", "model-b"])

    async def test_each_request_sweeps_from_first_model(self):
        with patch("voicedoc.llm.AsyncOpenAI", _FakeAsyncOpenAI):
            _FakeAsyncOpenAI.behavior_by_model = {"model-a": [RuntimeError("declined")]}
            client = LLMClient(api_key="k1", models=["model-a", "model-b"])
            await client.complete("first")
            await client.complete("second")
            self.assertEqual(_FakeAsyncOpenAI.calls, ["model-a", "model-b", "model-a"])

    async def test_all_models_failing_raises_last_error_message(self):
        with patch("voicedoc.llm.AsyncOpenAI", _FakeAsyncOpenAI):
            _FakeAsyncOpenAI.behavior_by_model = {
                "model-a": [RuntimeError("quota exceeded")],
                "model-b": [RuntimeError("model not found")],
            }
            client = LLMClient(api_key="k1", models=["model-a", "model-b"])
            with self.assertRaises(UpstreamError) as ctx:
                await client.complete("ping")
            self.assertEqual(ctx.exception.message, "model not found")
            self.assertEqual(_FakeAsyncOpenAI.calls, ["model-a", "model-b"])

    async def test_empty_content_counts_as_failure(self):
        with patch("voicedoc.llm.AsyncOpenAI", _FakeAsyncOpenAI):
            _FakeAsyncOpenAI.behavior_by_model = {"model-a": ["   "], "model-b": ["real text"]}
            client = LLMClient(api_key="k1", models=["model-a", "model-b"])
            content, model = await client.complete("ping")
            self.assertEqual(content, "real text")
            self.assertEqual(model, "model-b")

    def test_client_is_built_without_sdk_retries_and_with_timeout(self):
        with patch("voicedoc.llm.AsyncOpenAI", _FakeAsyncOpenAI):
            client = LLMClient(api_key="k1", models=["a", "a", " ", "b"], timeout_s=12.5)
            self.assertEqual(client.models, ["a", "b"])
            self.assertEqual(_FakeAsyncOpenAI.last_init.get("max_retries"), 0)
            self.assertEqual(_FakeAsyncOpenAI.last_init.get("timeout"), 12.5)

    def test_missing_api_key_or_models_is_rejected(self):
        with patch("voicedoc.llm.AsyncOpenAI", _FakeAsyncOpenAI):
            with self.assertRaises(ValueError):
                LLMClient(api_key="", models=["a"])
            with self.assertRaises(ValueError):
                LLMClient(api_key="k", models=[])

    def test_extract_chat_content_handles_dicts_and_parts(self):
        resp = {"choices": [{"message": {"content": [{"text": "line one"}, {"text": "line two"}]}}]}
        self.assertEqual(extract_chat_content(resp), "line one\nline two")
        self.assertEqual(extract_chat_content(SimpleNamespace(choices=None)), "")


if __name__ == "__main__":
    unittest.main()
