from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.ai import AIClient, AIResponseError, GenerationConfig, extract_json_array


def _openai_stub(content):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    )
    return client


def test_extract_json_array_finds_array_in_prose():
    text = 'Sure! Here you go:\n[{"id": "p1", "score": 0.9}]\nEnjoy.'
    assert extract_json_array(text) == [{"id": "p1", "score": 0.9}]


@pytest.mark.parametrize("text", ["", "no json here", '{"id": "p1"}', "[{broken json}]"])
def test_extract_json_array_rejects_bad_output(text):
    with pytest.raises(AIResponseError):
        extract_json_array(text)


def test_generation_config_cache_key_depends_on_every_field():
    base = GenerationConfig(model="m", temperature=0.7, max_tokens=100)
    assert base.cache_key() == GenerationConfig(model="m", temperature=0.7, max_tokens=100).cache_key()
    assert base.cache_key() != GenerationConfig(model="m", temperature=0.2, max_tokens=100).cache_key()
    assert base.cache_key() != GenerationConfig(model="other", temperature=0.7, max_tokens=100).cache_key()


def test_model_handles_are_cached_per_config():
    ai = AIClient(client=_openai_stub("[]"), cache_size=4)
    first = ai.get_model("m1")
    assert ai.get_model("m1") is first
    assert ai.get_model("m2") is not first
    assert ai.cached_models == 2


def test_model_cache_is_bounded_lru():
    ai = AIClient(client=_openai_stub("[]"), cache_size=2)
    m1 = ai.get_model("m1")
    ai.get_model("m2")
    ai.get_model("m1")  # m2 becomes least recently used
    ai.get_model("m3")
    assert ai.cached_models == 2
    assert ai.get_model("m1") is m1


def test_model_caches_are_isolated_between_clients():
    a = AIClient(client=_openai_stub("[]"))
    b = AIClient(client=_openai_stub("[]"))
    a.get_model("m1")
    assert b.cached_models == 0


@pytest.mark.asyncio
async def test_complete_sends_single_user_prompt():
    stub = _openai_stub('[{"id": "x"}]')
    ai = AIClient(client=stub)

    text = await ai.complete("hello", model="custom-model")

    assert text == '[{"id": "x"}]'
    kwargs = stub.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "custom-model"
    assert kwargs["messages"] == [{"role": "user", "content": "hello"}]
