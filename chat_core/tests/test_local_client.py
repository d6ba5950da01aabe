import json

import httpx
import pytest

from chat_core.domain.exceptions import TransportAbort, UpstreamError
from chat_core.domain.models import ChatMessage, ModelConfig, StreamChunk
from chat_core.providers.local_client import LocalClient, is_ollama_url

from conftest import collect, interrupted_response, run, streaming_response

MESSAGES = [
    ChatMessage(role="system", content="sys"),
    ChatMessage(role="user", content="first"),
    ChatMessage(role="assistant", content="ok"),
    ChatMessage(role="user", content="second"),
]


def make_client(base_url="http://localhost:11434", **overrides):
    return LocalClient(ModelConfig(provider="local", model="llama3", **overrides), base_url=base_url)


def test_ollama_url_detection():
    assert is_ollama_url("http://localhost:11434")
    assert is_ollama_url("http://127.0.0.1:11434/")
    assert is_ollama_url("http://ollama.internal")
    assert not is_ollama_url("http://localhost:1234")


def test_ollama_stream_done_flag(mock_upstream):
    lines = ['{"response":"A"}\n', '{"response":"B"}\n', '{"response":"","done":true}\n']
    requests = mock_upstream(lambda request: streaming_response(lines))
    chunks = run(collect(make_client().stream_chat(MESSAGES)))
    assert chunks == [StreamChunk(content="A"), StreamChunk(content="B"), StreamChunk(done=True)]
    assert str(requests[0].url) == "http://localhost:11434/api/generate"


def test_ollama_payload_uses_last_user_message():
    body = make_client(max_tokens=64).build_payload(MESSAGES, stream=True)
    assert body == {
        "model": "llama3",
        "prompt": "second",
        "system": "sys",
        "stream": True,
        "options": {"temperature": 0.7, "num_predict": 64},
    }


def test_ollama_payload_without_max_tokens_leaves_server_default():
    body = make_client().build_payload(MESSAGES, stream=False)
    assert body["options"] == {"temperature": 0.7}


def test_ollama_stream_split_lines_and_noise(mock_upstream):
    body = '{"response":"A"}\ngarbage\n{"response":"B"}\n{"done":true}\n'
    parts = [body[:7], body[7:25], body[25:]]
    mock_upstream(lambda request: streaming_response(parts))
    chunks = run(collect(make_client().stream_chat(MESSAGES)))
    assert [c.content for c in chunks if c.content] == ["A", "B"]
    assert chunks[-1].done


def test_ollama_stream_error_frame(mock_upstream):
    lines = ['{"response":"A"}\n', '{"error":"model not found"}\n', '{"response":"B"}\n']
    mock_upstream(lambda request: streaming_response(lines))
    chunks = run(collect(make_client().stream_chat(MESSAGES)))
    assert chunks == [StreamChunk(content="A"), StreamChunk(error="model not found")]


def test_openai_compatible_local_server(mock_upstream):
    lines = [
        'data: {"choices":[{"delta":{"content":"x"}}]}\n\n',
        "data: [DONE]\n\n",
    ]
    requests = mock_upstream(lambda request: streaming_response(lines))
    chunks = run(collect(make_client(base_url="http://localhost:1234").stream_chat(MESSAGES)))
    assert chunks == [StreamChunk(content="x"), StreamChunk(done=True)]
    req = requests[0]
    assert str(req.url) == "http://localhost:1234/v1/chat/completions"
    body = json.loads(req.content)
    assert body["messages"][0] == {"role": "system", "content": "sys"}
    assert len(body["messages"]) == 4
    assert "max_tokens" not in body
    assert "authorization" not in req.headers


def test_ollama_chat_matches_stream_text(mock_upstream):
    def handler(request):
        if json.loads(request.content)["stream"]:
            return streaming_response(['{"response":"A"}\n', '{"response":"B","done":true}\n'])
        return httpx.Response(200, json={"response": "AB", "done": True, "prompt_eval_count": 5, "eval_count": 2})

    mock_upstream(handler)
    client = make_client()
    result = run(client.chat(MESSAGES))
    streamed = run(collect(client.stream_chat(MESSAGES)))
    assert result.content == "".join(c.content for c in streamed) == "AB"
    assert result.usage.total_tokens == 7


@pytest.mark.parametrize("base_url", ["http://localhost:11434", "http://localhost:1234"])
def test_local_stream_redirect_is_upstream_error(mock_upstream, base_url):
    mock_upstream(lambda request: httpx.Response(302, text="moved"))
    with pytest.raises(UpstreamError) as exc:
        run(collect(make_client(base_url=base_url).stream_chat(MESSAGES)))
    assert exc.value.upstream_status == 302


def test_ollama_stream_reset_after_deltas_is_transport_abort(mock_upstream):
    mock_upstream(lambda request: interrupted_response(['{"response":"A"}\n']))
    received = []

    async def consume():
        async for chunk in make_client().stream_chat(MESSAGES):
            received.append(chunk)

    with pytest.raises(TransportAbort):
        run(consume())
    assert received == [StreamChunk(content="A")]
