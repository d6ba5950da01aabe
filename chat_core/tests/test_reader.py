import json

import httpx

from chat_core.client.reader import ChatStreamClient, ChatStreamReader, read_chat_stream
from chat_core.domain.models import ChatMessage, ChatTurnRequest

from conftest import aiter_chunks, interrupted_response, run, streaming_response

STREAM = 'data: {"content": "Hel"}\n\ndata: {"content": "lo"}\n\ndata: [DONE]\n\n'


def make_request():
    return ChatTurnRequest(
        conversation_id="c1",
        project_id="p1",
        workspace_id="w1",
        message="hi",
        history=[ChatMessage(role="user", content="earlier")],
    )


def test_reader_split_feeds_and_updates():
    updates = []
    reader = ChatStreamReader(on_update=updates.append)
    deltas = []
    for i in range(0, len(STREAM), 3):
        deltas.extend(reader.feed(STREAM[i : i + 3]))
    assert deltas == ["Hel", "lo"]
    assert updates == ["Hel", "Hello"]
    assert reader.message.content == "Hello"
    assert reader.message.done


def test_reader_ignores_frames_after_done():
    reader = ChatStreamReader()
    reader.feed(STREAM + 'data: {"content": "late"}\n\n')
    assert reader.feed('data: {"content": "later"}\n\n') == []
    assert reader.message.content == "Hello"


def test_reader_skips_noise():
    reader = ChatStreamReader()
    reader.feed(': ping\n\ndata: {oops}\n\ndata: {"other": 1}\n\n' + STREAM)
    assert reader.message.content == "Hello"


def test_read_chat_stream_multibyte_split():
    raw = 'data: {"content": "你好"}\n\ndata: [DONE]\n\n'.encode("utf-8")
    parts = [raw[i : i + 1] for i in range(len(raw))]
    message = run(read_chat_stream(aiter_chunks(parts)))
    assert message.content == "你好"
    assert message.done
    assert message.error is None


def test_client_send_assembles_reply(mock_upstream):
    requests = mock_upstream(lambda request: streaming_response([STREAM[:20], STREAM[20:]]))
    updates = []
    message = run(ChatStreamClient("http://testserver/").send(make_request(), on_update=updates.append))

    assert message.content == "Hello"
    assert message.done and message.error is None
    assert updates[-1] == "Hello"
    req = requests[0]
    assert str(req.url) == "http://testserver/api/ai/chat"
    body = json.loads(req.content)
    assert body["conversationId"] == "c1"
    assert body["history"] == [{"role": "user", "content": "earlier"}]


def test_client_send_non_2xx(mock_upstream):
    mock_upstream(lambda request: httpx.Response(400, json={"error": "No API key found"}))
    message = run(ChatStreamClient("http://testserver").send(make_request()))
    assert message.error == "Failed to get AI response"
    assert message.content == ""


def test_client_send_keeps_partial_content_on_early_end(mock_upstream):
    mock_upstream(lambda request: streaming_response(['data: {"content": "Hel"}\n\n']))
    message = run(ChatStreamClient("http://testserver").send(make_request()))
    assert message.content == "Hel"
    assert message.error == "Chat stream ended before completion"


def test_read_chat_stream_without_done_marks_error():
    message = run(read_chat_stream(aiter_chunks([b'data: {"content": "Hel"}\n\n'])))
    assert message.content == "Hel"
    assert not message.done
    assert message.error == "Chat stream ended before completion"


def test_client_send_redirect_is_failure(mock_upstream):
    mock_upstream(lambda request: httpx.Response(302, text="moved", headers={"Location": "http://elsewhere/"}))
    message = run(ChatStreamClient("http://testserver").send(make_request()))
    assert message.error == "Failed to get AI response"
    assert message.content == ""


def test_client_send_keeps_partial_content_on_connection_reset(mock_upstream):
    mock_upstream(lambda request: interrupted_response(['data: {"content": "Hel"}\n\n']))
    message = run(ChatStreamClient("http://testserver").send(make_request()))
    assert message.content == "Hel"
    assert not message.done
    assert message.error.startswith("Chat stream interrupted")
