import asyncio

import httpx
import pytest

_RealAsyncClient = httpx.AsyncClient


async def aiter_chunks(chunks):
    for chunk in chunks:
        yield chunk


def streaming_response(chunks, status_code=200):
    """构造按给定分块逐次返回正文的响应，用于模拟网络分段读取。"""

    raw = [c.encode("utf-8") if isinstance(c, str) else c for c in chunks]
    return httpx.Response(status_code, content=aiter_chunks(raw))


async def aiter_then_raise(chunks, error):
    for chunk in chunks:
        yield chunk
    raise error


def interrupted_response(chunks, status_code=200):
    """先返回给定分块，随后模拟连接被重置。"""

    raw = [c.encode("utf-8") if isinstance(c, str) else c for c in chunks]
    return httpx.Response(status_code, content=aiter_then_raise(raw, httpx.ReadError("connection reset")))


def run(coro):
    return asyncio.run(coro)


async def collect(agen):
    return [item async for item in agen]


@pytest.fixture
def mock_upstream(monkeypatch):
    """把 httpx.AsyncClient 替换为走 MockTransport 的真实客户端。

    用法：requests = mock_upstream(handler)，handler(request) -> httpx.Response，
    返回的列表会记录所有发出的请求。
    """

    def install(handler):
        seen = []

        def record(request):
            seen.append(request)
            return handler(request)

        def client_factory(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(record)
            return _RealAsyncClient(*args, **kwargs)

        monkeypatch.setattr("httpx.AsyncClient", client_factory)
        return seen

    return install
