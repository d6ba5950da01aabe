"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
便于在 API 层统一捕获并映射为 HTTP 响应。

注意：流中无法解析的帧（心跳、注释等）不属于异常，
解码器会直接跳过，不会出现在这里。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_API_KEY"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、trace_id 等）。
    """

    http_status_default = 400

    def __init__(self, code: str, message: str, http_status: int | None = None, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status or self.http_status_default
        self.extra = extra
        super().__init__(message)


class ConfigurationError(BusinessError):
    """配置错误：缺少凭证等，在任何网络请求之前抛出。"""


class UnsupportedProviderError(ConfigurationError):
    """Provider 标识不在已知集合内。"""


class UpstreamError(BusinessError):
    """上游 Provider 返回非 2xx，或在流中途返回错误帧。

    body 保存上游原始响应文本，仅用于日志诊断，不直接展示给用户。
    """

    http_status_default = 502

    def __init__(
        self,
        code: str,
        message: str,
        body: str = "",
        upstream_status: int | None = None,
        **extra,
    ):
        super().__init__(code, message, **extra)
        self.body = body
        self.upstream_status = upstream_status


class TransportAbort(BusinessError):
    """网络层中断：连接失败、读超时、连接被重置等。"""

    http_status_default = 503
