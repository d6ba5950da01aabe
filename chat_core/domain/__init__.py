"""领域层模型与协议。

包含：
- models: 统一的 ModelConfig / ChatMessage / StreamChunk 模型。
- workspace: Agent、API Key、团队记忆的存储模型及 WorkspaceStore 抽象。
- exceptions: 业务异常类型定义。
"""
