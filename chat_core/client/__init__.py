from chat_core.client.reader import AssembledMessage, ChatStreamClient, ChatStreamReader, read_chat_stream

__all__ = ["AssembledMessage", "ChatStreamClient", "ChatStreamReader", "read_chat_stream"]
