from chat_core.agents.chat_engine import ChatEngine, PreparedTurn, assemble_messages

__all__ = ["ChatEngine", "PreparedTurn", "assemble_messages"]
