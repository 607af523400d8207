# Session memory: bounded, expiring chat history per session id.

from .chat_memory import ChatMemory, EvictionListener, RemovalCause

__all__ = ["ChatMemory", "EvictionListener", "RemovalCause"]
