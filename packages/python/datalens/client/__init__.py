from .chat_client import DataLensClient

__all__ = ["DataLensClient"]
