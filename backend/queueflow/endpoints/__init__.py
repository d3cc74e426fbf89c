# queueflow/endpoints/__init__.py

from .queue import router as queue

__all__ = ["queue"]
