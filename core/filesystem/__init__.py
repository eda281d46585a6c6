"""FileSystem Middleware Package."""

from core.filesystem.middleware import FileSystemMiddleware

__all__ = ["FileSystemMiddleware"]
