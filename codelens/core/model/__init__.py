from .model import LocalModel

__all__ = ["LocalModel"]
