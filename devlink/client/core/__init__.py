from .connector import connect

__all__ = ["connect"]
