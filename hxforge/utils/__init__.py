from .http import add_vary

__all__ = ["add_vary"]
