"""Runtime engine version."""

from .main import modecrypt

__version__ = modecrypt.ENGINE_VERSION

__all__ = ["__version__"]
