"""Training-example store for the progressive learning loop."""
from .store import ExampleStore

__all__ = ["ExampleStore"]
