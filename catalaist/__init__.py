"""CatalAIst - classify business processes into transformation categories."""

__version__ = "0.1.0"
