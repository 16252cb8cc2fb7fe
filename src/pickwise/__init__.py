"""Pickwise: AI-assisted decision routing over streamed chat completions."""

__version__ = "0.1.0"

__all__ = ["__version__"]
