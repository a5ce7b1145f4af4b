"""vectorkb: preference learning for the prompt-to-SVG knowledge base."""

__version__ = "0.1.0"
