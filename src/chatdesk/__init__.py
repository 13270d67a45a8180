"""chatdesk: one streaming chat engine for many AI chat backends."""

__version__ = "0.3.0"
