"""Bundle a source tree into size-bounded artifacts for context-limited consumers."""

__version__ = "0.1.0"
