"""FocusFlow: daily schedule tracker with a server-side timer store."""

__version__ = "0.1.0"
