"""brutus: tool-using agent runtime with peer coordination."""

__version__ = "0.3.0"
