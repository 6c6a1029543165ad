"""chaindesk daemon: option-chain market data and a tool-calling chat desk."""

__version__ = "0.1.0"
