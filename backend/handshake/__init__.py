"""Handshake: peer-to-peer side bets settled in Pride."""

__version__ = "0.1.0"

__all__ = ["__version__"]
