"""Nonce entity module."""

from .table import NonceTable

__all__ = ["NonceTable"]
