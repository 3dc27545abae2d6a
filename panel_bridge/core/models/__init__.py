"""Core data models."""

from .claims import PanelClaims, TokenValidation
from .descriptors import AccountDescriptor, UserDescriptor

__all__ = ["AccountDescriptor", "PanelClaims", "TokenValidation", "UserDescriptor"]
