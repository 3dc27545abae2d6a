"""Partner panel bridge: signed-request validation and identity reconciliation."""

__version__ = "0.1.0"
