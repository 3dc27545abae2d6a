from .client import HttpLookupClient, LookupClient

__all__ = ["LookupClient", "HttpLookupClient"]
