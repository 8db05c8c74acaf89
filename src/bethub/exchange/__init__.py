from .clob import ClobApiError, ClobClient, serialize_body

__all__ = ["ClobApiError", "ClobClient", "serialize_body"]
