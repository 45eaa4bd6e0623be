# HTTP surface of the vote ledger
from .routes import router, get_store

__all__ = ["router", "get_store"]
