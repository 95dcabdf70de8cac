# Routers package for bulkexport

from . import exports

__all__ = [
    "exports",
]
