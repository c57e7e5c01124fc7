from . import reconciliation

__all__ = [
    "reconciliation",
]
