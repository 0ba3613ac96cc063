"""Shared schema exports."""

from .user import AddressView, UserView

__all__ = [
    "AddressView",
    "UserView",
]
