"""Router package initialization."""

from biafridge.api.routers import (
    auth,
    fridges,
    invites,
    fridge_items,
    categories,
    notifications,
)

__all__ = [
    "auth",
    "fridges",
    "invites",
    "fridge_items",
    "categories",
    "notifications",
]
