"""Declared-resource model."""

from idprov.resources.base import Notification, Resource, ResourceKey, Timing
from idprov.resources.collection import ResourceCollection

__all__ = [
    "Notification",
    "Resource",
    "ResourceCollection",
    "ResourceKey",
    "Timing",
]
