"""Recipes: functions that declare the resources of a node role."""

from idprov.recipes.keystone_server import keystone_server

__all__ = ["keystone_server"]
