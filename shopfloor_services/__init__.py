"""Transactional entry points over the shop-floor kernel."""

from shopfloor_services.floor_operations import FloorOperations, FloorServices

__all__ = ["FloorOperations", "FloorServices"]
