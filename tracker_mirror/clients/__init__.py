"""Clients for the external tracker."""

from tracker_mirror.clients.data_provider import TrackerDataProvider

__all__ = ["TrackerDataProvider"]
