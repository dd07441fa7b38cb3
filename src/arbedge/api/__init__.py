"""HTTP surface of the edge layer."""

from arbedge.api.server import create_app
from arbedge.api.services import Services, build_services


__all__ = [
    "Services",
    "build_services",
    "create_app",
]
