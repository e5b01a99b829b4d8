"""
Public export of confirmed itineraries.

The builders here are read-only: they describe a trip's committed schedule
from rows the store already holds. Only the publisher touches the filesystem.
"""

from shared.public_exports.itinerary import (
    ITINERARY_BLOCK_STATES,
    PublicItineraryBlock,
    PublicItineraryExport,
    PublicItineraryExportBuilder,
    build_itinerary_export,
    publish_itinerary,
)
from shared.public_exports.publisher import PublicExportPublisher

__all__ = [
    "ITINERARY_BLOCK_STATES",
    "PublicItineraryBlock",
    "PublicItineraryExport",
    "PublicItineraryExportBuilder",
    "PublicExportPublisher",
    "build_itinerary_export",
    "publish_itinerary",
]
