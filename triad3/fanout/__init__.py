"""Fan-out of an extraction into the destination collections."""

from triad3.fanout.mappers import (
    ASSET_CODE_CATEGORIES,
    MappingContext,
    RecordMappingError,
    categorize_asset_code,
    map_items,
)
from triad3.fanout.persister import FanOutPersister

__all__ = [
    "ASSET_CODE_CATEGORIES",
    "FanOutPersister",
    "MappingContext",
    "RecordMappingError",
    "categorize_asset_code",
    "map_items",
]
