"""
Backing data lookups: Supabase reader, pickup schedule, item catalog.
"""

from switchboard.lookups.supabase import LookupServiceError, SupabaseRestClient
from switchboard.lookups.schedule import PickupEvent, ScheduleDirectory
from switchboard.lookups.catalog import CatalogItem, ItemCatalog
from switchboard.lookups.locations import LocationNormalizer

__all__ = [
    "LookupServiceError",
    "SupabaseRestClient",
    "PickupEvent",
    "ScheduleDirectory",
    "CatalogItem",
    "ItemCatalog",
    "LocationNormalizer",
]
