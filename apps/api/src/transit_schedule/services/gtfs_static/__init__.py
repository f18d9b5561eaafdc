"""Static GTFS ingestion: fetch, extract, parse and normalize."""

from transit_schedule.services.gtfs_static.fetcher import GtfsStaticFetcher
from transit_schedule.services.gtfs_static.importer import GtfsImporter
from transit_schedule.services.gtfs_static.normalizer import GtfsNormalizer
from transit_schedule.services.gtfs_static.parser import GtfsTableParser
from transit_schedule.services.gtfs_static.reader import GtfsZipReader

__all__ = [
    "GtfsImporter",
    "GtfsNormalizer",
    "GtfsStaticFetcher",
    "GtfsTableParser",
    "GtfsZipReader",
]
