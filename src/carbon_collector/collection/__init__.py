"""carbon_collector.collection — Fetching, rendering, normalization, evidence."""

from carbon_collector.collection.evidence import EvidenceCollector, payload_sha256
from carbon_collector.collection.fetcher import SourceFetcher
from carbon_collector.collection.normalize import (
    format_number,
    parse_date,
    parse_price,
    parse_volume,
    pick_field,
    within_window,
)
from carbon_collector.collection.renderer import (
    PageRenderer,
    PlaywrightPageRenderer,
    RenderedPage,
    StaticPageRenderer,
    build_renderer,
    extract_table_rows,
)

__all__ = [
    "EvidenceCollector",
    "PageRenderer",
    "PlaywrightPageRenderer",
    "RenderedPage",
    "SourceFetcher",
    "StaticPageRenderer",
    "build_renderer",
    "extract_table_rows",
    "format_number",
    "parse_date",
    "parse_price",
    "parse_volume",
    "payload_sha256",
    "pick_field",
    "within_window",
]
