"""
Business logic services.

Each service handles one concern of the counting flow.
"""

from services.scan_service import resolve, search_products, build_placeholder
from services.reconcile_service import confirm, adjust, compute_stats, parse_quantity
from services.export_service import ExportService, get_export_service, build_export_rows
from services.relay_service import RelayHub, get_relay_hub

__all__ = [
    "resolve",
    "search_products",
    "build_placeholder",
    "confirm",
    "adjust",
    "compute_stats",
    "parse_quantity",
    "ExportService",
    "get_export_service",
    "build_export_rows",
    "RelayHub",
    "get_relay_hub",
]
