"""
Per-property display names and cleaning vendors.

Both mappings are persisted as JSON (see state_manager) and held in memory
as dicts that are never modified: every update writes the new mapping
first, then swaps it in. If the write fails the in-memory mapping is left
as it was, matching what is on disk.

Vendor file format, one entry per property:

    {
      "property-1": "Portos Nettoyage",
      "property-2": {"vendor": "CleanSud", "offset_days": 0, "offset_hours": 3}
    }
"""
import logging
from datetime import timedelta
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from unified_calendar.config.state_manager import load_mapping, save_mapping
from unified_calendar.errors import InvalidInput
from unified_calendar.models import VendorAssignment

logger = logging.getLogger(__name__)


def parse_vendor_mapping(raw: Mapping) -> Dict[str, VendorAssignment]:
    assignments = {}
    for property_key, value in (raw or {}).items():
        if isinstance(value, str):
            assignments[property_key] = VendorAssignment(vendor=value)
        elif isinstance(value, dict):
            offset = timedelta(
                days=float(value.get("offset_days", 0) or 0),
                hours=float(value.get("offset_hours", 0) or 0),
            )
            assignments[property_key] = VendorAssignment(vendor=value.get("vendor") or "", offset=offset)
        else:
            logger.warning(f"Ignoring vendor entry for {property_key}: {value!r}")
    return assignments


def dump_vendor_mapping(assignments: Mapping[str, VendorAssignment]) -> dict:
    raw = {}
    for property_key, assignment in assignments.items():
        if not assignment.offset:
            raw[property_key] = assignment.vendor
            continue
        days = assignment.offset.days
        hours = (assignment.offset - timedelta(days=days)).total_seconds() / 3600
        raw[property_key] = {
            "vendor": assignment.vendor,
            "offset_days": days,
            "offset_hours": int(hours) if hours.is_integer() else hours,
        }
    return raw


class PropertyMappings:
    """Display names and vendor assignments, read at startup and after each write."""

    def __init__(
        self,
        display_names_path: str = "property-names.json",
        vendors_path: str = "property-vendors.json",
        bucket_name: Optional[str] = None,
        display_names: Optional[Mapping[str, str]] = None,
        assignments: Optional[Mapping[str, VendorAssignment]] = None,
    ):
        self.display_names_path = display_names_path
        self.vendors_path = vendors_path
        self.bucket_name = bucket_name
        self._display_names = dict(display_names or {})
        self._assignments = dict(assignments or {})

    @classmethod
    def load(cls, display_names_path: str, vendors_path: str, bucket_name: Optional[str] = None) -> "PropertyMappings":
        mappings = cls(display_names_path, vendors_path, bucket_name)
        mappings.reload()
        return mappings

    def reload(self):
        display_names = load_mapping(self.display_names_path, self.bucket_name)
        assignments = parse_vendor_mapping(load_mapping(self.vendors_path, self.bucket_name))
        self._display_names = {str(k): str(v) for k, v in display_names.items()}
        self._assignments = assignments
        logger.info(
            f"Loaded {len(self._display_names)} display names and "
            f"{len(self._assignments)} vendor assignments"
        )

    @property
    def display_names(self) -> Mapping[str, str]:
        return MappingProxyType(self._display_names)

    @property
    def assignments(self) -> Mapping[str, VendorAssignment]:
        return MappingProxyType(self._assignments)

    def set_display_name(self, property_key: str, name: str):
        property_key = (property_key or "").strip()
        name = (name or "").strip()
        if not property_key or not name:
            raise InvalidInput("Both a property key and a new name are required")

        updated = dict(self._display_names)
        updated[property_key] = name
        save_mapping(self.display_names_path, updated, self.bucket_name)
        self._display_names = updated
        logger.info(f"Name updated: {property_key} -> {name}")

    def set_vendor(self, property_key: str, vendor: str, offset: timedelta = timedelta(0)):
        property_key = (property_key or "").strip()
        vendor = (vendor or "").strip()
        if not property_key or not vendor:
            raise InvalidInput("Both a property key and a vendor are required")

        updated = dict(self._assignments)
        updated[property_key] = VendorAssignment(vendor=vendor, offset=offset)
        save_mapping(self.vendors_path, dump_vendor_mapping(updated), self.bucket_name)
        self._assignments = updated
        logger.info(f"Vendor updated: {property_key} -> {vendor} (+{offset})")
