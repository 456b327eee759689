"""Service catalog: standard repairs, bundled offers and help topics."""

import logging
from typing import Optional

from repairdesk.schemas.catalog_schema import CatalogItem

logger = logging.getLogger(__name__)

SERVICE_CATALOG: dict[str, CatalogItem] = {
    item.id: item
    for item in [
        CatalogItem(
            id="service_1",
            name="PC diagnostics",
            price=1500,
            description="Full hardware and software diagnostics.",
            duration="1-2 hours",
        ),
        CatalogItem(
            id="service_2",
            name="Dust cleaning",
            price=2000,
            description="Professional internal cleaning of the case and coolers.",
            duration="1-2 hours",
        ),
        CatalogItem(
            id="service_3",
            name="Thermal paste replacement",
            price=1000,
            description="CPU thermal paste replacement.",
            duration="30-60 minutes",
        ),
        CatalogItem(
            id="service_4",
            name="Windows installation",
            price=2500,
            description="Operating system installation and drivers.",
            duration="2-3 hours",
        ),
        CatalogItem(
            id="service_5",
            name="HDD/SSD replacement",
            price=1500,
            description="Drive replacement with data transfer.",
            duration="1-2 hours",
        ),
        CatalogItem(
            id="service_6",
            name="PC assembly",
            price=5000,
            description="Professional assembly from your components.",
            duration="2-4 hours",
        ),
    ]
}

OFFER_CATALOG: dict[str, CatalogItem] = {
    item.id: item
    for item in [
        CatalogItem(
            id="offer_1",
            name="Complete diagnostics",
            price=3000,
            points=450,
            description="Full diagnostics plus dust cleaning.",
            duration="2-3 hours",
        ),
        CatalogItem(
            id="offer_2",
            name="Basic maintenance",
            price=2500,
            points=250,
            description="Dust cleaning plus thermal paste replacement.",
            duration="2-3 hours",
        ),
        CatalogItem(
            id="offer_3",
            name="Maximum package",
            price=7000,
            points=750,
            description="Diagnostics, cleaning, Windows and thermal paste.",
            duration="4-6 hours",
        ),
    ]
}

HELP_TOPICS: dict[str, dict[str, str]] = {
    "general": {
        "title": "General information",
        "content": (
            "This bot helps you:\n"
            "• Order a computer repair\n"
            "• Track the status of your orders\n"
            "• Learn about our services\n"
            "• Collect loyalty points\n"
            "• Manage your contact details"
        ),
    },
    "services": {
        "title": "Services",
        "content": (
            "We offer diagnostics, dust cleaning, thermal paste replacement, "
            "Windows installation, drive replacement and PC assembly.\n\n"
            "Every job is done by experienced technicians with professional equipment."
        ),
    },
    "loyalty": {
        "title": "Loyalty program",
        "content": (
            "Every order earns bonus points:\n\n"
            "• Standard repairs: 10% of the price\n"
            "• Special offers: up to 750 points\n\n"
            "Points can be used for discounts on future orders."
        ),
    },
    "contact": {
        "title": "Contacts",
        "content": "",
    },
}


def get_all_services() -> list[CatalogItem]:
    """Return all standard services in display order."""
    return list(SERVICE_CATALOG.values())


def get_all_offers() -> list[CatalogItem]:
    """Return all bundled offers in display order."""
    return list(OFFER_CATALOG.values())


def get_catalog_item(item_id: str) -> Optional[CatalogItem]:
    """Look up a service or offer by id. Returns None if unknown."""
    item = SERVICE_CATALOG.get(item_id) or OFFER_CATALOG.get(item_id)
    if item is None:
        logger.debug("Unknown catalog item: %s", item_id)
    return item


def get_item_name(item_id: str) -> str:
    """Display name for an item id, tolerant of ids no longer in the catalog."""
    item = get_catalog_item(item_id)
    return item.name if item else "Unknown service"
