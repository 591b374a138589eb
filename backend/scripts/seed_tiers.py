"""
Tier Catalog Seed Script

Seeds the reserved free tier, plus any tiers listed in a JSON catalog file.
Tiers are keyed by (productId, billingType); existing tiers are skipped,
never updated.

Catalog file format:
    [
        {
            "productId": "prod_...",
            "label": "2TB",
            "billingType": "subscription",
            "featuresPerService": {"drive": {"enabled": true, "maxSpaceBytes": 2000000000}}
        }
    ]

Usage:
    python -m scripts.seed_tiers
    python -m scripts.seed_tiers --catalog tiers.json
    python -m scripts.seed_tiers --dry-run (to preview without saving)

Environment variables:
    DATABASE_URL: PostgreSQL connection string (required)
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add backend directory to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from billing_engine.constants import BillingType, FREE_PLAN_BYTES_SPACE, FREE_TIER_PRODUCT_ID
from billing_engine.models.tier import Tier
from billing_engine.repositories.tiers_repo import TiersRepository
from scripts.init_db import get_database_url

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


FREE_TIER = {
    "productId": FREE_TIER_PRODUCT_ID,
    "label": "Free",
    "billingType": BillingType.SUBSCRIPTION.value,
    "featuresPerService": {
        "drive": {
            "enabled": True,
            "maxSpaceBytes": FREE_PLAN_BYTES_SPACE,
            "workspaces": {
                "enabled": False,
                "minimumSeats": 0,
                "maximumSeats": 0,
                "maxSpaceBytesPerSeat": 0,
            },
        },
        "mail": {"enabled": False, "addressesPerUser": 0},
        "meet": {"enabled": False, "paxPerCall": 0},
        "vpn": {"enabled": False, "featureId": ""},
        "antivirus": {"enabled": False},
        "backups": {"enabled": False},
        "cleaner": {"enabled": False},
    },
}


def load_catalog(path: Optional[str]) -> List[Dict[str, Any]]:
    """Free tier first, then the catalog file entries."""
    tiers = [FREE_TIER]
    if path:
        with open(path, "r") as f:
            tiers.extend(json.load(f))
    return tiers


def seed_tiers(database_url: str, catalog_path: Optional[str] = None, dry_run: bool = False) -> int:
    """
    Insert catalog tiers that do not exist yet.

    Returns:
        Number of tiers created (0 for a dry run)
    """
    engine = create_engine(database_url, pool_pre_ping=True)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()

    catalog = load_catalog(catalog_path)
    logger.info(f"Mode: {'DRY RUN' if dry_run else 'EXECUTION'}")
    logger.info(f"Tiers in catalog: {len(catalog)}")

    try:
        repo = TiersRepository(session)
        to_create = []
        for entry in catalog:
            billing_type = BillingType(entry.get("billingType", BillingType.SUBSCRIPTION.value))
            if repo.find_by_product_id(entry["productId"], billing_type) is not None:
                logger.info(f"   exists: {entry['productId']} ({billing_type.value})")
                continue
            to_create.append((entry, billing_type))

        for entry, billing_type in to_create:
            drive = entry.get("featuresPerService", {}).get("drive", {})
            logger.info(
                f"   create: {entry['productId']} ({billing_type.value}) "
                f"{entry.get('label')} - {drive.get('maxSpaceBytes', 0)} bytes"
            )

        if dry_run:
            logger.info("DRY RUN - No changes will be made")
            return 0

        for entry, billing_type in to_create:
            session.add(Tier(
                product_id=entry["productId"],
                label=entry.get("label") or entry["productId"],
                billing_type=billing_type.value,
                features_per_service=entry.get("featuresPerService", {}),
            ))
        session.commit()
        logger.info(f"Tiers created: {len(to_create)}")
        return len(to_create)

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to seed tiers: {e}")
        raise
    finally:
        session.close()
        engine.dispose()


def main():
    import argparse

    parser = argparse.ArgumentParser(description="Seed the tier catalog")
    parser.add_argument("--catalog", type=str, help="JSON file with additional tiers")
    parser.add_argument("--dry-run", action="store_true", help="Preview without saving")
    parser.add_argument(
        "--database-url",
        type=str,
        help="Database URL (overrides DATABASE_URL env var)"
    )

    args = parser.parse_args()
    seed_tiers(args.database_url or get_database_url(), args.catalog, args.dry_run)


if __name__ == "__main__":
    main()
