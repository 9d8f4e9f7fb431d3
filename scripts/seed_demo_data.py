"""Create a small demo database for manual smoke checks."""

from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from keystone.db.database import Database
from keystone.db.models import Lead, Property


def main() -> None:
    demo_dir = Path("data/demo")
    demo_dir.mkdir(parents=True, exist_ok=True)
    demo_db = demo_dir / "keystone_demo.db"

    db = Database(str(demo_db))
    db.initialize()

    property_id = db.create_property(
        Property(
            name="Maple Court 2B",
            address="412 Maple Ct, Austin, TX",
            bedrooms="2",
            rent=Decimal("1850"),
        )
    )
    db.create_property(
        Property(name="Riverside Lofts 5", address="9 River Rd, Austin, TX", bedrooms="Studio")
    )
    lead_id = db.create_lead(
        Lead(
            name="Casey Jordan",
            email="casey@example.com",
            phone="512-555-0142",
            source="website",
            property_id=property_id,
        )
    )
    db.close()

    print(f"Demo database ready: {demo_db}")
    print(f"  property {property_id}, lead {lead_id}")


if __name__ == "__main__":
    main()
