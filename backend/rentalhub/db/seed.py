"""
Seed script: loads sample_dataset.json into the database.
Usage: python -m rentalhub.db.seed
"""
import json
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

from rentalhub.core import property_status, rental_lifecycle
from rentalhub.core.site_settings import update_site_settings
from rentalhub.db.database import SessionLocal, init_db
from rentalhub.models.client import Client


def seed():
    init_db()
    db = SessionLocal()

    dataset_path = Path(__file__).parent.parent.parent / "tests" / "fixtures" / "sample_dataset.json"
    with open(dataset_path, encoding="utf-8") as f:
        data = json.load(f, parse_float=Decimal)

    update_site_settings(db, data["site"])

    properties = [property_status.create_property(db, **p) for p in data["properties"]]

    clients = []
    for c in data["clients"]:
        client = Client(**c)
        db.add(client)
        clients.append(client)
    db.commit()

    # Offsets keep the sample contracts relative to the day the seed runs
    today = date.today()
    for r in data["rentals"]:
        end_offset = r.get("end_offset_days")
        rental_lifecycle.create_rental(
            db,
            client_id=clients[r["client"]].id,
            property_id=properties[r["property"]].id,
            start_date=today + timedelta(days=r["start_offset_days"]),
            end_date=None if end_offset is None else today + timedelta(days=end_offset),
            status=r["status"],
            terms_conditions=r.get("terms_conditions"),
        )

    db.close()
    print(
        f"Seed completed: {len(properties)} properties, {len(clients)} clients, "
        f"{len(data['rentals'])} rentals."
    )


if __name__ == "__main__":
    seed()
