from __future__ import annotations

from pathlib import Path

import qrcode
from sqlalchemy import select

from canteen.config import settings
from canteen.db import SessionLocal
from canteen.models import Queue

# Printed next to each counter; scanning opens the client's join page
BASE_URL = settings.public_base_url.rstrip("/")

OUT_DIR = Path(__file__).resolve().parents[1] / "qrcodes"


def main() -> None:
    OUT_DIR.mkdir(parents=True, exist_ok=True)

    db = SessionLocal()
    try:
        queues = db.scalars(select(Queue).where(Queue.status != "closed").order_by(Queue.id)).all()
    finally:
        db.close()

    if not queues:
        raise SystemExit("No open queues found. Run `python -m canteen.seed` first.")

    made = 0
    for q in queues:
        url = f"{BASE_URL}/queue/{q.id}"
        img = qrcode.make(url)

        # Name files by service + id so it's obvious which counter gets which sheet
        out_path = OUT_DIR / f"{q.service_type}__queue-{q.id}.png"
        img.save(out_path)

        print(f"OK  {q.name}  ->  {out_path}  ({url})")
        made += 1

    print(f"\nDone. Generated {made} QR codes in: {OUT_DIR}")


if __name__ == "__main__":
    main()
