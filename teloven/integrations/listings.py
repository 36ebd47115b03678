from __future__ import annotations

from dataclasses import dataclass

from teloven.extensions import db
from teloven.models import Listing


@dataclass
class ListingSnapshot:
    listing_id: str
    seller_id: str
    price: int
    currency: str
    title: str = ""


class ListingDirectory:
    def get_active_listing(self, listing_id: str) -> ListingSnapshot | None:
        raise NotImplementedError


class SqlListingDirectory(ListingDirectory):
    """Reads listings from the shared database table."""

    def get_active_listing(self, listing_id: str) -> ListingSnapshot | None:
        lid = (str(listing_id or "")).strip()
        if not lid:
            return None
        row = db.session.get(Listing, lid)
        if row is None or not bool(row.is_active):
            return None
        return ListingSnapshot(
            listing_id=row.id,
            seller_id=row.seller_id,
            price=int(row.price or 0),
            currency=(row.currency or "CLP").strip().upper(),
            title=row.title or "",
        )
