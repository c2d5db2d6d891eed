"""Builds share links and recognises snapshots carried by a page URL."""
from __future__ import annotations

from typing import Optional, Sequence
from urllib.parse import parse_qs, quote, urlsplit, urlunsplit
import logging

from .codec import Snapshot, decode_legacy_snapshot, decode_snapshot, encode_snapshot
from .models import Product, Transaction

logger = logging.getLogger(__name__)

SHARE_PARAM = "s"
LEGACY_SHARE_PARAM = "share"

_UNSET = object()


class SnapshotLinkService:
    """Uses the page URL as the transport for shared snapshots.

    ``location`` is the absolute URL the session was opened with. The
    incoming snapshot is decoded at most once per service; later navigation
    within the session is not re-examined.
    """

    def __init__(self, location: Optional[str] = None) -> None:
        self.location = location or ""
        self._incoming: object = _UNSET

    def build_share_url(
        self,
        products: Sequence[Product],
        transactions: Sequence[Transaction],
        location: Optional[str] = None,
    ) -> str:
        """Return ``<origin><path>?s=<payload><fragment>`` for the given collections."""

        parts = urlsplit(location or self.location)
        payload = encode_snapshot(products, transactions)
        query = f"{SHARE_PARAM}={quote(payload, safe='')}"
        return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", query, parts.fragment))

    def detect_incoming_snapshot(self) -> Optional[Snapshot]:
        if self._incoming is _UNSET:
            self._incoming = self._decode_location()
        return self._incoming  # type: ignore[return-value]

    def _decode_location(self) -> Optional[Snapshot]:
        if not self.location:
            return None
        params = parse_qs(urlsplit(self.location).query, keep_blank_values=True)
        current = params.get(SHARE_PARAM, [""])[0]
        if current:
            snapshot = decode_snapshot(current)
            if snapshot is None:
                logger.info("Ignoring unreadable '%s' snapshot parameter", SHARE_PARAM)
            return snapshot
        legacy = params.get(LEGACY_SHARE_PARAM, [""])[0]
        if legacy:
            snapshot = decode_legacy_snapshot(legacy)
            if snapshot is None:
                logger.info("Ignoring unreadable '%s' snapshot parameter", LEGACY_SHARE_PARAM)
            return snapshot
        return None


__all__ = ["LEGACY_SHARE_PARAM", "SHARE_PARAM", "SnapshotLinkService"]
