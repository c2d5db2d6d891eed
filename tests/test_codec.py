from __future__ import annotations

import base64
import json
import string
from dataclasses import replace

from lzstring import LZString

from stockflow.codec import (
    SNAPSHOT_VERSION,
    decode_legacy_snapshot,
    decode_snapshot,
    encode_snapshot,
)


def _compress(text: str) -> str:
    return LZString().compressToEncodedURIComponent(text)


def _browser_units(text: str) -> str:
    # Mirror a browser string: one character per UTF-16 code unit.
    raw = text.encode("utf-16-le")
    return "".join(chr(int.from_bytes(raw[i : i + 2], "little")) for i in range(0, len(raw), 2))


def test_snapshot_round_trip(sample_products, sample_transactions) -> None:
    payload = encode_snapshot(sample_products, sample_transactions)

    decoded = decode_snapshot(payload)

    assert decoded is not None
    assert decoded.products == sample_products
    assert decoded.transactions == sample_transactions
    assert decoded.products[1].name == "Café Crème ☕"
    assert decoded.transactions[0].notes == "sale — 日本"
    assert decoded.transactions[1].notes is None


def test_empty_snapshot_round_trip() -> None:
    decoded = decode_snapshot(encode_snapshot([], []))

    assert decoded is not None
    assert decoded.products == []
    assert decoded.transactions == []


def test_payload_is_url_safe(sample_products, sample_transactions) -> None:
    payload = encode_snapshot(sample_products * 20, sample_transactions * 20)

    assert payload
    assert set(payload) <= set(string.ascii_letters + string.digits + "+-$")
    # Query parsing turns an unescaped "+" into a space.
    assert decode_snapshot(payload.replace("+", " ")) is not None


def test_payload_uses_versioned_positional_rows(sample_products, sample_transactions) -> None:
    payload = encode_snapshot(sample_products[:1], sample_transactions[:1])
    envelope = json.loads(LZString().decompressFromEncodedURIComponent(payload))

    assert envelope["v"] == SNAPSHOT_VERSION
    assert envelope["p"][0] == [
        "p1",
        "Widget",
        "WDG-1",
        "Widgets",
        10,
        5,
        2.0,
        "2024-02-01T12:30:15.250000+00:00",
    ]
    assert envelope["t"][0][:5] == ["t2", "p1", "Widget", "OUT", 3]
    assert envelope["t"][0][6] == "sale — 日本"


def _encode_envelope(envelope) -> str:
    return _compress(json.dumps(envelope))


def test_unversioned_payload_reads_as_current_version() -> None:
    payload = _encode_envelope(
        {
            "p": [["a", "Bolt", "B-1", "Hardware", 4, 1, 0.5, "2024-01-01T00:00:00.000Z"]],
            "t": [["x", "a", "Bolt", "IN", 4, "2024-01-01T00:00:00.000Z"]],
        }
    )

    decoded = decode_snapshot(payload)

    assert decoded is not None
    assert decoded.products[0].last_updated.year == 2024
    assert decoded.transactions[0].notes is None


def test_payload_from_browser_client_decodes() -> None:
    # Links issued by the browser app carry no version key.
    text = json.dumps(
        {
            "p": [["1", "Widget", "W-1", "Widgets", 10, 5, 2.0, "2024-01-01T00:00:00.000Z"]],
            "t": [["t1", "1", "Widget", "OUT", 2, "2024-01-02T08:00:00.000Z", "sale"]],
        },
        separators=(",", ":"),
    )

    decoded = decode_snapshot(_compress(text))

    assert decoded is not None
    assert decoded.products[0].name == "Widget"
    assert decoded.products[0].quantity == 10
    assert decoded.transactions[0].notes == "sale"


def test_characters_outside_the_basic_plane(sample_products) -> None:
    boxed = replace(sample_products[0], name="Parcel 📦")

    decoded = decode_snapshot(encode_snapshot([boxed], []))
    assert decoded is not None
    assert decoded.products[0].name == "Parcel 📦"

    browser_text = _browser_units(
        json.dumps(
            {"p": [["b", "Parcel 📦", "", "", 1, 0, 0, "2024-01-01T00:00:00Z"]], "t": []},
            ensure_ascii=False,
        )
    )
    from_browser = decode_snapshot(_compress(browser_text))
    assert from_browser is not None
    assert from_browser.products[0].name == "Parcel 📦"


def test_unknown_version_is_rejected() -> None:
    assert decode_snapshot(_encode_envelope({"v": 99, "p": [], "t": []})) is None


def test_malformed_payloads_yield_none() -> None:
    assert decode_snapshot(None) is None
    assert decode_snapshot("") is None
    assert decode_snapshot("not a real payload!!") is None
    assert decode_snapshot("%%%") is None
    assert decode_snapshot(_compress("{not json")) is None
    assert decode_snapshot(_encode_envelope([1, 2, 3])) is None
    assert decode_snapshot(_encode_envelope({"p": [["too", "short"]], "t": []})) is None
    assert decode_snapshot(
        _encode_envelope(
            {"p": [], "t": [["x", "a", "Bolt", "LOAN", 4, "2024-01-01T00:00:00Z", None]]}
        )
    ) is None


def test_legacy_payload_decodes(sample_products, sample_transactions) -> None:
    legacy = {
        "p": [product.to_dict() for product in sample_products],
        "t": [entry.to_dict() for entry in sample_transactions],
    }
    payload = base64.b64encode(json.dumps(legacy).encode("utf-8")).decode("ascii")

    decoded = decode_legacy_snapshot(payload)

    assert decoded is not None
    assert decoded.products == sample_products
    assert decoded.transactions == sample_transactions


def test_legacy_payload_from_original_client() -> None:
    record = {
        "p": [
            {
                "id": "1",
                "name": "Premium Widget A",
                "sku": "WDG-001",
                "category": "Widgets",
                "quantity": 45,
                "minLevel": 10,
                "price": 25,
                "lastUpdated": "2024-05-01T10:00:00.000Z",
            }
        ],
        "t": [],
    }
    payload = base64.b64encode(json.dumps(record).encode("utf-8")).decode("ascii")
    # A "+" in an unescaped query string arrives as a space.
    mangled = payload.replace("+", " ")

    decoded = decode_legacy_snapshot(mangled)

    assert decoded is not None
    assert decoded.products[0].price == 25.0
    assert decoded.products[0].min_level == 10
    assert decoded.transactions == []


def test_malformed_legacy_payloads_yield_none() -> None:
    assert decode_legacy_snapshot(None) is None
    assert decode_legacy_snapshot("%%%") is None
    assert decode_legacy_snapshot(base64.b64encode(b"{not json").decode("ascii")) is None
    assert decode_legacy_snapshot(base64.b64encode(b"[]").decode("ascii")) is None
    assert decode_legacy_snapshot(
        base64.b64encode(json.dumps({"p": [{"name": "no id"}]}).encode()).decode("ascii")
    ) is None
