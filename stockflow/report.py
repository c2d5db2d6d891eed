"""AI-written inventory report.

The generator receives a read-only summary of the current data and asks a
hosted text generation model for a short markdown analysis. Every failure
turns into ``REPORT_FALLBACK_TEXT``; nothing is raised past ``generate``
except :class:`ReportBusyError` when a report is already being written.
"""
from __future__ import annotations

from threading import Lock
from typing import Any, Dict, List, Optional, Sequence
import json
import logging

import requests

from .metrics import product_value, stock_status
from .models import Product, Transaction

logger = logging.getLogger(__name__)

REPORT_FALLBACK_TEXT = (
    "Unable to generate AI report at this time. Please check your API key and connection."
)
RECENT_TRANSACTION_LIMIT = 20


class ReportBusyError(RuntimeError):
    """Raised when a report is requested while another one is still running."""


def build_report_summary(
    products: Sequence[Product], transactions: Sequence[Transaction]
) -> Dict[str, Any]:
    return {
        "products": [
            {
                "name": product.name,
                "category": product.category,
                "qty": product.quantity,
                "value": product_value(product),
                "status": stock_status(product),
            }
            for product in products
        ],
        "transactions": [
            entry.to_dict() for entry in list(transactions)[:RECENT_TRANSACTION_LIMIT]
        ],
    }


def build_prompt(summary: Dict[str, Any]) -> str:
    products_json = json.dumps(summary["products"], ensure_ascii=False)
    transactions_json = json.dumps(summary["transactions"], ensure_ascii=False)
    return (
        "Act as a senior supply chain analyst. Analyze this inventory data for a small business.\n\n"
        f"Current Inventory: {products_json}\n"
        f"Recent Transactions: {transactions_json}\n\n"
        "Provide a concise, actionable report in Markdown format.\n"
        "1. **Executive Summary**: Overall health of inventory.\n"
        "2. **Critical Alerts**: Highlight low stock items that need immediate reordering.\n"
        "3. **Value Analysis**: Which categories hold the most value?\n"
        "4. **Recommendations**: Suggest 2-3 specific actions to optimize operations "
        "(e.g., dead stock to clear, fast movers to stock up on).\n\n"
        "Keep the tone professional yet encouraging. Use bolding and lists for readability."
    )


def _extract_text(body: Any) -> Optional[str]:
    try:
        parts = body["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return None
    texts: List[str] = [part.get("text", "") for part in parts if isinstance(part, dict)]
    text = "".join(texts).strip()
    return text or None


class ReportGenerator:
    """Calls the text generation API, one request at a time."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = "gemini-2.5-flash",
        endpoint: str = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()
        self._in_flight = Lock()

    @property
    def busy(self) -> bool:
        return self._in_flight.locked()

    def generate(
        self, products: Sequence[Product], transactions: Sequence[Transaction]
    ) -> str:
        if not self._in_flight.acquire(blocking=False):
            raise ReportBusyError("A report is already being generated")
        try:
            return self._generate(products, transactions)
        finally:
            self._in_flight.release()

    def _generate(
        self, products: Sequence[Product], transactions: Sequence[Transaction]
    ) -> str:
        if not self.api_key:
            logger.warning("No report API key configured; returning fallback report")
            return REPORT_FALLBACK_TEXT
        prompt = build_prompt(build_report_summary(products, transactions))
        url = self.endpoint.format(model=self.model)
        try:
            response = self.session.post(
                url,
                headers={"x-goog-api-key": self.api_key},
                json={"contents": [{"parts": [{"text": prompt}]}]},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError):
            logger.exception("Error generating report")
            return REPORT_FALLBACK_TEXT
        text = _extract_text(body)
        if text is None:
            logger.error("Report response from %s carried no text", self.model)
            return REPORT_FALLBACK_TEXT
        return text


__all__ = [
    "REPORT_FALLBACK_TEXT",
    "ReportBusyError",
    "ReportGenerator",
    "build_prompt",
    "build_report_summary",
]
