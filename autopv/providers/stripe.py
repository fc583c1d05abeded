"""
autopv.providers.stripe
=======================
Stripe export: customers matching the subject's email, plus each
customer's charges and payment methods.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from autopv.core.exceptions import CredentialError, ProviderError
from autopv.providers.base import BaseProvider


DEFAULT_MAX_RECORDS = 100


class StripeProvider(BaseProvider):
    """
    Stripe REST API client (read-only).

    Usage
    -----
    provider = StripeProvider(secret_key)
    data = provider.export("user@example.com")
    data["customers"], data["charges"], data["methods"]
    """

    name = "stripe"
    base_url = "https://api.stripe.com/v1"

    def __init__(self, token: str, max_records: int = DEFAULT_MAX_RECORDS, **kwargs: Any):
        super().__init__(token, **kwargs)
        self.max_records = max_records

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    def export(self, subject: str, scope: Optional[str] = None) -> Dict[str, Any]:
        """Export customer records for the email `subject`. `scope` is unused."""
        result: Dict[str, List[Any]] = {"customers": [], "charges": [], "methods": []}

        search = self._get_json(
            "/customers/search",
            params={"query": f"email:'{subject}'", "limit": min(self.max_records, 100)},
        )
        result["customers"] = list(search.get("data", []))[: self.max_records]

        if not result["customers"]:
            self._logger.warn("no_customers", provider=self.name)
            return result

        for customer in result["customers"]:
            customer_id = customer.get("id")
            try:
                result["charges"].extend(
                    self._list("/charges", {"customer": customer_id})
                )
                result["methods"].extend(
                    self._list("/payment_methods", {"customer": customer_id})
                )
            except CredentialError:
                raise
            except ProviderError as exc:
                # One broken customer must not lose the others
                self._logger.warn(
                    "customer_export_failed",
                    customer=customer_id,
                    error=exc.message,
                )

        self._logger.log(
            "export",
            provider=self.name,
            customers=len(result["customers"]),
            charges=len(result["charges"]),
            methods=len(result["methods"]),
        )
        return result

    def _list(self, path: str, params: Dict[str, Any]) -> List[Any]:
        """Cursor pagination with starting_after, capped at max_records."""
        items: List[Any] = []
        query = dict(params, limit=min(self.max_records, 100))

        while len(items) < self.max_records:
            page = self._get_json(path, params=query)
            data = page.get("data", [])
            items.extend(data)
            if not page.get("has_more") or not data:
                break
            query["starting_after"] = data[-1]["id"]

        return items[: self.max_records]


def calculate_total_charges(charges: Iterable[Dict[str, Any]]) -> int:
    """Sum of succeeded charge amounts, in the smallest currency unit."""
    return sum(
        int(c.get("amount", 0)) for c in charges if c.get("status") == "succeeded"
    )


def format_amount(amount: int, currency: str = "usd") -> str:
    """Format a smallest-unit amount, e.g. 1999 → "19.99 USD"."""
    return f"{amount / 100:,.2f} {currency.upper()}"
