"""autopv.providers — export clients for third-party data holders."""

from autopv.providers.base import BaseProvider
from autopv.providers.github import GitHubProvider
from autopv.providers.stripe import StripeProvider, calculate_total_charges, format_amount

__all__ = [
    "BaseProvider",
    "GitHubProvider",
    "StripeProvider",
    "calculate_total_charges",
    "format_amount",
]
