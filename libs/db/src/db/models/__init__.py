"""Shared SQLAlchemy models registry for the household finance database.

Covers the tables read and written by ``statement_import``.
"""

from .finance import (
    Account,
    Base,
    CategorizationRuleRow,
    CreditCard,
    MerchantCategoryCache,
    Transaction,
)

__all__ = [
    "Account",
    "Base",
    "CategorizationRuleRow",
    "CreditCard",
    "MerchantCategoryCache",
    "Transaction",
]
