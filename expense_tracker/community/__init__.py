from expense_tracker.community.aggregator import (
    contribute_merchant,
    contribute_product,
    pull,
    require_opt_in,
    search_merchants,
    search_products,
    sync_contributions,
)

__all__ = [
    "contribute_merchant",
    "contribute_product",
    "pull",
    "require_opt_in",
    "search_merchants",
    "search_products",
    "sync_contributions",
]
