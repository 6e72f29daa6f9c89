from .repository import Cart, CartLine, CartRepository, ProductSnapshot, SellerRef, storage_key
from .aggregator import GroupTotals, VendorGroup, compute_totals, group_by_seller, summarize

__all__ = [
    "Cart",
    "CartLine",
    "CartRepository",
    "ProductSnapshot",
    "SellerRef",
    "storage_key",
    "GroupTotals",
    "VendorGroup",
    "compute_totals",
    "group_by_seller",
    "summarize",
]
