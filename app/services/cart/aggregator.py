from dataclasses import dataclass, field
from decimal import Decimal
from typing import List
from app.services.coin_ledger import compute_discount
from .repository import Cart, CartLine, SellerRef


@dataclass
class VendorGroup:
    seller: SellerRef
    items: List[CartLine] = field(default_factory=list)
    is_self_purchase: bool = False

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.items), Decimal("0"))


@dataclass
class GroupTotals:
    subtotal: Decimal
    discount: int
    final: Decimal
    count: int

    def to_dict(self):
        return {
            "subtotal": float(self.subtotal),
            "discount": self.discount,
            "final": float(self.final),
            "count": self.count,
        }


def group_by_seller(cart: Cart, current_user_id) -> List[VendorGroup]:
    """Partition cart lines per seller, in first-seen order."""
    groups = {}
    for line in cart.items:
        group = groups.get(line.seller.id)
        if group is None:
            group = VendorGroup(seller=line.seller, is_self_purchase=line.seller.id == current_user_id)
            groups[line.seller.id] = group
        group.items.append(line)
    return list(groups.values())


def compute_totals(group: VendorGroup, coin_balance, apply_coins) -> GroupTotals:
    subtotal = group.subtotal
    discount = compute_discount(subtotal, coin_balance, apply_coins)
    return GroupTotals(
        subtotal=subtotal,
        discount=discount,
        final=max(subtotal - discount, Decimal("0")),
        count=sum(line.quantity for line in group.items),
    )


def summarize(cart: Cart, current_user_id, coin_balance) -> list:
    """Cart view: each group priced against the same starting balance."""
    summary = []
    for group in group_by_seller(cart, current_user_id):
        totals = compute_totals(group, coin_balance, cart.apply_coins)
        summary.append(
            {
                "seller": group.seller.model_dump(),
                "is_self_purchase": group.is_self_purchase,
                "items": [
                    {
                        "product_id": line.product.id,
                        "name": line.product.name,
                        "price": float(line.product.price),
                        "quantity": line.quantity,
                        "image_url": line.product.image_url,
                    }
                    for line in group.items
                ],
                "totals": totals.to_dict(),
            }
        )
    return summary
