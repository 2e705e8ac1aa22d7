"""Three-way match of purchase order, goods receipt and bill."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from ..schemas.transaction import GoodsReceipt, Obligation, PurchaseOrder


class DiscrepancyType(str, Enum):
    AMOUNT = "amount"
    VENDOR = "vendor"
    QUANTITY = "quantity"


class ThreeWayStatus(str, Enum):
    """Overall outcome of a three-way match."""

    MATCHED = "matched"  # no discrepancies
    PARTIAL = "partial"  # discrepancies, none material
    DISCREPANCY = "discrepancy"  # amount off by more than the ratio of the PO total


@dataclass
class Discrepancy:
    """One difference between the purchase order, receipt and bill."""

    type: DiscrepancyType
    field: str
    po_value: Any = None
    bill_value: Any = None
    item: str | None = None
    ordered: Decimal | None = None
    received: Decimal | None = None
    difference: Decimal | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"type": self.type.value, "field": self.field}
        for key in ("po_value", "bill_value", "item", "ordered", "received", "difference"):
            value = getattr(self, key)
            if value is not None:
                data[key] = str(value) if isinstance(value, Decimal) else value
        return data


@dataclass
class ThreeWayResult:
    match_status: ThreeWayStatus
    purchase_order_id: int
    goods_receipt_id: int
    bill_id: int
    discrepancies: list[Discrepancy] = field(default_factory=list)

    @property
    def is_matched(self) -> bool:
        return self.match_status == ThreeWayStatus.MATCHED

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "match_status": self.match_status.value,
            "purchase_order_id": self.purchase_order_id,
            "goods_receipt_id": self.goods_receipt_id,
            "bill_id": self.bill_id,
            "discrepancies": [d.to_dict() for d in self.discrepancies],
        }


def find_discrepancies(
    po: PurchaseOrder,
    receipt: GoodsReceipt,
    bill: Obligation,
    amount_tolerance: Decimal = Decimal("1"),
) -> list[Discrepancy]:
    """
    Compare a purchase order, its goods receipt and the bill.

    - amount: |po.total - bill.total| > amount_tolerance (difference = bill - po)
    - vendor: the bill's vendor id differs from the PO's
    - quantity: per PO line, received quantity below ordered; a line absent
      from the receipt counts as nothing received
    """
    discrepancies: list[Discrepancy] = []

    if abs(po.total_amount - bill.total_amount) > amount_tolerance:
        discrepancies.append(
            Discrepancy(
                type=DiscrepancyType.AMOUNT,
                field="total_amount",
                po_value=po.total_amount,
                bill_value=bill.total_amount,
                difference=bill.total_amount - po.total_amount,
            )
        )

    if po.vendor_id != bill.vendor_id:
        discrepancies.append(
            Discrepancy(
                type=DiscrepancyType.VENDOR,
                field="vendor_id",
                po_value=po.vendor_name or po.vendor_id,
                bill_value=bill.counterparty or bill.vendor_id,
            )
        )

    received: dict[str, Decimal] = {}
    for line in receipt.lines:
        received[line.item] = received.get(line.item, Decimal("0")) + line.received_quantity

    for line in po.lines:
        got = received.get(line.item, Decimal("0"))
        if got < line.quantity:
            discrepancies.append(
                Discrepancy(
                    type=DiscrepancyType.QUANTITY,
                    field="items",
                    item=line.item,
                    ordered=line.quantity,
                    received=got,
                    difference=line.quantity - got,
                )
            )

    return discrepancies


def match_status(
    discrepancies: list[Discrepancy],
    po_total: Decimal,
    discrepancy_ratio: Decimal = Decimal("0.05"),
) -> ThreeWayStatus:
    """matched iff no discrepancies; discrepancy iff an amount difference
    exceeds the ratio of the PO total; partial otherwise."""
    if not discrepancies:
        return ThreeWayStatus.MATCHED
    limit = po_total * discrepancy_ratio
    if any(
        d.type == DiscrepancyType.AMOUNT and d.difference is not None and abs(d.difference) > limit
        for d in discrepancies
    ):
        return ThreeWayStatus.DISCREPANCY
    return ThreeWayStatus.PARTIAL


def three_way_match(
    po: PurchaseOrder,
    receipt: GoodsReceipt,
    bill: Obligation,
    amount_tolerance: Decimal = Decimal("1"),
    discrepancy_ratio: Decimal = Decimal("0.05"),
) -> ThreeWayResult:
    """Run the three-way match over already loaded documents."""
    discrepancies = find_discrepancies(po, receipt, bill, amount_tolerance)
    return ThreeWayResult(
        match_status=match_status(discrepancies, po.total_amount, discrepancy_ratio),
        purchase_order_id=po.id,
        goods_receipt_id=receipt.id,
        bill_id=bill.id,
        discrepancies=discrepancies,
    )
