# Overview: Service-layer operations for non-metered product sales inside a shift closure.

"""
Product Sale Service

WHY: Besides metered fuel, a shift sells counter products (lubricants,
additives, shop items). Their totals are part of the closure's sales value,
so recording or correcting one moves the closure total.

DESIGN PRINCIPLES:
- Totals are integer cents: quantity x unit price, rounded half-up
- Closure totals are recomputed from the rows after every change
- A corrected sale's value delta goes to the sale's own payment method,
  and to the sales cash movement when that method is cash
- Every change is written to the shift audit trail
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from flask import current_app

from ..errors import NotFound, ShiftLocked, ValidationError
from ..extensions import db
from ..models import PaymentCategory, PaymentMethod, Product, ProductSale, ShiftClosure
from ..models.audit import CHANGE_PRODUCT_SALE
from ..numeric import Number, decimal_str, money_cents, round3, to_decimal
from . import allocation_service, cash_register_service
from .audit_service import record_change
from .concurrency import atomic, lock_for_update
from .shift_service import recompute_closure_totals

logger = logging.getLogger(__name__)


@dataclass
class ProductSaleCorrection:
    sale: ProductSale
    value_delta_cents: int = 0
    allocation_delta_cents: int = 0
    cash_delta_cents: int = 0

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(),
            "value_delta_cents": self.value_delta_cents,
            "allocation_delta_cents": self.allocation_delta_cents,
            "cash_delta_cents": self.cash_delta_cents,
        }


def _parse_quantity(value: Number) -> Decimal:
    try:
        quantity = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid quantity: {value!r}")
    if not quantity.is_finite() or quantity <= 0:
        raise ValidationError("Quantity sold must be greater than zero")
    return round3(quantity)


def _check_price(unit_price_cents) -> int:
    if not isinstance(unit_price_cents, int) or isinstance(unit_price_cents, bool) or unit_price_cents <= 0:
        raise ValidationError("Unit price must be a positive integer (cents)")
    return unit_price_cents


def _editable_closure(closure_id: int) -> ShiftClosure:
    closure = lock_for_update(db.session.query(ShiftClosure).filter_by(id=closure_id)).first()
    if not closure:
        raise NotFound("ShiftClosure", closure_id)
    if not closure.is_editable:
        raise ShiftLocked(closure.id, closure.status)
    return closure


def record_product_sale(
    closure_id: int,
    product_id: int,
    quantity: Number,
    *,
    unit_price_cents: int | None = None,
    payment_method_code: str | None = None,
    actor_id: int | None = None,
) -> ProductSale:
    """
    Record a counter sale in a shift closure.

    unit_price_cents defaults to the product's current price. The payment
    breakdown is recorded separately (allocation_service.set_allocations).
    """
    qty = _parse_quantity(quantity)
    if unit_price_cents is not None:
        _check_price(unit_price_cents)

    with atomic():
        closure = _editable_closure(closure_id)
        product = db.session.get(Product, product_id)
        if not product:
            raise NotFound("Product", product_id)

        price = unit_price_cents if unit_price_cents is not None else product.price_cents
        _check_price(price)

        method = allocation_service.get_payment_method(payment_method_code) if payment_method_code else None

        sale = ProductSale(
            shift_closure_id=closure.id,
            product_id=product.id,
            payment_method_id=method.id if method else None,
            quantity=qty,
            unit_price_cents=price,
            total_cents=money_cents(qty, price),
        )
        db.session.add(sale)
        db.session.flush()

        recompute_closure_totals(closure)

        record_change(
            shift_id=closure.shift_id,
            actor_id=actor_id,
            change_kind=CHANGE_PRODUCT_SALE,
            new_payload=sale.to_dict(),
            description=f"Product {product.code} sold: {decimal_str(qty)} x {price}",
        )

    return sale


def correct_product_sale(
    sale_id: int,
    *,
    quantity: Number | None = None,
    unit_price_cents: int | None = None,
    actor_id: int | None = None,
) -> ProductSaleCorrection:
    """
    Correct the quantity and/or unit price of a recorded product sale.

    Raises:
        NotFound: unknown sale
        ShiftLocked: the sale's closure is LOCKED or FINALIZED
        ValidationError: bad values, or nothing to change
    """
    if quantity is None and unit_price_cents is None:
        raise ValidationError("Provide a quantity or a unit price to correct", sale_id=sale_id)
    qty = _parse_quantity(quantity) if quantity is not None else None
    if unit_price_cents is not None:
        _check_price(unit_price_cents)

    with atomic():
        sale = lock_for_update(db.session.query(ProductSale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFound("ProductSale", sale_id)
        closure = _editable_closure(sale.shift_closure_id)

        before = sale.to_dict()
        if qty is not None:
            sale.quantity = qty
        if unit_price_cents is not None:
            sale.unit_price_cents = unit_price_cents
        old_total = sale.total_cents
        sale.total_cents = money_cents(sale.quantity, sale.unit_price_cents)
        db.session.flush()

        result = ProductSaleCorrection(sale=sale, value_delta_cents=sale.total_cents - old_total)
        recompute_closure_totals(closure)

        tolerance = current_app.config.get("PRECISION_TOLERANCE_CENTS", 1)
        method = db.session.get(PaymentMethod, sale.payment_method_id) if sale.payment_method_id else None
        if abs(result.value_delta_cents) <= tolerance or method is None:
            allocation_service.rebalance(closure)
        else:
            result.allocation_delta_cents = allocation_service.apply_delta(closure, method.code, result.value_delta_cents)
            if result.allocation_delta_cents and method.payment_category == PaymentCategory.CASH:
                result.cash_delta_cents = cash_register_service.apply_sales_cash_delta(
                    closure, result.allocation_delta_cents
                )

        record_change(
            shift_id=closure.shift_id,
            actor_id=actor_id,
            change_kind=CHANGE_PRODUCT_SALE,
            old_payload=before,
            new_payload=sale.to_dict(),
            description=f"Product sale {sale.id} corrected: total {old_total} -> {sale.total_cents}",
        )

    logger.info(
        "Product sale %s corrected: value delta=%s allocation=%s cash=%s",
        sale_id, result.value_delta_cents, result.allocation_delta_cents, result.cash_delta_cents,
    )
    return result
