# Overview: Checkout pricing rules (tax and shipping) read from app config.

from __future__ import annotations

from flask import current_app


def compute_tax_cents(subtotal_cents: int, tax_rate_bps: int) -> int:
    """Tax in cents, nearest-cent rounding (half-up)."""
    return (subtotal_cents * tax_rate_bps + 5_000) // 10_000


def compute_totals(subtotal_cents: int) -> dict:
    """
    Price a cart subtotal.

    - tax: TAX_RATE_BPS basis points of the subtotal
    - shipping: SHIPPING_FEE_CENTS, waived at FREE_SHIPPING_THRESHOLD_CENTS
    """
    cfg = current_app.config
    tax_rate_bps = int(cfg.get("TAX_RATE_BPS", 0))
    shipping_fee = int(cfg.get("SHIPPING_FEE_CENTS", 0))
    free_threshold = cfg.get("FREE_SHIPPING_THRESHOLD_CENTS")

    tax_cents = compute_tax_cents(subtotal_cents, tax_rate_bps)
    if subtotal_cents == 0:
        shipping_cents = 0
    elif free_threshold is not None and subtotal_cents >= int(free_threshold):
        shipping_cents = 0
    else:
        shipping_cents = shipping_fee

    return {
        "subtotal_cents": subtotal_cents,
        "tax_cents": tax_cents,
        "shipping_cents": shipping_cents,
        "total_amount_cents": subtotal_cents + tax_cents + shipping_cents,
    }
