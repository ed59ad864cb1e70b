"""Deterministic order pricing. Shared by order creation and token purchase."""


def price_cents(upload_count: int, price_per_unit_cents: int) -> int:
    """Return the order total in cents; an order is always charged at least one unit."""
    if upload_count < 0:
        raise ValueError(f"upload_count must be >= 0, got {upload_count}")
    return max(upload_count, 1) * price_per_unit_cents
