from typing import Optional, Tuple


def apply_discount(price: float, discount_type: Optional[str], discount_value: Optional[float]) -> float:
    """
    Reduce a price by a flat amount or a percentage.

    Args:
        price: Price before the discount
        discount_type: "flat" or "percentage"; anything else leaves the price as is
        discount_value: Amount (flat) or percent (percentage); None counts as 0

    Returns:
        Discounted price, never below 0
    """
    value = discount_value or 0

    if discount_type == "flat":
        return max(0.0, price - value)
    if discount_type == "percentage":
        return max(0.0, price - (price * value / 100))
    return price


def product_base_price(product: dict) -> float:
    """Unit price of a product after its own discount."""
    return apply_discount(
        product.get("unit_price", 0),
        product.get("discount_type"),
        product.get("discount_value")
    )


def offer_prices(product: dict, rule: dict) -> Tuple[float, float]:
    """
    Two-stage price of an offered product: product discount, then rule discount.

    Returns:
        (base_price, final_price) with final_price <= base_price <= unit_price
    """
    base_price = product_base_price(product)
    final_price = apply_discount(base_price, rule.get("discount_type"), rule.get("discount_value"))
    return base_price, final_price
