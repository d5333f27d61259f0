"""Flat-rate shipping quotes."""
import math
from decimal import Decimal

from vialworks.exceptions import ValidationError

# (max weight in lb, price)
RATE_TIERS = (
    (Decimal('5'), Decimal('10.00')),
    (Decimal('10'), Decimal('15.00')),
)
HEAVY_BASE = Decimal('20.00')
HEAVY_PER_LB = Decimal('1.00')


def _weight(weight_lb) -> Decimal:
    try:
        weight = Decimal(str(weight_lb))
    except ArithmeticError:
        raise ValidationError('Invalid weight', ['weight_lb must be a number'])
    if not weight.is_finite() or weight < 0:
        raise ValidationError('Invalid weight', ['weight_lb must be zero or more'])
    return weight


def calculate_shipping(weight_lb) -> Decimal:
    """
    Shipping price for a parcel.

    Up to 5 lb costs 10.00, up to 10 lb costs 15.00; heavier parcels cost
    20.00 plus 1.00 for every started pound over 10.
    """
    weight = _weight(weight_lb)
    for limit, price in RATE_TIERS:
        if weight <= limit:
            return price
    extra = math.ceil(weight - RATE_TIERS[-1][0])
    return HEAVY_BASE + HEAVY_PER_LB * extra


def shipping_label(weight_lb) -> str:
    weight = _weight(weight_lb)
    if weight <= RATE_TIERS[0][0]:
        return 'Standard (up to 5 lb)'
    if weight <= RATE_TIERS[-1][0]:
        return 'Standard (5-10 lb)'
    return 'Heavy (over 10 lb)'


def quote(weight_lb) -> dict:
    return {
        'weight_lb': str(_weight(weight_lb)),
        'price': str(calculate_shipping(weight_lb)),
        'label': shipping_label(weight_lb),
    }
