# ==============================================================================
# commission_app/calculator/rates.py
# ------------------------------------------------------------------------------
# Maps (rep title, customer segment, customer status) to a commission percentage.
# ==============================================================================

import logging
from decimal import Decimal

from .money import ZERO, percent_of, to_decimal

SEGMENT_DISTRIBUTOR = 'distributor'
SEGMENT_WHOLESALE = 'wholesale'

# Percent of order amount; a title's own table overrides any cell it defines.
DEFAULT_RATES = {
    SEGMENT_DISTRIBUTOR: {'new': Decimal('8.0'), 'rep_transfer': Decimal('8.0'),
                          '6month': Decimal('5.0'), '12month': Decimal('3.0')},
    SEGMENT_WHOLESALE: {'new': Decimal('10.0'), 'rep_transfer': Decimal('10.0'),
                        '6month': Decimal('7.0'), '12month': Decimal('5.0')},
}
FALLBACK_RATE = Decimal('5.0')


def segment_key(segment):
    """Case-insensitive substring match, so 'Sub-Distributor' is a distributor."""
    text = (segment or '').lower()
    if SEGMENT_DISTRIBUTOR in text:
        return SEGMENT_DISTRIBUTOR
    if SEGMENT_WHOLESALE in text:
        return SEGMENT_WHOLESALE
    return None


def resolve_rate(rates, title, segment, status):
    """
    Args:
        rates (dict): The title's rate table, or None when the title has none.
        title (str): Rep title, for logging.
        segment (str): Customer segment text from the CRM.
        status (str): Classification status of the customer.

    Returns:
        Decimal: the percentage, or None when the title has no configuration
        at all (the caller skips the order).
    """
    if rates is None:
        return None

    key = segment_key(segment)
    if key is None:
        return to_decimal(rates.get('defaultRate', FALLBACK_RATE))

    configured = (rates.get('rates') or {}).get(key) or {}
    if configured.get(status) is not None:
        return to_decimal(configured[status])

    rate = DEFAULT_RATES[key].get(status)
    if rate is None:
        logging.warning(f"Unknown status '{status}' for title '{title}'; using fallback {FALLBACK_RATE}%")
        return FALLBACK_RATE
    return rate


def rep_transfer_rule(rates):
    """The title's enabled rep-transfer special rule, or None."""
    rule = ((rates or {}).get('specialRules') or {}).get('repTransfer') or {}
    return rule if rule.get('enabled') else None


def rep_transfer_commission(rule, order_amount):
    """Flat fee, or the greater of the flat fee and a fallback percentage."""
    flat_fee = to_decimal(rule.get('flatFee') or ZERO)
    if not rule.get('useGreater'):
        return flat_fee
    return max(flat_fee, percent_of(order_amount, rule.get('percentFallback') or ZERO))
