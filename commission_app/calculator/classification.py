# ==============================================================================
# commission_app/calculator/classification.py
# ------------------------------------------------------------------------------
# Classifies a customer relative to the rep on an order: new, rep transfer,
# or tenured (6 or 12 months) based on the customer's previous order.
# ==============================================================================

import logging

from sqlalchemy.exc import SQLAlchemyError

from commission_app import db
from commission_app.models import SalesOrder
from .errors import ClassificationLookupError

STATUS_NEW = 'new'
STATUS_REP_TRANSFER = 'rep_transfer'
STATUS_6_MONTH = '6month'
STATUS_12_MONTH = '12month'

STATUSES = (STATUS_NEW, STATUS_REP_TRANSFER, STATUS_6_MONTH, STATUS_12_MONTH)

# Policy: when order history cannot be read, classify as `new`. This fails open
# toward the first-order rate tier; revisit here if that policy changes.
CLASSIFICATION_FALLBACK_STATUS = STATUS_NEW

DAYS_PER_MONTH = 30
LAPSED_AFTER_MONTHS = 12
SIX_MONTH_TIER_MAX_MONTHS = 6


def months_between(earlier, later):
    """Whole 30-day months between two dates: floor(days / 30)."""
    days = (later - earlier).total_seconds() / 86400
    return int(days // DAYS_PER_MONTH)


def status_from_history(previous_order, current_sales_person, order_date):
    """
    Pure classification rule given the customer's latest earlier order.

    Args:
        previous_order: The latest SalesOrder strictly before `order_date`, or None.
        current_sales_person (str): Salesperson on the order being classified.
        order_date (datetime): Posting date of the order being classified.
    """
    if previous_order is None:
        return STATUS_NEW
    if (previous_order.sales_person or '') != (current_sales_person or ''):
        return STATUS_REP_TRANSFER

    months = months_between(previous_order.posting_date, order_date)
    if months >= LAPSED_AFTER_MONTHS:
        # The relationship lapsed; the customer counts as new again
        return STATUS_NEW
    if months <= SIX_MONTH_TIER_MAX_MONTHS:
        return STATUS_6_MONTH
    return STATUS_12_MONTH


def find_previous_order(customer_id, order_date):
    """Latest order of `customer_id` posted strictly before `order_date`."""
    if order_date is None:
        raise ClassificationLookupError(f"Order for customer {customer_id} has no posting date")
    try:
        return (SalesOrder.query
                .filter(SalesOrder.customer_id == customer_id,
                        SalesOrder.posting_date.isnot(None),
                        SalesOrder.posting_date < order_date)
                .order_by(SalesOrder.posting_date.desc())
                .limit(1)
                .first())
    except SQLAlchemyError as e:
        db.session.rollback()
        raise ClassificationLookupError(f"Order history lookup failed for customer {customer_id}: {e}") from e


def classify_customer(customer_id, current_sales_person, order_date):
    """
    Returns one of `STATUSES`. Lookup failures resolve to
    CLASSIFICATION_FALLBACK_STATUS instead of failing the calculation.
    """
    try:
        previous = find_previous_order(customer_id, order_date)
    except ClassificationLookupError as e:
        logging.warning(f"{e}; defaulting to '{CLASSIFICATION_FALLBACK_STATUS}'")
        return CLASSIFICATION_FALLBACK_STATUS
    return status_from_history(previous, current_sales_person, order_date)
