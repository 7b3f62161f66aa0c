# ==============================================================================
# commission_app/calculator/engine.py
# ------------------------------------------------------------------------------
# Monthly commission calculation over the ingested order ledger.
# ==============================================================================

import logging
from datetime import datetime

from commission_app.models import CommissionRecord, CrmCompany, Customer, MonthlyCommissionSummary, Rep, SalesOrder
from .classification import STATUS_REP_TRANSFER, classify_customer
from .errors import ReferenceDataMissing
from .money import ZERO, percent_of, quantize_money, to_decimal
from .normalizer import clean_text
from .rates import rep_transfer_commission, rep_transfer_rule, resolve_rate
from .reference import CalculationConfig
from .schema import DEFAULT_ACCOUNT_TYPE
from .storage import BatchWriter

DEFAULT_SEGMENT = 'Distributor'
NO_COMMISSION_ACCOUNT_TYPES = {'retail'}
PAID_STATUS = 'paid'


def commission_month_key(month, year):
    return f"{int(year)}-{int(month):02d}"


def commission_record_id(sales_person, commission_month, order_id):
    return f"{sales_person}_{commission_month}_order_{order_id}"


def summary_id(sales_person, commission_month):
    return f"{sales_person}_{commission_month}"


def build_rep_lookup(reps):
    """
    Maps ERP salesperson strings to reps: by salesperson code, then by ERP
    username, then by first name when that key is still free.
    """
    lookup = {}
    for rep in reps:
        if rep.sales_person:
            lookup[rep.sales_person] = rep
        if rep.fishbowl_username:
            lookup[rep.fishbowl_username] = rep
    for rep in reps:
        first_name = (rep.name or '').split(' ')[0]
        if first_name and first_name not in lookup:
            lookup[first_name] = rep
    return lookup


class SegmentLookup:
    """Customer segment from the CRM, falling back to the customer's account type."""

    def __init__(self, companies):
        self.by_id = {c.id: c for c in companies}
        self.by_account = {clean_text(c.account_order_id): c for c in companies if c.account_order_id}

    def segment_for(self, customer, account_type):
        company = None
        if customer is not None:
            company = self.by_id.get(customer.copper_id) or self.by_account.get(clean_text(customer.account_number))
        if company is not None and clean_text(company.account_type):
            return clean_text(company.account_type)
        return account_type or DEFAULT_SEGMENT


def order_account_type(customer, order):
    if customer is not None:
        account_type = clean_text(customer.account_type_override) or clean_text(customer.account_type)
        if account_type:
            return account_type
    return clean_text(order.account_type) or DEFAULT_ACCOUNT_TYPE


def load_previous_results(commission_month, sales_person=None):
    """
    Ids of the month's stored results that a new run must rewrite or remove:
    unpaid commission records and monthly summaries.

    Returns:
        tuple: (set of record ids, set of summary ids)
    """
    records = CommissionRecord.query.filter(CommissionRecord.commission_month == commission_month)
    summaries = MonthlyCommissionSummary.query.filter(MonthlyCommissionSummary.month == commission_month)
    if sales_person:
        records = records.filter(CommissionRecord.sales_person == sales_person)
        summaries = summaries.filter(MonthlyCommissionSummary.sales_person == sales_person)
    record_ids = {r.id for r in records if r.paid_status != PAID_STATUS}
    return record_ids, {s.id for s in summaries}


def compute_commission(order_amount, rate, status, rates):
    """
    Commission for one order, rounded to cents. Rep transfers use the title's
    special rule when it is enabled.
    """
    rule = rep_transfer_rule(rates) if status == STATUS_REP_TRANSFER else None
    if rule is not None:
        return quantize_money(rep_transfer_commission(rule, order_amount))
    return quantize_money(percent_of(order_amount, rate))


def calculate_monthly_commissions(month, year, sales_person=None, max_batch_size=400):
    """
    Calculates commissions for every order of a commission month and rewrites
    the per-rep monthly summaries. Unpaid records and summaries the run no
    longer produces are removed, so a re-run never leaves stale totals behind.

    Args:
        month (int): 1-12.
        year (int): Four-digit year.
        sales_person (str): Optional ERP salesperson code to restrict the run to.

    Returns:
        dict: {processed, commissionsCalculated, totalCommission, perRepSummary, skipped,
              removed, failedBatches}

    Raises:
        FatalConfigError: No title has a commission rate table.
    """
    commission_month = commission_month_key(month, year)
    logging.info("=" * 80)
    logging.info(f"STARTING COMMISSION CALCULATION FOR {commission_month}" + (f" ({sales_person})" if sales_person else " (all reps)"))
    logging.info("=" * 80)

    config = CalculationConfig.load()
    config.log_state()

    reps = build_rep_lookup(Rep.query.all())
    customers = {c.id: c for c in Customer.query.all()}
    segments = SegmentLookup(CrmCompany.query.all())

    query = SalesOrder.query.filter(SalesOrder.commission_month == commission_month)
    if sales_person:
        query = query.filter(SalesOrder.sales_person == sales_person)
    orders = query.order_by(SalesOrder.posting_date, SalesOrder.id).all()
    stale_records, stale_summaries = load_previous_results(commission_month, sales_person)

    result = {
        'month': commission_month,
        'processed': 0,
        'commissionsCalculated': 0,
        'totalCommission': ZERO,
        'perRepSummary': {},
        'skipped': {'inactiveRep': 0, 'retail': 0, 'noRateTable': 0, 'noRate': 0},
        'removed': {'records': 0, 'summaries': 0},
        'failedBatches': 0,
    }
    if orders:
        logging.info(f"--- Found {len(orders)} orders to process. ---")
    else:
        logging.info(f"No orders found for {commission_month}")
    writer = BatchWriter(max_batch_size)
    calculated_at = datetime.utcnow()

    for order in orders:
        result['processed'] += 1

        rep = reps.get(order.sales_person)
        if rep is None or not rep.active:
            logging.debug(f"Skipping order {order.num} - rep {order.sales_person} not found or inactive")
            result['skipped']['inactiveRep'] += 1
            continue

        customer = customers.get(order.customer_id)
        account_type = order_account_type(customer, order)
        if account_type.lower() in NO_COMMISSION_ACCOUNT_TYPES:
            logging.debug(f"Skipping order {order.num} - customer {order.customer_name} is Retail (no commission)")
            result['skipped']['retail'] += 1
            continue

        try:
            rates = config.rates_for_title(rep.title)
        except ReferenceDataMissing as e:
            logging.warning(f"Skipping order {order.num} - {e}")
            result['skipped']['noRateTable'] += 1
            continue

        segment = segments.segment_for(customer, account_type)
        status = classify_customer(order.customer_id, order.sales_person, order.posting_date)
        rate = resolve_rate(rates, rep.title, segment, status)
        if rate is None:
            logging.warning(f"Skipping order {order.num} - no rate for {rep.title}, {segment}, {status}")
            result['skipped']['noRate'] += 1
            continue

        revenue = to_decimal(order.revenue)
        order_amount = (to_decimal(order.order_value) or revenue) if config.use_order_value else revenue
        commission = compute_commission(order_amount, rate, status, rates)

        logging.debug(
            f"Order {order.num}: {account_type} / {segment} / {status} -> "
            f"{order_amount} x {rate}% = {commission}"
        )

        record_id = commission_record_id(order.sales_person, commission_month, order.id)
        stale_records.discard(record_id)
        writer.set(CommissionRecord, record_id, {
            'rep_id': rep.id,
            'sales_person': order.sales_person,
            'rep_name': rep.name,
            'rep_title': rep.title,
            'order_id': order.id,
            'order_num': order.num,
            'customer_id': order.customer_id,
            'customer_name': order.customer_name,
            'account_type': account_type,
            'customer_segment': segment,
            'customer_status': status,
            'order_revenue': quantize_money(order_amount),
            'order_value': quantize_money(order.order_value or revenue),
            'commission_rate': rate,
            'commission_amount': commission,
            'posting_date': order.posting_date,
            'commission_month': commission_month,
            'commission_year': int(year),
            'calculated_at': calculated_at,
            'notes': f"{account_type} - {status} - {segment}",
        })

        result['commissionsCalculated'] += 1
        result['totalCommission'] += commission
        rep_summary = result['perRepSummary'].setdefault(order.sales_person, {
            'repName': rep.name, 'orders': 0, 'revenue': ZERO, 'commission': ZERO,
        })
        rep_summary['orders'] += 1
        rep_summary['revenue'] += revenue
        rep_summary['commission'] += commission

    logging.info("--- Writing monthly summaries. ---")
    for rep_code, rep_summary in result['perRepSummary'].items():
        # Full overwrite: re-running a month never accumulates on top of an old run
        rep_summary_id = summary_id(rep_code, commission_month)
        stale_summaries.discard(rep_summary_id)
        writer.set(MonthlyCommissionSummary, rep_summary_id, {
            'sales_person': rep_code,
            'rep_name': rep_summary['repName'],
            'month': commission_month,
            'year': int(year),
            'total_orders': rep_summary['orders'],
            'total_revenue': quantize_money(rep_summary['revenue']),
            'total_commission': quantize_money(rep_summary['commission']),
            'calculated_at': calculated_at,
        })

    if stale_records or stale_summaries:
        logging.info(f"--- Removing {len(stale_records)} records and {len(stale_summaries)} summaries no longer earned. ---")
    for record_id in sorted(stale_records):
        writer.delete(CommissionRecord, record_id)
    for stale_id in sorted(stale_summaries):
        writer.delete(MonthlyCommissionSummary, stale_id)
    result['removed'] = {'records': len(stale_records), 'summaries': len(stale_summaries)}

    writer.close()
    result['failedBatches'] = writer.failed_batches
    logging.info(
        f"--- Calculation Finished: {result['commissionsCalculated']} of {result['processed']} orders, "
        f"total commission {result['totalCommission']}. ---"
    )
    return result
