# ==============================================================================
# commission_app/calculator/ingestion.py
# ------------------------------------------------------------------------------
# Imports an ERP sales-order line item extract into the customer / order /
# line item ledger.
#
# Pass 1 aggregates commissionable line totals per order number (pure).
# Pass 2 upserts customers, orders and line items in bounded batches and
# reports progress to an import_progress record a client can poll.
# ==============================================================================

import json
import logging
import time
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from commission_app import db
from commission_app.models import CommissionRecord, Customer, ImportProgress, LineItem, SalesOrder
from .errors import FatalConfigError, RowError
from .money import ZERO
from .normalizer import (clean_text, first_present, normalize_account_type, parse_amount,
                         parse_flexible_date, sanitize_key)
from .reference import load_active_crm_companies, load_commission_rules
from .schema import (ALTERNATE_CHANNEL_ORDER_PREFIX, ALTERNATE_CHANNEL_SALES_PEOPLE,
                     CC_PROCESSING_MARKERS, DEFAULT_ACCOUNT_TYPE, EXCLUSION_LABEL_FIELDS,
                     ORDER_FIELDS, REQUIRED_ORDER_FIELDS, SHIPPING_MARKERS)
from .storage import BatchWriter

SOURCE = 'fishbowl_unified'


def field(row, name):
    """Value of a logical field, trying each accepted header spelling in order."""
    return first_present(row, ORDER_FIELDS[name])


def order_number_of(row):
    return clean_text(field(row, 'order_number'))


def order_totals_key(row):
    """Orders are keyed by their ERP id; rows that carry none fall back to the order number."""
    order_id = field(row, 'order_id')
    if clean_text(order_id):
        return sanitize_key(order_id)
    return order_number_of(row)


# --- Pass 1: aggregation -------------------------------------------------------

class OrderTotals:
    """Running totals of one order's commissionable lines."""

    __slots__ = ('revenue', 'order_value', 'line_count')

    def __init__(self):
        self.revenue = ZERO
        self.order_value = ZERO
        self.line_count = 0

    def add(self, revenue, order_value):
        self.revenue += revenue
        self.order_value += order_value
        self.line_count += 1

    def __repr__(self):
        return f'<OrderTotals revenue={self.revenue} orderValue={self.order_value} lines={self.line_count}>'


def exclusion_flags(row):
    """(is_shipping, is_cc_processing), matched case-insensitively on every label column."""
    label = ' '.join(clean_text(field(row, name)) for name in EXCLUSION_LABEL_FIELDS).lower()
    is_shipping = any(marker in label for marker in SHIPPING_MARKERS)
    is_cc = any(marker in label for marker in CC_PROCESSING_MARKERS)
    return is_shipping, is_cc


def aggregate_order_totals(rows, exclude_shipping=True, exclude_cc_processing=True):
    """
    First pass. Sums line revenue and order value per order with exact decimal
    addition, leaving out shipping and card-processing fee lines. Two orders
    that share an order number keep separate totals.

    Returns:
        dict: order id (or order number when the row has no id) -> OrderTotals
    """
    totals = {}
    for row in rows:
        if not order_number_of(row):
            continue
        is_shipping, is_cc = exclusion_flags(row)
        if (is_shipping and exclude_shipping) or (is_cc and exclude_cc_processing):
            continue
        totals.setdefault(order_totals_key(row), OrderTotals()).add(
            parse_amount(field(row, 'revenue')),
            parse_amount(field(row, 'order_value')),
        )
    return totals


# --- Account type precedence ---------------------------------------------------

def resolve_account_type(existing, crm_account_type=None, erp_account_type=None):
    """
    Applies override > existing > CRM > ERP > default("Retail").

    Args:
        existing: The stored Customer, or None on first sighting.
        crm_account_type (str): Normalized type from the active CRM company, if any.
        erp_account_type (str): Raw type carried on the ERP row, if any.

    A stored type keeps the provenance it was stored with, so re-importing the
    same file leaves the customer unchanged.

    Returns:
        tuple: (account_type, account_type_source)
    """
    if existing is not None and clean_text(existing.account_type_override):
        return clean_text(existing.account_type_override), 'override'
    if existing is not None and clean_text(existing.account_type):
        return clean_text(existing.account_type), existing.account_type_source or 'existing'
    if clean_text(crm_account_type):
        return clean_text(crm_account_type), 'copper'
    if clean_text(erp_account_type):
        return normalize_account_type(erp_account_type), 'fishbowl'
    return DEFAULT_ACCOUNT_TYPE, 'fishbowl'


def alternate_channel(order_number, sales_person):
    """Detects web-store orders: returns (is_shopify, platform)."""
    sales_person = clean_text(sales_person).lower()
    is_shopify = order_number.startswith(ALTERNATE_CHANNEL_ORDER_PREFIX) or \
        sales_person in ALTERNATE_CHANNEL_SALES_PEOPLE
    if not is_shopify:
        return False, ''
    return True, 'commerce' if 'commerce' in sales_person else 'shopify'


# --- Progress side channel -----------------------------------------------------

def new_import_id():
    return f"import_{int(time.time() * 1000)}"


def write_progress(import_id, **values):
    """
    Best-effort write of the import progress record. Failures are logged and
    swallowed: progress must never abort an import.
    """
    if not import_id:
        return
    try:
        progress = db.session.get(ImportProgress, import_id)
        if progress is None:
            progress = ImportProgress(id=import_id)
            db.session.add(progress)
        stats = values.pop('stats', None)
        if stats is not None:
            progress.stats_json = json.dumps(stats)
        for column, value in values.items():
            setattr(progress, column, value)
        progress.updated_at = datetime.utcnow()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logging.warning(f"Progress update for {import_id} failed: {e}")


# --- Pass 2: reconciliation ----------------------------------------------------

class OrderIngestor:
    """
    Runs one import of an order extract. Each run owns its batch sequence;
    concurrent imports of the same file must be serialized by the caller.
    """

    def __init__(self, rows, import_id=None, max_batch_size=400, progress_every=50):
        self.rows = rows
        self.import_id = import_id
        self.progress_every = progress_every
        self.writer = BatchWriter(max_batch_size)
        self.stats = {
            'processed': 0,
            'customersCreated': 0,
            'customersUpdated': 0,
            'ordersCreated': 0,
            'ordersUpdated': 0,
            'ordersLocked': 0,
            'itemsCreated': 0,
            'itemsUpdated': 0,
            'skipped': 0,
            'failedBatches': 0,
        }
        self.rules = {}
        self.crm_index = {}
        self.order_totals = {}
        self.processed_customers = set()
        self.processed_orders = set()
        # customer id -> (account type, source), so an order and its items never disagree
        self.customer_types = {}

    def run(self):
        logging.info("=" * 80)
        logging.info(f"STARTING ORDER IMPORT ({len(self.rows)} rows, import {self.import_id})")
        logging.info("=" * 80)

        self.rules = load_commission_rules()
        self.crm_index = load_active_crm_companies()

        logging.info("--- Starting Pass 1: Aggregating order totals with exact decimal math. ---")
        self.order_totals = aggregate_order_totals(
            self.rows,
            exclude_shipping=self.rules.get('excludeShipping', True),
            exclude_cc_processing=self.rules.get('excludeCCProcessing', True),
        )
        logging.info(f"--- Pass 1 Finished. {len(self.order_totals)} unique orders from {len(self.rows)} line items. ---")

        total_rows = len(self.rows)
        write_progress(self.import_id, status='processing', total_rows=total_rows, stats=self.stats)

        logging.info("--- Starting Pass 2: Upserting customers, orders and line items. ---")
        current_customer, current_order = '', ''
        for index, row in enumerate(self.rows):
            self.stats['processed'] += 1
            try:
                current_customer, current_order = self._process_row(index + 2, row)
            except RowError as e:
                self.stats['skipped'] += 1
                logging.warning(f"SKIPPING {e}")

            if self.stats['processed'] % self.progress_every == 0:
                self._report_progress(total_rows, current_customer, current_order)

        self.writer.close()
        self.stats['failedBatches'] = self.writer.failed_batches
        logging.info("--- Pass 2 Finished. ---")
        logging.info(f"Import complete: {self.stats}")

        write_progress(self.import_id, status='complete', current_row=total_rows, percentage=100.0,
                       current_customer=current_customer, current_order=current_order, stats=self.stats)
        return dict(self.stats)

    def _report_progress(self, total_rows, current_customer, current_order):
        processed = self.stats['processed']
        percentage = round(processed / total_rows * 100, 1) if total_rows else 0.0
        self.stats['failedBatches'] = self.writer.failed_batches
        logging.info(f"Progress: {processed} of {total_rows} ({percentage}%)")
        write_progress(self.import_id, status='processing', current_row=processed, percentage=percentage,
                       current_customer=current_customer[:256], current_order=current_order[:64],
                       stats=self.stats)

    def _process_row(self, row_number, row):
        customer_raw = field(row, 'customer_id')
        order_number = order_number_of(row)
        order_raw = field(row, 'order_id')
        line_raw = field(row, 'line_item_id')
        present = dict(zip(REQUIRED_ORDER_FIELDS, (customer_raw, order_number, order_raw, line_raw)))
        missing = [name for name, value in present.items() if not clean_text(value)]
        if missing:
            raise RowError(row_number, missing)

        customer_id = sanitize_key(customer_raw)
        order_id = sanitize_key(order_raw)
        customer_name = clean_text(field(row, 'customer_name'))

        if customer_id not in self.processed_customers:
            self._upsert_customer(customer_id, customer_name, row)
            self.processed_customers.add(customer_id)

        parsed_date = parse_flexible_date(field(row, 'posting_date'))
        sales_person = clean_text(field(row, 'sales_person'))
        is_shopify, platform = alternate_channel(order_number, sales_person)

        if order_id not in self.processed_orders:
            self._upsert_order(order_id, order_number, customer_id, customer_name, sales_person,
                               parsed_date, is_shopify, platform, row)
            self.processed_orders.add(order_id)

        self._upsert_line_item(sanitize_key(line_raw), order_id, order_number, customer_id,
                               sales_person, parsed_date, is_shopify, row)
        return customer_name or customer_id, order_number

    def _upsert_customer(self, customer_id, customer_name, row):
        existing = db.session.get(Customer, customer_id)
        account_number = clean_text(field(row, 'account_number'))
        crm = self.crm_index.get(account_number)
        account_type, source = resolve_account_type(
            existing,
            crm_account_type=crm['accountType'] if crm else None,
            erp_account_type=field(row, 'account_type'),
        )
        self.customer_types[customer_id] = (account_type, source)

        values = {
            'name': customer_name,
            'account_number': account_number,
            'account_id': clean_text(field(row, 'customer_id')),
            'account_type': account_type,
            'account_type_source': source,
            'updated_at': datetime.utcnow(),
            'source': SOURCE,
        }
        for name in ('billing_address', 'billing_city', 'billing_state', 'billing_zip',
                     'shipping_address', 'shipping_city', 'shipping_state', 'shipping_zip',
                     'shipping_country'):
            values[name] = clean_text(field(row, name))

        self.writer.set(Customer, customer_id, values)
        self.stats['customersUpdated' if existing is not None else 'customersCreated'] += 1
        logging.debug(f"Customer {customer_id}: accountType={account_type} (source={source})")

    def _upsert_order(self, order_id, order_number, customer_id, customer_name, sales_person,
                      parsed_date, is_shopify, platform, row):
        account_type, source = self.customer_types[customer_id]
        existing = db.session.get(SalesOrder, order_id)

        if existing is not None and CommissionRecord.query.filter_by(order_id=order_id).first() is not None:
            # Commission already paid out against this order: refresh the account type only
            self.writer.set(SalesOrder, order_id, {
                'account_type': account_type,
                'account_type_source': source,
                'updated_at': datetime.utcnow(),
            })
            self.stats['ordersLocked'] += 1
            return

        totals = self.order_totals.get(order_id)
        values = {
            'num': order_number,
            'customer_id': customer_id,
            'customer_name': customer_name,
            'sales_person': sales_person,
            'sales_rep': clean_text(field(row, 'sales_rep')),
            'posting_date': parsed_date.date if parsed_date else None,
            'commission_month': parsed_date.month_key if parsed_date else '',
            'commission_year': parsed_date.year if parsed_date else 0,
            'revenue': totals.revenue if totals else ZERO,
            'order_value': totals.order_value if totals else ZERO,
            'line_item_count': totals.line_count if totals else 0,
            'is_shopify': is_shopify,
            'shop_platform': platform,
            'account_type': account_type,
            'account_type_source': source,
            'updated_at': datetime.utcnow(),
            'source': SOURCE,
        }
        self.writer.set(SalesOrder, order_id, values)
        self.stats['ordersUpdated' if existing is not None else 'ordersCreated'] += 1

    def _upsert_line_item(self, line_item_id, order_id, order_number, customer_id, sales_person,
                          parsed_date, is_shopify, row):
        item_key = f"soitem_{line_item_id}"
        account_type, source = self.customer_types[customer_id]
        is_shipping, is_cc = exclusion_flags(row)
        existing = db.session.get(LineItem, item_key)

        self.writer.set(LineItem, item_key, {
            'line_item_id': line_item_id,
            'sales_order_id': order_id,
            'sales_order_num': order_number,
            'customer_id': customer_id,
            'account_type': account_type,
            'account_type_source': source,
            'sales_person': sales_person,
            'posting_date': parsed_date.date if parsed_date else None,
            'commission_month': parsed_date.month_key if parsed_date else '',
            'commission_year': parsed_date.year if parsed_date else 0,
            'part_number': clean_text(field(row, 'part_number')),
            'part_description': clean_text(field(row, 'part_description')),
            'description': clean_text(field(row, 'description')),
            'quantity': parse_amount(field(row, 'quantity')),
            'unit_price': parse_amount(field(row, 'unit_price')),
            'revenue': parse_amount(field(row, 'revenue')),
            'total_cost': parse_amount(field(row, 'total_cost')),
            'is_shopify': is_shopify,
            'is_shipping_item': is_shipping,
            'is_cc_processing_item': is_cc,
            'imported_at': datetime.utcnow(),
        })
        self.stats['itemsUpdated' if existing is not None else 'itemsCreated'] += 1


def import_orders(rows, import_id=None, filename=None):
    """
    Imports an order extract. Safe to re-run on the same file: every write is
    an upsert keyed by a stable external ID.

    Raises:
        FatalConfigError: The extract has no rows.
    """
    if not rows:
        write_progress(import_id, status='failed', error='No data found in file')
        raise FatalConfigError('No data found in file')

    write_progress(import_id, filename=filename, total_rows=len(rows))
    ingestor = OrderIngestor(
        rows,
        import_id=import_id,
        max_batch_size=current_app.config.get('INGEST_MAX_BATCH_SIZE', 400),
        progress_every=current_app.config.get('INGEST_PROGRESS_EVERY', 50),
    )
    try:
        return ingestor.run()
    except Exception as e:
        db.session.rollback()
        logging.error(f"Import {import_id} aborted after {ingestor.stats['processed']} rows: {e}", exc_info=True)
        write_progress(import_id, status='failed', error=str(e), stats=ingestor.stats)
        raise
