# ==============================================================================
# commission_app/models.py
# ------------------------------------------------------------------------------
# Defines the database schema using SQLAlchemy ORM models.
# ==============================================================================

from datetime import datetime
from decimal import Decimal
from commission_app import db
import json

MONEY = db.Numeric(14, 2)
LINE_AMOUNT = db.Numeric(14, 4)


class Rep(db.Model):
    """
    A sales representative. The title selects the commission rate table and
    the bonus role scale; inactive reps are excluded from calculation runs.
    """
    __tablename__ = 'rep'
    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(128))
    title = db.Column(db.String(64), index=True)
    # ERP identifiers an order's "Sales person" column may carry
    sales_person = db.Column(db.String(64), index=True)
    fishbowl_username = db.Column(db.String(64), index=True)
    active = db.Column(db.Boolean, default=True, nullable=False)

    def __repr__(self):
        return f'<Rep {self.id}: {self.name} ({self.title})>'


class Customer(db.Model):
    """
    ERP customer enriched with CRM data. `account_type_override` is set
    manually and wins over every automated source.
    """
    __tablename__ = 'customer'
    id = db.Column(db.String(128), primary_key=True)
    name = db.Column(db.String(256), default='')
    account_number = db.Column(db.String(128), index=True)
    account_id = db.Column(db.String(128))

    account_type = db.Column(db.String(32), default='')
    account_type_source = db.Column(db.String(32))
    account_type_override = db.Column(db.String(32))
    copper_id = db.Column(db.String(128))
    copper_synced_at = db.Column(db.DateTime)

    billing_address = db.Column(db.String(256), default='')
    billing_city = db.Column(db.String(128), default='')
    billing_state = db.Column(db.String(64), default='')
    billing_zip = db.Column(db.String(32), default='')
    shipping_address = db.Column(db.String(256), default='')
    shipping_city = db.Column(db.String(128), default='')
    shipping_state = db.Column(db.String(64), default='')
    shipping_zip = db.Column(db.String(32), default='')
    shipping_country = db.Column(db.String(64), default='')

    source = db.Column(db.String(32))
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Customer {self.id}: {self.name} [{self.account_type}]>'


class CrmCompany(db.Model):
    """
    A company record imported from the CRM. `is_active` is the normalized
    form of the CRM's inconsistently typed active flag, kept next to the raw value.
    """
    __tablename__ = 'crm_company'
    id = db.Column(db.String(128), primary_key=True)
    name = db.Column(db.String(256), default='')
    account_order_id = db.Column(db.String(128), index=True)
    account_type = db.Column(db.String(64), default='')
    is_active = db.Column(db.Boolean, default=False, nullable=False, index=True)
    raw_active = db.Column(db.String(32))
    street = db.Column(db.String(256), default='')
    city = db.Column(db.String(128), default='')
    state = db.Column(db.String(64), default='')
    postal_code = db.Column(db.String(32), default='')
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<CrmCompany {self.id}: {self.name}>'


class SalesOrder(db.Model):
    """
    One ERP sales order. `revenue` and `order_value` are always the totals of
    the order's commissionable line items, never a single row's value.
    """
    __tablename__ = 'sales_order'
    id = db.Column(db.String(128), primary_key=True)
    num = db.Column(db.String(64), index=True)
    customer_id = db.Column(db.String(128), index=True)
    customer_name = db.Column(db.String(256), default='')

    sales_person = db.Column(db.String(64), index=True)
    sales_rep = db.Column(db.String(128), default='')

    posting_date = db.Column(db.DateTime, index=True)
    commission_month = db.Column(db.String(7), index=True)
    commission_year = db.Column(db.Integer)

    revenue = db.Column(MONEY, default=Decimal('0'))
    order_value = db.Column(MONEY, default=Decimal('0'))
    line_item_count = db.Column(db.Integer, default=0)

    is_shopify = db.Column(db.Boolean, default=False)
    shop_platform = db.Column(db.String(32), default='')
    account_type = db.Column(db.String(32), default='')
    account_type_source = db.Column(db.String(32))

    source = db.Column(db.String(32))
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (db.Index('ix_sales_order_customer_posting', 'customer_id', 'posting_date'),)

    def __repr__(self):
        return f'<SalesOrder {self.id}: {self.num} {self.revenue}>'


class LineItem(db.Model):
    """One SKU line of a sales order, stored with its exclusion flags for auditing."""
    __tablename__ = 'line_item'
    id = db.Column(db.String(160), primary_key=True)
    line_item_id = db.Column(db.String(128), nullable=False)
    sales_order_id = db.Column(db.String(128), index=True)
    sales_order_num = db.Column(db.String(64))

    customer_id = db.Column(db.String(128), index=True)
    account_type = db.Column(db.String(32), default='')
    account_type_source = db.Column(db.String(32))
    sales_person = db.Column(db.String(64))

    posting_date = db.Column(db.DateTime)
    commission_month = db.Column(db.String(7))
    commission_year = db.Column(db.Integer)

    part_number = db.Column(db.String(128), default='')
    part_description = db.Column(db.String(512), default='')
    description = db.Column(db.String(512), default='')
    quantity = db.Column(LINE_AMOUNT, default=Decimal('0'))
    unit_price = db.Column(LINE_AMOUNT, default=Decimal('0'))
    revenue = db.Column(LINE_AMOUNT, default=Decimal('0'))
    total_cost = db.Column(LINE_AMOUNT, default=Decimal('0'))

    is_shopify = db.Column(db.Boolean, default=False)
    is_shipping_item = db.Column(db.Boolean, default=False)
    is_cc_processing_item = db.Column(db.Boolean, default=False)

    imported_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<LineItem {self.id}: {self.part_number}>'


class CommissionRecord(db.Model):
    """
    One commission per (salesperson, commission month, order). The id is the
    composite key so that re-running a month overwrites instead of duplicating.
    """
    __tablename__ = 'commission_record'
    id = db.Column(db.String(256), primary_key=True)
    rep_id = db.Column(db.String(64), index=True)
    sales_person = db.Column(db.String(64), index=True)
    rep_name = db.Column(db.String(128))
    rep_title = db.Column(db.String(64))

    order_id = db.Column(db.String(128), index=True)
    order_num = db.Column(db.String(64))
    customer_id = db.Column(db.String(128))
    customer_name = db.Column(db.String(256))
    account_type = db.Column(db.String(32))

    customer_segment = db.Column(db.String(64))
    customer_status = db.Column(db.String(32))

    order_revenue = db.Column(MONEY)
    order_value = db.Column(MONEY)
    commission_rate = db.Column(db.Numeric(7, 3))
    commission_amount = db.Column(MONEY)

    posting_date = db.Column(db.DateTime)
    commission_month = db.Column(db.String(7), index=True)
    commission_year = db.Column(db.Integer)

    calculated_at = db.Column(db.DateTime, default=datetime.utcnow)
    paid_status = db.Column(db.String(16), default='pending')
    notes = db.Column(db.String(256))

    def __repr__(self):
        return f'<CommissionRecord {self.id}: {self.commission_amount}>'


class MonthlyCommissionSummary(db.Model):
    """Per-rep monthly totals, fully rewritten by every calculation run."""
    __tablename__ = 'monthly_commission_summary'
    id = db.Column(db.String(128), primary_key=True)
    sales_person = db.Column(db.String(64), index=True)
    rep_name = db.Column(db.String(128))
    month = db.Column(db.String(7), index=True)
    year = db.Column(db.Integer)
    total_orders = db.Column(db.Integer, default=0)
    total_revenue = db.Column(MONEY, default=Decimal('0'))
    total_commission = db.Column(MONEY, default=Decimal('0'))
    paid_status = db.Column(db.String(16), default='pending')
    calculated_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<MonthlyCommissionSummary {self.id}: {self.total_commission}>'


class QuarterlyBonusEntry(db.Model):
    """
    One quota bucket line of a rep's quarterly bonus. Attainment, bucket max
    and payout are derived and recomputed whenever goal or actual change.
    """
    __tablename__ = 'quarterly_bonus_entry'
    id = db.Column(db.Integer, primary_key=True)
    quarter_id = db.Column(db.String(16), nullable=False, index=True)
    rep_id = db.Column(db.String(64), nullable=False, index=True)
    rep_name = db.Column(db.String(128))
    bucket_code = db.Column(db.String(8), nullable=False)
    # '' when the bucket has no sub-goals, so the unique constraint holds
    sub_goal_id = db.Column(db.String(64), nullable=False, default='')

    goal_value = db.Column(LINE_AMOUNT, default=Decimal('0'))
    actual_value = db.Column(LINE_AMOUNT, default=Decimal('0'))
    attainment = db.Column(db.Numeric(12, 6), default=Decimal('0'))
    bucket_max = db.Column(MONEY, default=Decimal('0'))
    payout = db.Column(MONEY, default=Decimal('0'))
    notes = db.Column(db.String(512), default='')

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    # One entry per rep, quarter, bucket and sub-goal
    __table_args__ = (db.UniqueConstraint('quarter_id', 'rep_id', 'bucket_code', 'sub_goal_id',
                                          name='_rep_quarter_bucket_uc'),)

    def __repr__(self):
        return f'<QuarterlyBonusEntry {self.quarter_id} {self.rep_id} {self.bucket_code}>'


class ImportProgress(db.Model):
    """Side record a polling client reads while an order extract is being imported."""
    __tablename__ = 'import_progress'
    id = db.Column(db.String(64), primary_key=True)
    filename = db.Column(db.String(256))
    status = db.Column(db.String(16), default='parsing')
    total_rows = db.Column(db.Integer, default=0)
    current_row = db.Column(db.Integer, default=0)
    percentage = db.Column(db.Float, default=0)
    current_customer = db.Column(db.String(256), default='')
    current_order = db.Column(db.String(64), default='')
    stats_json = db.Column(db.Text)
    error = db.Column(db.Text)
    started_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'importId': self.id,
            'status': self.status,
            'currentRow': self.current_row,
            'totalRows': self.total_rows,
            'percentage': self.percentage,
            'currentCustomer': self.current_customer,
            'currentOrder': self.current_order,
            'stats': json.loads(self.stats_json) if self.stats_json else {},
            'error': self.error,
        }


class AppSetting(db.Model):
    """
    Stores key-value pairs for the business rules: commission policy flags,
    per-title commission rate tables and the quarterly bonus plan. Keeping
    them here makes the engine configurable without a deployment.
    """
    __tablename__ = 'app_setting'
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), unique=True, nullable=False, index=True)
    value = db.Column(db.Text, nullable=False)
    description = db.Column(db.String(512))
    value_type = db.Column(db.String(32), default='string') # e.g., 'float', 'int', 'string', 'json'

    def __repr__(self):
        return f'<AppSetting {self.key}: {self.value}>'

    def get_value(self):
        """Casts the string value to its correct Python type."""
        if self.value_type == 'float':
            return float(self.value)
        if self.value_type == 'int':
            return int(self.value)
        if self.value_type == 'json':
            return json.loads(self.value)
        return self.value
