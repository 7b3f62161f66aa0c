# ==============================================================================
# commission_app/calculator/schema.py
# ------------------------------------------------------------------------------
# Defines the expected structure of the uploaded ERP and CRM extracts.
# Export tools spell headers inconsistently, so every field lists the header
# spellings to try, in order. This module is the single source of truth for
# the validator, the ingestion reconciler and the sync reconciler.
# ==============================================================================

# --- ERP sales-order line item extract ---

ORDER_FIELDS = {
    'order_number': ['Sales order Number', 'Sales Order Number'],
    'order_id': ['Sales Order ID', 'Sales order ID'],
    'line_item_id': ['SO Item ID', 'SO item ID', 'SO Item Id', 'SO item id'],
    'customer_id': ['Account ID'],
    'account_number': ['Account Number', 'Account ID'],
    'customer_name': ['Customer Name', 'Customer'],
    'account_type': ['Account Type', 'Account type', 'accountType', 'Segment'],
    'sales_person': ['Sales person', 'Sales Person'],
    'sales_rep': ['Sales Rep'],
    'posting_date': ['Date fulfillment', 'Date fulfilled', 'Date last fulfillment',
                     'Issued date', 'Date created'],
    'revenue': ['Total Price', 'Total price', 'Revenue', 'Fulfilled revenue'],
    'order_value': ['Total Price', 'Total price', 'Order value', 'Fulfilled revenue'],
    'unit_price': ['UNIT PRICE', 'Unit price', 'Unit Price'],
    'total_cost': ['Total cost', 'Total Cost'],
    'quantity': ['Qty fulfilled', 'Shipped Quantity', 'Quantity'],
    'part_number': ['SO Item Product Number', 'Part Number'],
    'part_description': ['Part Description', 'Product description'],
    'description': ['Sales Order Item Description'],

    'billing_address': ['Billing Address'],
    'billing_city': ['Billing City'],
    'billing_state': ['Billing State'],
    'billing_zip': ['Billing Zip'],
    'shipping_address': ['Shipping Address', 'Billing Address'],
    'shipping_city': ['Shipping City', 'Billing City'],
    'shipping_state': ['Shipping State', 'Billing State'],
    'shipping_zip': ['Ship to zip', 'Shipping Zip', 'Billing Zip'],
    'shipping_country': ['Shipping Country'],
}

# Every one of these must be present on a row or the row is skipped.
REQUIRED_ORDER_FIELDS = ['customer_id', 'order_number', 'order_id', 'line_item_id']

# Columns whose text decides whether a line is a shipping or card-fee line.
EXCLUSION_LABEL_FIELDS = ['part_number', 'part_description', 'description']

SHIPPING_MARKERS = ('shipping',)
CC_PROCESSING_MARKERS = ('cc processing', 'credit card processing')

# Orders sold through the web store rather than by a rep.
ALTERNATE_CHANNEL_ORDER_PREFIX = 'Sh'
ALTERNATE_CHANNEL_SALES_PEOPLE = ('commerce', 'shopify')


# --- CRM company export ---

CRM_FIELDS = {
    'name': ['Name', 'name'],
    'active': ['Active Customer cf_712751', 'Active Customer'],
    'account_type': ['Account Type cf_675914', 'Account Type'],
    'copper_id': ['Account ID cf_713477', 'id', 'ID'],
    'account_order_id': ['Account Order ID cf_698467', 'Account Order ID'],
    'street': ['Street', 'Address'],
    'city': ['City'],
    'state': ['State'],
    'postal_code': ['Postal Code', 'Zip'],
}

# Encodings the CRM has used for a checked checkbox.
TRUTHY_STRINGS = {'checked', 'true', 'yes', 'y', '1'}


# --- Account type domain ---

DEFAULT_ACCOUNT_TYPE = 'Retail'

# Ordered: the first matching rule wins, so specific rules sit above general ones
# ("chain hq" must be tested before the "chain" substring).
ACCOUNT_TYPE_RULES = [
    ('exact', 'chain hq', 'Retail'),
    ('contains', 'distributor', 'Distributor'),
    ('exact', 'wholesale', 'Wholesale'),
    ('exact', 'independent store', 'Wholesale'),
    ('contains', 'chain', 'Wholesale'),
    ('contains', 'cash & carry', 'Wholesale'),
    ('exact', 'retail', 'Retail'),
]


# --- Address matching ---

STATE_ABBREVIATIONS = {
    'alabama': 'al', 'alaska': 'ak', 'arizona': 'az', 'arkansas': 'ar', 'california': 'ca',
    'colorado': 'co', 'connecticut': 'ct', 'delaware': 'de', 'florida': 'fl', 'georgia': 'ga',
    'hawaii': 'hi', 'idaho': 'id', 'illinois': 'il', 'indiana': 'in', 'iowa': 'ia',
    'kansas': 'ks', 'kentucky': 'ky', 'louisiana': 'la', 'maine': 'me', 'maryland': 'md',
    'massachusetts': 'ma', 'michigan': 'mi', 'minnesota': 'mn', 'mississippi': 'ms',
    'missouri': 'mo', 'montana': 'mt', 'nebraska': 'ne', 'nevada': 'nv', 'new hampshire': 'nh',
    'new jersey': 'nj', 'new mexico': 'nm', 'new york': 'ny', 'north carolina': 'nc',
    'north dakota': 'nd', 'ohio': 'oh', 'oklahoma': 'ok', 'oregon': 'or', 'pennsylvania': 'pa',
    'rhode island': 'ri', 'south carolina': 'sc', 'south dakota': 'sd', 'tennessee': 'tn',
    'texas': 'tx', 'utah': 'ut', 'vermont': 'vt', 'virginia': 'va', 'washington': 'wa',
    'west virginia': 'wv', 'wisconsin': 'wi', 'wyoming': 'wy',
}


# --- Quarterly bonus bulk upload ---

REQUIRED_BONUS_ENTRY_COLUMNS = ['quarterId', 'repId', 'bucketCode', 'goalValue', 'actualValue']
