# ==============================================================================
# commission_app/calculator/sync.py
# ------------------------------------------------------------------------------
# Propagates CRM account types onto ERP customers. Customers are matched by
# account number against the CRM account order id; when that finds nothing,
# a composite name + shipping address key is tried as a fallback.
# ==============================================================================

import logging
from datetime import datetime

from commission_app.models import CrmCompany, Customer
from .normalizer import clean_text, make_address_key, normalize_account_type
from .storage import BatchWriter

SYNC_SOURCE = 'copper'


def build_crm_indexes(companies):
    """
    Splits active CRM companies into the primary index (account order id) and
    the fallback index (name + address key).
    """
    by_account = {}
    by_address = {}
    for company in companies:
        if not company.is_active:
            continue
        match = {
            'accountType': normalize_account_type(company.account_type),
            'copperId': company.id,
            'name': company.name,
        }
        account_order_id = clean_text(company.account_order_id)
        if account_order_id:
            by_account[account_order_id] = match
        # A bare name is too weak a match; the fallback needs a street
        if clean_text(company.street):
            address_key = make_address_key(company.name, company.street, company.city,
                                           company.state, company.postal_code)
            by_address.setdefault(address_key, match)
    return by_account, by_address


def customer_address_key(customer):
    return make_address_key(customer.name, customer.shipping_address, customer.shipping_city,
                            customer.shipping_state, customer.shipping_zip)


def sync_account_types(max_batch_size=450):
    """
    Returns:
        dict: {copperLoaded, fishbowlLoaded, matched, matchedByAddress, updated,
               alreadyCorrect, noMatch, protected, failedBatches}
    """
    logging.info("=" * 80)
    logging.info("STARTING CRM -> ERP ACCOUNT TYPE SYNC")
    logging.info("=" * 80)

    by_account, by_address = build_crm_indexes(CrmCompany.query.all())
    customers = Customer.query.all()
    stats = {
        'copperLoaded': len(by_account),
        'fishbowlLoaded': len(customers),
        'matched': 0,
        'matchedByAddress': 0,
        'updated': 0,
        'alreadyCorrect': 0,
        'noMatch': 0,
        'protected': 0,
        'failedBatches': 0,
    }
    logging.info(f"Loaded {stats['copperLoaded']} active CRM companies with an account order id")
    logging.info(f"Loaded {stats['fishbowlLoaded']} ERP customers")

    writer = BatchWriter(max_batch_size)
    now = datetime.utcnow()

    for customer in customers:
        if clean_text(customer.account_type_override):
            stats['protected'] += 1
            continue

        match = by_account.get(clean_text(customer.account_number))
        if match is None:
            match = by_address.get(customer_address_key(customer))
            if match is None:
                stats['noMatch'] += 1
                continue
            stats['matchedByAddress'] += 1
        stats['matched'] += 1

        if (customer.account_type == match['accountType']
                and customer.account_type_source == SYNC_SOURCE
                and customer.copper_id == match['copperId']):
            stats['alreadyCorrect'] += 1
            continue

        logging.debug(f"Customer {customer.id} ({customer.name}): {customer.account_type} -> {match['accountType']}")
        writer.set(Customer, customer.id, {
            'account_type': match['accountType'],
            'account_type_source': SYNC_SOURCE,
            'copper_id': match['copperId'],
            'copper_synced_at': now,
        })
        stats['updated'] += 1

        if stats['matched'] % 100 == 0:
            logging.info(f"Matched: {stats['matched']}, Updated: {stats['updated']}")

    writer.close()
    stats['failedBatches'] = writer.failed_batches
    logging.info(f"--- Sync Finished: {stats} ---")
    return stats
