# ==============================================================================
# commission_app/calculator/reference.py
# ------------------------------------------------------------------------------
# Loads the reference data the engine depends on: per-title commission rate
# tables, the global commission policy flags, the quarterly bonus plan and the
# active CRM companies used to enrich ERP customers with an account type.
# ==============================================================================

import copy
import json
import logging
from datetime import datetime

from commission_app import db
from commission_app.models import AppSetting, CrmCompany
from .errors import FatalConfigError, ReferenceDataMissing
from .normalizer import clean_text, first_present, normalize_account_type, to_boolean
from .schema import CRM_FIELDS
from .storage import BatchWriter

RATE_SETTING_PREFIX = 'commission_rates_'
RULES_SETTING_KEY = 'commission_rules'
BONUS_SETTING_KEY = 'bonus_config'

DEFAULT_COMMISSION_RULES = {
    'excludeShipping': True,
    'excludeCCProcessing': True,
    'useOrderValue': True,
}

DEFAULT_BONUS_CONFIG = {
    'maxBonusPerRep': 25000,
    'minAttainment': 0.75,
    'overPerfCap': 1.25,
    'buckets': [
        {'code': 'A', 'name': 'New Business', 'weight': 0.50, 'active': True, 'subGoals': []},
        {'code': 'B', 'name': 'Product Mix', 'weight': 0.15, 'active': True, 'subGoals': []},
        {'code': 'C', 'name': 'Maintain Business', 'weight': 0.20, 'active': True, 'subGoals': []},
        {'code': 'D', 'name': 'Effort', 'weight': 0.15, 'active': True, 'subGoals': []},
    ],
    'roleScales': {
        'Sr. Account Executive': 1.0,
        'Account Executive': 0.85,
        'Jr. Account Executive': 0.70,
        'Account Manager': 0.60,
    },
}


def title_from_setting_key(key):
    """'commission_rates_Account_Executive' -> 'Account Executive'"""
    return key[len(RATE_SETTING_PREFIX):].replace('_', ' ')


def setting_key_for_title(title):
    return RATE_SETTING_PREFIX + title.strip().replace(' ', '_')


def load_rate_tables():
    """Returns every configured rate table, keyed by human-readable rep title."""
    settings = AppSetting.query.filter(AppSetting.key.like(f'{RATE_SETTING_PREFIX}%')).all()
    tables = {}
    for setting in settings:
        try:
            tables[title_from_setting_key(setting.key)] = setting.get_value() or {}
        except ValueError as e:
            logging.error(f"Ignoring unreadable rate table '{setting.key}': {e}")
    logging.info(f"Loaded commission rates for {len(tables)} titles")
    return tables


def _load_json_setting(key, default):
    setting = AppSetting.query.filter_by(key=key).first()
    if setting is None:
        return copy.deepcopy(default)
    value = setting.get_value()
    merged = copy.deepcopy(default)
    merged.update(value or {})
    return merged


def load_commission_rules():
    """Global policy flags; the hardcoded defaults apply when nothing is stored."""
    return _load_json_setting(RULES_SETTING_KEY, DEFAULT_COMMISSION_RULES)


def load_bonus_config():
    return _load_json_setting(BONUS_SETTING_KEY, DEFAULT_BONUS_CONFIG)


def load_active_crm_companies():
    """
    Builds the CRM enrichment index: account order id (the ERP account number)
    -> {accountType, copperId, name}. Inactive companies and companies without
    an account order id are left out.
    """
    companies = CrmCompany.query.filter_by(is_active=True).all()
    index = {}
    for company in companies:
        key = clean_text(company.account_order_id)
        if not key:
            continue
        index[key] = {
            'accountType': normalize_account_type(company.account_type),
            'rawAccountType': clean_text(company.account_type),
            'copperId': company.id,
            'name': company.name,
        }
    logging.info(f"Loaded {len(index)} ACTIVE CRM companies (by account order id) out of {len(companies)} active")
    return index


def import_crm_companies(rows, max_batch_size=450):
    """
    Upserts CRM export rows into `crm_company`. The active flag is normalized
    here, once, so readers only ever see a boolean.
    """
    stats = {'processed': 0, 'active': 0, 'skipped': 0, 'failedBatches': 0}
    writer = BatchWriter(max_batch_size)
    now = datetime.utcnow()

    for row in rows:
        stats['processed'] += 1
        copper_id = clean_text(first_present(row, CRM_FIELDS['copper_id']))
        if not copper_id:
            stats['skipped'] += 1
            continue
        raw_active = first_present(row, CRM_FIELDS['active'])
        is_active = to_boolean(raw_active)
        stats['active'] += int(is_active)
        writer.set(CrmCompany, copper_id, {
            'name': clean_text(first_present(row, CRM_FIELDS['name'])),
            'account_order_id': clean_text(first_present(row, CRM_FIELDS['account_order_id'])) or None,
            'account_type': clean_text(first_present(row, CRM_FIELDS['account_type'])),
            'is_active': is_active,
            'raw_active': clean_text(raw_active)[:32],
            'street': clean_text(first_present(row, CRM_FIELDS['street'])),
            'city': clean_text(first_present(row, CRM_FIELDS['city'])),
            'state': clean_text(first_present(row, CRM_FIELDS['state'])),
            'postal_code': clean_text(first_present(row, CRM_FIELDS['postal_code'])),
            'updated_at': now,
        })

    writer.close()
    stats['failedBatches'] = writer.failed_batches
    logging.info(f"CRM import finished: {stats}")
    return stats


class CalculationConfig:
    """
    Reference data for one commission calculation run. Loaded fresh for every
    run so that edits in the admin screens apply immediately.
    """

    def __init__(self, rate_tables, rules):
        self.rate_tables = rate_tables
        self.rules = rules

    @classmethod
    def load(cls):
        rate_tables = load_rate_tables()
        if not rate_tables:
            raise FatalConfigError('Commission rates not configured for any titles')
        return cls(rate_tables, load_commission_rules())

    @property
    def use_order_value(self):
        return bool(self.rules.get('useOrderValue'))

    def rates_for_title(self, title):
        rates = self.rate_tables.get(title) if title else None
        if rates is None:
            raise ReferenceDataMissing(f"No commission rates configured for title: {title}")
        return rates

    def log_state(self):
        logging.info("--- Commission Rules ---")
        for key, value in self.rules.items():
            logging.info(f"  - {key}: {value}")
        logging.info("--- Commission Rate Tables ---")
        for title, table in self.rate_tables.items():
            logging.info(f"  - {title}: rates={table.get('rates', {})}, specialRules={table.get('specialRules', {})}")


def save_json_setting(key, value, description=None):
    """Creates or replaces a json-typed AppSetting."""
    setting = AppSetting.query.filter_by(key=key).first()
    if setting is None:
        setting = AppSetting(key=key, value_type='json')
        db.session.add(setting)
    setting.value = json.dumps(value, ensure_ascii=False)
    setting.value_type = 'json'
    if description:
        setting.description = description
    db.session.commit()
    return setting
