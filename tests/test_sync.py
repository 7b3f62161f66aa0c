# tests/test_sync.py

import pytest

from commission_app import db


@pytest.fixture
def crm_and_customers(app_with_db):
    from commission_app import db
    from commission_app.models import CrmCompany, Customer

    db.session.add_all([
        CrmCompany(id='crm_1', name='Green Leaf HQ', account_order_id='ACC-1', account_type='Chain HQ',
                   is_active=True),
        CrmCompany(id='crm_2', name='Green Leaf #4', account_order_id='ACC-2', account_type='Chain',
                   is_active=True),
        CrmCompany(id='crm_3', name='Valley Supply', account_order_id='ACC-3', account_type='Distributor',
                   is_active=False),
        CrmCompany(id='crm_4', name='Mesa Smoke Shop', account_order_id=None, account_type='Wholesale',
                   is_active=True, street='12 Main St', city='Mesa', state='Arizona', postal_code='85201'),
    ])
    db.session.add_all([
        Customer(id='C1', name='Green Leaf HQ', account_number='ACC-1', account_type='Wholesale'),
        Customer(id='C2', name='Green Leaf #4', account_number='ACC-2', account_type='Retail'),
        Customer(id='C3', name='Valley Supply', account_number='ACC-3', account_type='Retail'),
        Customer(id='C4', name='Mesa Smoke Shop', account_number='9999', account_type='Retail',
                 shipping_address='12 Main St', shipping_city='Mesa', shipping_state='AZ', shipping_zip='85201'),
        Customer(id='C5', name='Protected', account_number='ACC-2', account_type='Distributor',
                 account_type_override='Distributor'),
    ])
    db.session.commit()


def test_sync_applies_crm_account_types(crm_and_customers):
    from commission_app.calculator.sync import sync_account_types
    from commission_app.models import Customer

    stats = sync_account_types()

    assert stats['copperLoaded'] == 2
    assert stats['fishbowlLoaded'] == 5
    assert stats['matched'] == 3
    assert stats['matchedByAddress'] == 1
    assert stats['updated'] == 3
    assert stats['noMatch'] == 1
    assert stats['protected'] == 1

    # The exact "chain hq" rule outranks the "chain" substring rule
    assert db.session.get(Customer, 'C1').account_type == 'Retail'
    assert db.session.get(Customer, 'C2').account_type == 'Wholesale'
    assert db.session.get(Customer, 'C2').copper_id == 'crm_2'
    assert db.session.get(Customer, 'C2').account_type_source == 'copper'
    # Inactive CRM companies never match
    assert db.session.get(Customer, 'C3').account_type == 'Retail'
    # Matched on name and shipping address, with the state name abbreviated
    assert db.session.get(Customer, 'C4').account_type == 'Wholesale'
    assert db.session.get(Customer, 'C4').copper_id == 'crm_4'
    # Overrides are left alone
    assert db.session.get(Customer, 'C5').account_type == 'Distributor'
    assert db.session.get(Customer, 'C5').copper_id is None


def test_second_sync_writes_nothing(crm_and_customers):
    from commission_app.calculator.sync import sync_account_types

    sync_account_types()
    stats = sync_account_types()

    assert stats['updated'] == 0
    assert stats['alreadyCorrect'] == 3


def test_sync_records_crm_provenance(app_with_db):
    from commission_app.calculator.sync import sync_account_types
    from commission_app.models import CrmCompany, Customer

    db.session.add(CrmCompany(id='crm_1', name='Valley Supply', account_order_id='ACC-1',
                              account_type='Distributor', is_active=True))
    db.session.add_all([
        # Right type and CRM id, provenance still the ERP's
        Customer(id='C1', name='Valley Supply', account_number='ACC-1', account_type='Distributor',
                 account_type_source='fishbowl', copper_id='crm_1'),
        Customer(id='C2', name='Valley Supply West', account_number='ACC-1', account_type='Distributor',
                 account_type_source='copper', copper_id='crm_1'),
    ])
    db.session.commit()

    stats = sync_account_types()

    assert stats['updated'] == 1
    assert stats['alreadyCorrect'] == 1
    assert db.session.get(Customer, 'C1').account_type_source == 'copper'
    assert db.session.get(Customer, 'C2').account_type_source == 'copper'


def test_crm_import_normalizes_the_active_flag(app_with_db, csv_rows):
    from commission_app.calculator.reference import import_crm_companies, load_active_crm_companies
    from commission_app.models import CrmCompany

    rows = csv_rows("""Name,Active Customer cf_712751,Account Type cf_675914,Account ID cf_713477,Account Order ID cf_698467
Green Leaf HQ,checked,Chain HQ,crm_1,ACC-1
Green Leaf #4,Checked,Chain,crm_2,ACC-2
Valley Supply,,Distributor,crm_3,ACC-3
Mesa Smoke Shop,true,Wholesale,crm_4,
No Id Co,checked,Wholesale,,ACC-9
""")
    stats = import_crm_companies(rows)

    assert stats == {'processed': 5, 'active': 3, 'skipped': 1, 'failedBatches': 0}
    assert db.session.get(CrmCompany, 'crm_2').is_active is True
    assert db.session.get(CrmCompany, 'crm_2').raw_active == 'Checked'
    assert db.session.get(CrmCompany, 'crm_3').is_active is False

    index = load_active_crm_companies()
    # Inactive companies and companies without an account order id are left out
    assert sorted(index) == ['ACC-1', 'ACC-2']
    assert index['ACC-1']['accountType'] == 'Retail'
