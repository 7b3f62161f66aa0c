# tests/conftest.py

import io
import json

import pytest


@pytest.fixture
def app_with_db():
    """
    Creates a new app instance for a test, sets up an in-memory database,
    and yields the app within an application context.
    """
    from commission_app import create_app, db
    from config import TestConfig

    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app  # The tests will run here
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app_with_db):
    return app_with_db.test_client()


@pytest.fixture
def add_setting(app_with_db):
    """Stores a json AppSetting, the way the admin screens do."""
    from commission_app import db
    from commission_app.models import AppSetting

    def _add(key, value):
        db.session.add(AppSetting(key=key, value=json.dumps(value), value_type='json'))
        db.session.commit()

    return _add


@pytest.fixture
def account_executive_rates(add_setting):
    """A rate table for 'Account Executive' that pays 10% on new Wholesale customers."""
    table = {
        'rates': {
            'wholesale': {'new': 10.0, 'rep_transfer': 10.0, '6month': 7.0, '12month': 5.0},
            'distributor': {'new': 8.0, 'rep_transfer': 8.0, '6month': 5.0, '12month': 3.0},
        },
        'specialRules': {'repTransfer': {'enabled': False}},
    }
    add_setting('commission_rates_Account_Executive', table)
    return table


@pytest.fixture
def rep(app_with_db):
    from commission_app import db
    from commission_app.models import Rep

    rep = Rep(id='rep_1', name='Ben Wallace', email='ben@example.com', title='Account Executive',
              sales_person='BenW', fishbowl_username='bwallace', active=True)
    db.session.add(rep)
    db.session.commit()
    return rep


ORDER_HEADER = ("Sales order Number,Sales Order ID,SO Item ID,Account ID,Account Number,Customer Name,"
                "Account Type,Sales person,Date fulfillment,Total Price,SO Item Product Number,"
                "Sales Order Item Description")

# Two lines on SO-1 (one of them shipping) and one on SO-2, all for one Wholesale customer.
DEMO_ORDERS_CSV = ORDER_HEADER + """
SO-1,1001,5001,C1,ACC-1,Kush Corner,Wholesale,BenW,01/15/2025,100.00,GLASS-01,Glass pipe
SO-1,1001,5002,C1,ACC-1,Kush Corner,Wholesale,BenW,01/15/2025,15.00,SHIP,Shipping
SO-2,1002,5003,C1,ACC-1,Kush Corner,Wholesale,BenW,01/15/2025,50.00,PAPERS-01,Rolling papers
"""


@pytest.fixture
def csv_rows():
    """Decodes CSV text through the same reader the upload endpoints use."""
    from commission_app.calculator.validator import read_tabular_file

    def _rows(text):
        return read_tabular_file(io.BytesIO(text.encode('utf-8')), filename='extract.csv')

    return _rows


@pytest.fixture
def demo_rows(csv_rows):
    return csv_rows(DEMO_ORDERS_CSV)


@pytest.fixture
def order_rows(csv_rows):
    """Rows of an order extract from data lines under the standard header."""
    def _rows(body):
        return csv_rows(ORDER_HEADER + "\n" + body.strip() + "\n")

    return _rows


@pytest.fixture
def demo_orders_csv():
    return DEMO_ORDERS_CSV
