# tests/test_engine.py

from datetime import datetime
from decimal import Decimal

import pytest

from commission_app import db

# The app_with_db, rep and rate fixtures are available from conftest.py


def run_demo_month(demo_rows):
    from commission_app.calculator.engine import calculate_monthly_commissions
    from commission_app.calculator.ingestion import import_orders

    import_orders(demo_rows, import_id='import_demo')
    return calculate_monthly_commissions(1, 2025)


def test_end_to_end_demo_month(app_with_db, rep, account_executive_rates, demo_rows):
    """
    Three line items: SO-1 has a $100 line and a $15 shipping line, SO-2 a
    $50 line. The customer is Wholesale and new, the title pays 10%.
    """
    from commission_app.models import CommissionRecord, MonthlyCommissionSummary, SalesOrder

    result = run_demo_month(demo_rows)

    # The shipping line does not count towards SO-1
    assert db.session.get(SalesOrder, '1001').revenue == Decimal('100.00')

    assert result['processed'] == 2
    assert result['commissionsCalculated'] == 2
    # 100 * 10% + 50 * 10%
    assert result['totalCommission'] == Decimal('15.00')

    so1 = db.session.get(CommissionRecord, 'BenW_2025-01_order_1001')
    assert so1.commission_amount == Decimal('10.00')
    assert so1.customer_status == 'new'
    assert so1.customer_segment == 'Wholesale'
    assert so1.commission_rate == Decimal('10.0')
    assert so1.rep_name == 'Ben Wallace'
    assert db.session.get(CommissionRecord, 'BenW_2025-01_order_1002').commission_amount == Decimal('5.00')

    summary = db.session.get(MonthlyCommissionSummary, 'BenW_2025-01')
    assert summary.total_orders == 2
    assert summary.total_commission == Decimal('15.00')
    assert summary.total_revenue == Decimal('150.00')

    assert result['perRepSummary']['BenW']['commission'] == Decimal('15.00')


def test_rerun_overwrites_instead_of_accumulating(app_with_db, rep, account_executive_rates, demo_rows):
    from commission_app import db
    from commission_app.calculator.engine import calculate_monthly_commissions
    from commission_app.calculator.ingestion import import_orders
    from commission_app.models import CommissionRecord, MonthlyCommissionSummary

    first = run_demo_month(demo_rows)
    db.session.get(CommissionRecord, 'BenW_2025-01_order_1001').paid_status = 'paid'
    db.session.commit()

    import_orders(demo_rows, import_id='import_again')
    second = calculate_monthly_commissions(1, 2025)

    assert second['commissionsCalculated'] == first['commissionsCalculated'] == 2
    assert second['totalCommission'] == first['totalCommission'] == Decimal('15.00')
    assert CommissionRecord.query.count() == 2
    assert db.session.get(MonthlyCommissionSummary, 'BenW_2025-01').total_commission == Decimal('15.00')
    # Payment state survives a recalculation
    assert db.session.get(CommissionRecord, 'BenW_2025-01_order_1001').paid_status == 'paid'


def test_rerun_removes_results_no_longer_earned(app_with_db, rep, account_executive_rates, demo_rows):
    from commission_app import db
    from commission_app.calculator.engine import calculate_monthly_commissions
    from commission_app.models import CommissionRecord, Customer, MonthlyCommissionSummary

    run_demo_month(demo_rows)
    db.session.get(Customer, 'C1').account_type_override = 'Retail'
    db.session.commit()

    second = calculate_monthly_commissions(1, 2025)

    assert second['commissionsCalculated'] == 0
    assert second['removed'] == {'records': 2, 'summaries': 1}
    assert CommissionRecord.query.count() == 0
    assert db.session.get(MonthlyCommissionSummary, 'BenW_2025-01') is None


def test_rerun_keeps_paid_records_it_no_longer_produces(app_with_db, rep, account_executive_rates, demo_rows):
    from commission_app import db
    from commission_app.calculator.engine import calculate_monthly_commissions
    from commission_app.models import CommissionRecord, Rep

    run_demo_month(demo_rows)
    db.session.get(CommissionRecord, 'BenW_2025-01_order_1001').paid_status = 'paid'
    db.session.get(Rep, 'rep_1').active = False
    db.session.commit()

    result = calculate_monthly_commissions(1, 2025)

    assert result['skipped']['inactiveRep'] == 2
    assert result['removed']['records'] == 1
    assert db.session.get(CommissionRecord, 'BenW_2025-01_order_1001').commission_amount == Decimal('10.00')
    assert db.session.get(CommissionRecord, 'BenW_2025-01_order_1002') is None


def test_restricted_rerun_leaves_other_reps_alone(app_with_db, rep, account_executive_rates, demo_rows):
    from commission_app import db
    from commission_app.calculator.engine import calculate_monthly_commissions
    from commission_app.models import MonthlyCommissionSummary

    run_demo_month(demo_rows)
    db.session.add(MonthlyCommissionSummary(id='JaredL_2025-01', sales_person='JaredL', month='2025-01',
                                            year=2025, total_orders=1))
    db.session.commit()

    result = calculate_monthly_commissions(1, 2025, sales_person='BenW')

    assert result['removed'] == {'records': 0, 'summaries': 0}
    assert db.session.get(MonthlyCommissionSummary, 'JaredL_2025-01') is not None


def test_orders_with_commission_are_locked_on_reimport(app_with_db, rep, account_executive_rates,
                                                       demo_rows, order_rows):
    from commission_app.calculator.ingestion import import_orders
    from commission_app.models import SalesOrder

    run_demo_month(demo_rows)
    stats = import_orders(order_rows("""
SO-1,1001,5001,C1,ACC-1,Kush Corner,Wholesale,BenW,01/15/2025,999.00,GLASS-01,Glass pipe
"""), import_id='import_edit')

    assert stats['ordersLocked'] == 1
    assert db.session.get(SalesOrder, '1001').revenue == Decimal('100.00')


def test_retail_and_inactive_reps_earn_nothing(app_with_db, rep, account_executive_rates, order_rows):
    from commission_app import db
    from commission_app.calculator.engine import calculate_monthly_commissions
    from commission_app.calculator.ingestion import import_orders
    from commission_app.models import CommissionRecord, Rep

    db.session.add(Rep(id='rep_2', name='Jared Leto', title='Account Executive', sales_person='JaredL',
                       active=False))
    db.session.commit()

    import_orders(order_rows("""
SO-1,1001,5001,C1,ACC-1,Kush Corner,Retail,BenW,01/15/2025,100.00,GLASS-01,Glass pipe
SO-2,1002,5002,C2,ACC-2,Smoke Shop,Wholesale,JaredL,01/15/2025,100.00,GLASS-01,Glass pipe
SO-3,1003,5003,C3,ACC-3,Hemp Hub,Wholesale,Nobody,01/15/2025,100.00,GLASS-01,Glass pipe
"""), import_id='import_test')
    result = calculate_monthly_commissions(1, 2025)

    assert result['processed'] == 3
    assert result['commissionsCalculated'] == 0
    assert result['skipped']['retail'] == 1
    assert result['skipped']['inactiveRep'] == 2
    assert CommissionRecord.query.count() == 0


def test_title_without_rate_table_is_skipped(app_with_db, account_executive_rates, order_rows):
    from commission_app import db
    from commission_app.calculator.engine import calculate_monthly_commissions
    from commission_app.calculator.ingestion import import_orders
    from commission_app.models import Rep

    db.session.add(Rep(id='rep_3', name='Nina Patel', title='Intern', sales_person='NinaP'))
    db.session.commit()
    import_orders(order_rows("""
SO-1,1001,5001,C1,ACC-1,Kush Corner,Wholesale,NinaP,01/15/2025,100.00,GLASS-01,Glass pipe
"""), import_id='import_test')

    result = calculate_monthly_commissions(1, 2025)
    assert result['skipped']['noRateTable'] == 1
    assert result['commissionsCalculated'] == 0


def test_no_rate_tables_at_all_is_fatal(app_with_db, rep, demo_rows):
    from commission_app.calculator.engine import calculate_monthly_commissions
    from commission_app.calculator.errors import FatalConfigError
    from commission_app.calculator.ingestion import import_orders

    import_orders(demo_rows, import_id='import_demo')
    with pytest.raises(FatalConfigError):
        calculate_monthly_commissions(1, 2025)


def test_rep_transfer_special_rule(app_with_db, rep, add_setting):
    from commission_app import db
    from commission_app.calculator.engine import calculate_monthly_commissions
    from commission_app.models import CommissionRecord, Customer, SalesOrder

    add_setting('commission_rates_Account_Executive', {
        'rates': {'wholesale': {'new': 10.0}},
        'specialRules': {'repTransfer': {'enabled': True, 'flatFee': 50, 'percentFallback': 2.0,
                                         'useGreater': True}},
    })
    db.session.add(Customer(id='C1', name='Kush Corner', account_type='Wholesale'))
    db.session.add(SalesOrder(id='900', num='SO-900', customer_id='C1', sales_person='JaredL',
                              posting_date=datetime(2024, 12, 1), commission_month='2024-12'))
    db.session.add(SalesOrder(id='1001', num='SO-1', customer_id='C1', sales_person='BenW',
                              posting_date=datetime(2025, 1, 15), commission_month='2025-01',
                              revenue=Decimal('10000'), order_value=Decimal('10000')))
    db.session.commit()

    result = calculate_monthly_commissions(1, 2025)

    record = db.session.get(CommissionRecord, 'BenW_2025-01_order_1001')
    assert record.customer_status == 'rep_transfer'
    # max(50 flat fee, 2% of 10,000)
    assert record.commission_amount == Decimal('200.00')
    assert result['totalCommission'] == Decimal('200.00')


def test_crm_segment_drives_the_rate(app_with_db, rep, account_executive_rates, demo_rows):
    from commission_app import db
    from commission_app.calculator.engine import calculate_monthly_commissions
    from commission_app.calculator.ingestion import import_orders
    from commission_app.models import CrmCompany

    import_orders(demo_rows, import_id='import_demo')
    # The customer is Wholesale in the ERP but a distributor in the CRM
    db.session.add(CrmCompany(id='crm_1', name='Kush Corner', account_order_id='ACC-1',
                              account_type='Sub-Distributor', is_active=True))
    db.session.commit()

    result = calculate_monthly_commissions(1, 2025)
    # 150 * 8%
    assert result['totalCommission'] == Decimal('12.00')


def test_restricting_to_one_rep(app_with_db, rep, account_executive_rates, demo_rows):
    from commission_app.calculator.engine import calculate_monthly_commissions
    from commission_app.calculator.ingestion import import_orders

    import_orders(demo_rows, import_id='import_demo')
    assert calculate_monthly_commissions(1, 2025, sales_person='JaredL')['processed'] == 0
    assert calculate_monthly_commissions(1, 2025, sales_person='BenW')['processed'] == 2
