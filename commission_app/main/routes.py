# ==============================================================================
# commission_app/main/routes.py
# ------------------------------------------------------------------------------
# JSON endpoints of the commission engine: order ingestion with pollable
# progress, the CRM import and sync, monthly commission calculation and the
# quarterly bonus plan.
# ==============================================================================

import os
import re

from flask import current_app, jsonify, request
from werkzeug.utils import secure_filename

from commission_app import db
from commission_app.main import bp
from commission_app.models import ImportProgress, MonthlyCommissionSummary, Rep
from commission_app.calculator.bonus import (BonusConfigError, compute_bucket_payout, find_bucket,
                                             import_bonus_entries, max_budget_for_title, sub_goal_weight,
                                             upsert_bonus_entry, validate_bonus_config)
from commission_app.calculator.engine import calculate_monthly_commissions, commission_month_key
from commission_app.calculator.errors import FatalConfigError
from commission_app.calculator.ingestion import import_orders, new_import_id, write_progress
from commission_app.calculator.reference import (BONUS_SETTING_KEY, import_crm_companies, load_bonus_config,
                                                 save_json_setting)
from commission_app.calculator.sync import sync_account_types
from commission_app.calculator.validator import read_tabular_file, validate_order_rows

IMPORT_ID_PATTERN = re.compile(r'^[A-Za-z0-9_-]{1,64}$')

# --- Helper Functions ---

def allowed_file(filename):
    """Checks if the file extension is allowed based on the app config."""
    return '.' in filename and \
           os.path.splitext(filename)[1].lower() in current_app.config['ALLOWED_EXTENSIONS']


def error_response(message, status=400, **extra):
    return jsonify({'success': False, 'error': message, **extra}), status


def save_upload():
    """
    Stores the uploaded `file` field in the upload folder.

    Returns:
        tuple: (filepath, filename), or (None, error response) when the
        request carries no acceptable file.
    """
    if 'file' not in request.files:
        return None, error_response('No file provided')
    file = request.files['file']
    if file.filename == '':
        return None, error_response('No file selected')
    if not allowed_file(file.filename):
        return None, error_response('File type not allowed. Upload an .xlsx, .xls or .csv file.')

    filename = secure_filename(file.filename)
    os.makedirs(current_app.config['UPLOAD_FOLDER'], exist_ok=True)
    filepath = os.path.join(current_app.config['UPLOAD_FOLDER'], filename)
    file.save(filepath)
    return filepath, filename


def unexpected_error(action, e):
    db.session.rollback()
    current_app.logger.error(f"{action} failed: {e}", exc_info=True)
    return error_response(f"An unexpected error occurred: {e}", 500)

# --- Order ingestion ---

@bp.route('/ingest-orders', methods=['POST'])
def ingest_orders():
    """
    Imports an ERP sales-order extract. A caller that wants to poll progress
    while the import runs sends its own `importId` form field; otherwise one is
    generated and returned with the result.
    """
    import_id = request.form.get('importId', '').strip()
    if import_id:
        if not IMPORT_ID_PATTERN.match(import_id):
            return error_response('importId may only contain letters, digits, "_" and "-" (at most 64)')
        if db.session.get(ImportProgress, import_id) is not None:
            return error_response(f"Import {import_id} already exists", 409)
    else:
        import_id = new_import_id()

    filepath, filename = save_upload()
    if filepath is None:
        return filename

    write_progress(import_id, filename=filename, status='parsing')
    current_app.logger.info(f"Import {import_id}: parsing {filename}")

    try:
        rows = read_tabular_file(filepath)
        errors = validate_order_rows(rows)
        if errors:
            write_progress(import_id, status='failed', error='; '.join(errors))
            return error_response('The file is not a valid order extract', errors=errors, importId=import_id)
        stats = import_orders(rows, import_id=import_id, filename=filename)
    except FatalConfigError as e:
        write_progress(import_id, status='failed', error=str(e))
        return error_response(str(e), importId=import_id)
    except Exception as e:
        return unexpected_error(f"Import {import_id}", e)

    return jsonify({'success': True, 'importId': import_id, 'stats': stats})


@bp.route('/import-progress/<import_id>', methods=['GET'])
def import_progress(import_id):
    progress = db.session.get(ImportProgress, import_id)
    if progress is None:
        return error_response(f"Unknown import: {import_id}", 404)
    return jsonify(progress.to_dict())

# --- CRM companies and account type sync ---

@bp.route('/crm-companies/import', methods=['POST'])
def import_crm():
    filepath, filename = save_upload()
    if filepath is None:
        return filename
    try:
        rows = read_tabular_file(filepath)
        stats = import_crm_companies(rows, max_batch_size=current_app.config['SYNC_MAX_BATCH_SIZE'])
    except FatalConfigError as e:
        return error_response(str(e))
    except Exception as e:
        return unexpected_error('CRM import', e)
    current_app.logger.info(f"CRM import of {filename}: {stats}")
    return jsonify({'success': True, 'stats': stats})


@bp.route('/sync-account-types', methods=['POST'])
def sync_account_types_route():
    try:
        stats = sync_account_types(max_batch_size=current_app.config['SYNC_MAX_BATCH_SIZE'])
    except Exception as e:
        return unexpected_error('Account type sync', e)
    return jsonify({'success': True, 'stats': stats})

# --- Monthly commissions ---

@bp.route('/calculate-commissions', methods=['POST'])
def calculate_commissions():
    """
    Body: {"month": 1-12, "year": YYYY, "repId" | "repCode": optional}
    """
    data = request.get_json(silent=True) or {}
    try:
        month = int(data.get('month'))
        year = int(data.get('year'))
    except (TypeError, ValueError):
        return error_response('month and year are required integers')
    if not 1 <= month <= 12:
        return error_response('month must be between 1 and 12')

    sales_person = data.get('repCode')
    if data.get('repId'):
        rep = db.session.get(Rep, data['repId'])
        if rep is None:
            return error_response(f"Unknown rep: {data['repId']}", 404)
        sales_person = rep.sales_person or rep.fishbowl_username
        if not sales_person:
            return error_response(f"Rep {rep.id} has no ERP salesperson code")

    try:
        result = calculate_monthly_commissions(month, year, sales_person=sales_person,
                                               max_batch_size=current_app.config['INGEST_MAX_BATCH_SIZE'])
    except FatalConfigError as e:
        return error_response(str(e))
    except Exception as e:
        return unexpected_error('Commission calculation', e)

    return jsonify({'success': True, **result})


@bp.route('/commission-summaries', methods=['GET'])
def commission_summaries():
    month = request.args.get('month', type=int)
    year = request.args.get('year', type=int)
    if not month or not year:
        return error_response('month and year query parameters are required')
    summaries = (MonthlyCommissionSummary.query
                 .filter_by(month=commission_month_key(month, year))
                 .order_by(MonthlyCommissionSummary.sales_person)
                 .all())
    return jsonify([{
        'salesPerson': s.sales_person,
        'repName': s.rep_name,
        'month': s.month,
        'totalOrders': s.total_orders,
        'totalRevenue': s.total_revenue,
        'totalCommission': s.total_commission,
        'paidStatus': s.paid_status,
    } for s in summaries])

# --- Quarterly bonus ---

@bp.route('/bonus/payout', methods=['POST'])
def bonus_payout():
    """Previews a bucket payout without storing anything."""
    data = request.get_json(silent=True) or {}
    config = load_bonus_config()
    try:
        bucket = find_bucket(config, data.get('bucketCode'))
        sub_weight = sub_goal_weight(bucket, data.get('subGoalId'))
    except BonusConfigError as e:
        return error_response(str(e))

    result = compute_bucket_payout(
        data.get('goalValue'), data.get('actualValue'),
        max_budget=max_budget_for_title(config, data.get('title')),
        bucket_weight=bucket.get('weight'),
        sub_weight=sub_weight,
        min_attainment=config.get('minAttainment'),
        max_attainment_cap=config.get('overPerfCap'),
    )
    return jsonify(result)


@bp.route('/bonus-entries', methods=['PUT'])
def put_bonus_entry():
    data = request.get_json(silent=True) or {}
    missing = [k for k in ('quarterId', 'repId', 'bucketCode') if not data.get(k)]
    if missing:
        return error_response(f"Missing fields: {', '.join(missing)}")
    try:
        entry = upsert_bonus_entry(
            load_bonus_config(),
            quarter_id=data['quarterId'],
            rep_id=data['repId'],
            bucket_code=data['bucketCode'],
            goal_value=data.get('goalValue'),
            actual_value=data.get('actualValue'),
            sub_goal_id=data.get('subGoalId'),
            notes=data.get('notes'),
        )
    except BonusConfigError as e:
        return error_response(str(e))
    except Exception as e:
        return unexpected_error('Bonus entry update', e)

    return jsonify({
        'id': entry.id,
        'quarterId': entry.quarter_id,
        'repId': entry.rep_id,
        'repName': entry.rep_name,
        'bucketCode': entry.bucket_code,
        'subGoalId': entry.sub_goal_id,
        'attainment': entry.attainment,
        'bucketMax': entry.bucket_max,
        'payout': entry.payout,
    })


@bp.route('/bonus-entries/import', methods=['POST'])
def import_bonus_entries_route():
    filepath, filename = save_upload()
    if filepath is None:
        return filename
    try:
        rows = read_tabular_file(filepath)
        stats = import_bonus_entries(rows, load_bonus_config())
    except FatalConfigError as e:
        return error_response(str(e))
    except Exception as e:
        return unexpected_error('Bonus entry import', e)
    return jsonify({'success': True, **stats})


@bp.route('/bonus-config', methods=['GET', 'PUT'])
def bonus_config():
    if request.method == 'GET':
        return jsonify(load_bonus_config())

    config = request.get_json(silent=True)
    if not isinstance(config, dict):
        return error_response('A JSON bonus plan is required')
    config = {**load_bonus_config(), **config}
    problems = validate_bonus_config(config)
    if problems:
        return error_response('Invalid bonus plan', errors=problems)
    save_json_setting(BONUS_SETTING_KEY, config, description='Quarterly bonus plan')
    current_app.logger.info('Bonus plan updated')
    return jsonify({'success': True})
