# ==============================================================================
# commission_app/calculator/bonus.py
# ------------------------------------------------------------------------------
# Quarterly bonus plan: per-bucket payout math, plan validation and the
# rep/quarter/bucket entries that store goals, actuals and payouts.
# ==============================================================================

import logging
from datetime import datetime
from decimal import Decimal

from commission_app import db
from commission_app.models import QuarterlyBonusEntry, Rep
from .errors import CommissionError, RowError
from .money import ZERO, quantize_money, to_decimal
from .normalizer import clean_text, is_blank, parse_amount
from .schema import REQUIRED_BONUS_ENTRY_COLUMNS

WEIGHT_TOLERANCE = Decimal('0.001')


class BonusConfigError(CommissionError):
    """The bonus plan or a bonus entry refers to something the plan does not define."""


def compute_bucket_payout(goal, actual, max_budget, bucket_weight, sub_weight=None,
                          min_attainment=Decimal('0.75'), max_attainment_cap=Decimal('1.25')):
    """
    Payout for one bonus bucket. Pure, no I/O.

    Attainment below `min_attainment` pays nothing at all; above it the payout
    is linear in attainment up to `max_attainment_cap`. The returned attainment
    is the raw, unclamped ratio.

    Args:
        goal: Goal value for the bucket.
        actual: Achieved value.
        max_budget: The rep's maximum quarterly bonus.
        bucket_weight: Fraction of the budget allotted to the bucket.
        sub_weight: Fraction of the bucket allotted to one sub-goal, if any.

    Returns:
        dict: {'attainment': Decimal, 'bucketMax': Decimal, 'payout': Decimal}
    """
    goal = to_decimal(goal)
    actual = to_decimal(actual)
    min_attainment = to_decimal(min_attainment)
    max_attainment_cap = to_decimal(max_attainment_cap)

    attainment = actual / goal if goal > 0 else ZERO
    bucket_max = to_decimal(max_budget) * to_decimal(bucket_weight)
    if sub_weight is not None:
        bucket_max *= to_decimal(sub_weight)

    payout_attainment = min(max(attainment, ZERO), max_attainment_cap)
    payout = bucket_max * payout_attainment if attainment >= min_attainment else ZERO

    return {
        'attainment': attainment,
        'bucketMax': quantize_money(bucket_max),
        'payout': quantize_money(payout),
    }


def max_budget_for_title(config, title):
    """maxBonusPerRep scaled by the title's role scale; unknown titles get the full budget."""
    scale = (config.get('roleScales') or {}).get(title or '', 1)
    return to_decimal(config.get('maxBonusPerRep')) * to_decimal(scale)


def weights_sum_to_one(weights):
    total = sum((to_decimal(w) for w in weights), ZERO)
    return abs(total - 1) <= WEIGHT_TOLERANCE


def validate_bonus_config(config):
    """Returns a list of problems; an empty list means the plan can be saved."""
    problems = []
    buckets = [b for b in config.get('buckets') or [] if b.get('active', True)]
    if not buckets:
        problems.append('At least one active bucket is required')
    elif not weights_sum_to_one(b.get('weight') for b in buckets):
        problems.append('Bucket weights must sum to 100%')

    for bucket in buckets:
        sub_goals = [s for s in bucket.get('subGoals') or [] if s.get('active', True)]
        if sub_goals and not weights_sum_to_one(s.get('subWeight') for s in sub_goals):
            problems.append(f"Sub-goal weights of bucket {bucket.get('code')} must sum to 100%")

    min_attainment = to_decimal(config.get('minAttainment'))
    cap = to_decimal(config.get('overPerfCap'))
    if cap < min_attainment:
        problems.append('Over-performance cap must not be below the minimum attainment')
    if to_decimal(config.get('maxBonusPerRep')) <= 0:
        problems.append('Max bonus per rep must be positive')
    return problems


def find_bucket(config, bucket_code):
    for bucket in config.get('buckets') or []:
        if bucket.get('code') == bucket_code:
            return bucket
    raise BonusConfigError(f"Invalid bucket code: {bucket_code}")


def sub_goal_weight(bucket, sub_goal_id):
    if not sub_goal_id:
        return None
    for sub_goal in bucket.get('subGoals') or []:
        if str(sub_goal.get('id')) == str(sub_goal_id):
            return sub_goal.get('subWeight')
    raise BonusConfigError(f"Unknown sub-goal '{sub_goal_id}' for bucket {bucket.get('code')}")


def normalize_quarter_id(quarter_id):
    """'Q1-2025' and 'Q1 2025' name the same quarter."""
    return clean_text(quarter_id).replace('-', ' ', 1)


def upsert_bonus_entry(config, quarter_id, rep_id, bucket_code, goal_value, actual_value,
                       sub_goal_id=None, notes=None, commit=True):
    """
    Creates or updates the entry for (quarter, rep, bucket, sub-goal) and
    recomputes its attainment, bucket maximum and payout from the plan.
    """
    bucket = find_bucket(config, bucket_code)
    sub_weight = sub_goal_weight(bucket, sub_goal_id)
    rep = db.session.get(Rep, rep_id)
    title = rep.title if rep is not None else None

    result = compute_bucket_payout(
        goal_value, actual_value,
        max_budget=max_budget_for_title(config, title),
        bucket_weight=bucket.get('weight'),
        sub_weight=sub_weight,
        min_attainment=config.get('minAttainment'),
        max_attainment_cap=config.get('overPerfCap'),
    )

    quarter_id = normalize_quarter_id(quarter_id)
    sub_goal_id = clean_text(sub_goal_id)
    entry = QuarterlyBonusEntry.query.filter_by(
        quarter_id=quarter_id, rep_id=rep_id, bucket_code=bucket_code, sub_goal_id=sub_goal_id,
    ).first()
    if entry is None:
        entry = QuarterlyBonusEntry(quarter_id=quarter_id, rep_id=rep_id,
                                    bucket_code=bucket_code, sub_goal_id=sub_goal_id)
        db.session.add(entry)

    entry.rep_name = rep.name if rep is not None else 'Unknown Rep'
    entry.goal_value = to_decimal(goal_value)
    entry.actual_value = to_decimal(actual_value)
    entry.attainment = result['attainment']
    entry.bucket_max = result['bucketMax']
    entry.payout = result['payout']
    if notes is not None:
        entry.notes = notes
    entry.updated_at = datetime.utcnow()

    if commit:
        db.session.commit()
    return entry


def import_bonus_entries(rows, config):
    """
    Bulk-loads bonus entries from CSV rows. Malformed rows and unknown bucket
    codes are counted as errors; the rest are upserted in one transaction.
    """
    stats = {'imported': 0, 'errors': 0}
    for row_number, row in enumerate(rows, start=2):
        try:
            missing = [c for c in REQUIRED_BONUS_ENTRY_COLUMNS if is_blank(row.get(c))]
            if missing:
                raise RowError(row_number, missing)
            upsert_bonus_entry(
                config,
                quarter_id=row['quarterId'],
                rep_id=clean_text(row['repId']),
                bucket_code=clean_text(row['bucketCode']),
                goal_value=parse_amount(row['goalValue']),
                actual_value=parse_amount(row['actualValue']),
                sub_goal_id=row.get('subGoalId'),
                notes=clean_text(row.get('notes')),
                commit=False,
            )
            stats['imported'] += 1
        except (RowError, BonusConfigError) as e:
            logging.warning(f"Bonus import row {row_number} rejected: {e}")
            stats['errors'] += 1

    db.session.commit()
    logging.info(f"Imported {stats['imported']} bonus entries. {stats['errors']} errors.")
    return stats
