import json
from commission_app import db
from commission_app.models import AppSetting
from commission_app.calculator.rates import DEFAULT_RATES
from commission_app.calculator.reference import (BONUS_SETTING_KEY, DEFAULT_BONUS_CONFIG, DEFAULT_COMMISSION_RULES,
                                                 RULES_SETTING_KEY, setting_key_for_title)

DEFAULT_TITLES = [
    'Sr. Account Executive',
    'Account Executive',
    'Jr. Account Executive',
    'Account Manager',
]


def default_rate_table():
    """The built-in rate grid as a storable document; the rep transfer rule ships disabled."""
    return {
        'rates': {
            segment: {status: float(rate) for status, rate in statuses.items()}
            for segment, statuses in DEFAULT_RATES.items()
        },
        'defaultRate': 5.0,
        'specialRules': {
            'repTransfer': {'enabled': False, 'flatFee': 0, 'percentFallback': 2.0, 'useGreater': True},
        },
    }


DEFAULT_SETTINGS = {
    # key: [value, description, value_type]
    RULES_SETTING_KEY: [json.dumps(DEFAULT_COMMISSION_RULES), 'Commission policy flags (JSON)', 'json'],
    BONUS_SETTING_KEY: [json.dumps(DEFAULT_BONUS_CONFIG), 'Quarterly bonus plan (JSON)', 'json'],
}
for _title in DEFAULT_TITLES:
    DEFAULT_SETTINGS[setting_key_for_title(_title)] = [
        json.dumps(default_rate_table()), f'Commission rates for {_title} (JSON)', 'json',
    ]


def seed_data():
    """Populates the database with default settings and rate tables."""
    for key, data in DEFAULT_SETTINGS.items():
        setting = AppSetting.query.filter_by(key=key).first()
        if not setting: # Only add if it doesn't exist
            setting = AppSetting(key=key, value=data[0], description=data[1], value_type=data[2])
            db.session.add(setting)
            print(f'Seeding setting: {key}')

    db.session.commit()
    print('Seeding complete.')
