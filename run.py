# ==============================================================================
# run.py
# ------------------------------------------------------------------------------
# The main entry point to launch the Flask application.
# ==============================================================================

from commission_app import create_app, db
from commission_app.models import (AppSetting, Customer, CommissionRecord, CrmCompany,
                                   MonthlyCommissionSummary, QuarterlyBonusEntry, Rep, SalesOrder)

# Create the Flask application instance using the factory function
app = create_app()

@app.shell_context_processor
def make_shell_context():
    """Provides a shell context for the `flask shell` command."""
    return {
        'db': db,
        'AppSetting': AppSetting,
        'Rep': Rep,
        'Customer': Customer,
        'CrmCompany': CrmCompany,
        'SalesOrder': SalesOrder,
        'CommissionRecord': CommissionRecord,
        'MonthlyCommissionSummary': MonthlyCommissionSummary,
        'QuarterlyBonusEntry': QuarterlyBonusEntry,
    }

if __name__ == '__main__':
    app.run(debug=True)
