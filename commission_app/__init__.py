# ==============================================================================
# commission_app/__init__.py
# ------------------------------------------------------------------------------
# Application factory for creating and configuring the Flask app instance.
# ==============================================================================

import os
import logging
import click
from flask import Flask
from config import Config
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Initialize extensions globally to be accessible by other modules
db = SQLAlchemy()
migrate = Migrate()

def create_app(config_class=Config):
    """
    Application factory function. Creates and configures the Flask application.

    Args:
        config_class (class): The configuration class to use.

    Returns:
        Flask: The configured Flask application instance.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)

    # Configure logging
    logging.basicConfig(level=getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO),
                        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    # Ensure the instance folder exists for the SQLite database and uploaded extracts
    os.makedirs(app.instance_path, exist_ok=True)

    # Initialize extensions with the application instance
    db.init_app(app)
    migrate.init_app(app, db)

    # Register blueprints with the application
    from commission_app.main import bp as main_bp
    app.register_blueprint(main_bp, url_prefix='/api')

    register_commands(app)

    app.logger.info('Commission administration engine startup complete')

    return app


def register_commands(app):
    """Attaches the maintenance commands to `flask <command>`."""

    @app.cli.command("seed")
    def seed():
        """Seeds the database with default values."""
        from commission_app.seed import seed_data
        seed_data()
        app.logger.info("Database has been seeded with default values.")

    @app.cli.command("sync-account-types")
    def sync_account_types_command():
        """Propagates CRM account types onto ERP customers."""
        from commission_app.calculator.sync import sync_account_types
        stats = sync_account_types(max_batch_size=app.config['SYNC_MAX_BATCH_SIZE'])
        click.echo(stats)

    @app.cli.command("calculate-commissions")
    @click.option('--month', type=int, required=True)
    @click.option('--year', type=int, required=True)
    @click.option('--rep', 'sales_person', default=None, help='Restrict to one ERP salesperson code.')
    def calculate_commissions_command(month, year, sales_person):
        """Calculates and stores monthly commissions."""
        from commission_app.calculator.engine import calculate_monthly_commissions
        result = calculate_monthly_commissions(month, year, sales_person=sales_person)
        click.echo({k: v for k, v in result.items() if k != 'perRepSummary'})

    @app.cli.command("ingest-orders")
    @click.argument('path', type=click.Path(exists=True, dir_okay=False))
    def ingest_orders_command(path):
        """Imports an ERP sales-order extract from disk."""
        from commission_app.calculator.validator import read_tabular_file
        from commission_app.calculator.ingestion import import_orders, new_import_id
        rows = read_tabular_file(path)
        stats = import_orders(rows, import_id=new_import_id(), filename=os.path.basename(path))
        click.echo(stats)
