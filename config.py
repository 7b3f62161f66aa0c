# ==============================================================================
# config.py
# ------------------------------------------------------------------------------
# Configuration settings for the commission administration application.
# Uses environment variables for sensitive data to keep them out of version control.
# ==============================================================================

import os
from dotenv import load_dotenv

# Determine the absolute path of the project directory
basedir = os.path.abspath(os.path.dirname(__file__))

# Load environment variables from a .env file located in the project root
load_dotenv(os.path.join(basedir, '.env'))

class Config:
    """
    Base configuration class. Contains default settings that can be overridden
    by environment-specific configurations.
    """
    # --- Security ---
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-should-really-set-a-secret-key-in-your-env-file'

    # --- Database Configuration ---
    # SQLite by default; the instance folder holds the database file.
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance/app.db')

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # --- File Upload Configuration ---
    UPLOAD_FOLDER = os.path.join(basedir, 'instance/uploads')

    # ERP and CRM extracts arrive either as spreadsheets or as delimited text.
    ALLOWED_EXTENSIONS = {'.xlsx', '.xls', '.csv'}

    MAX_CONTENT_LENGTH = 64 * 1024 * 1024

    # --- Logging ---
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'

    # --- Engine tunables ---
    # Hard ceiling on operations per atomic batch commit during ingestion.
    INGEST_MAX_BATCH_SIZE = int(os.environ.get('INGEST_MAX_BATCH_SIZE') or 400)
    # The progress record is rewritten every N processed rows.
    INGEST_PROGRESS_EVERY = int(os.environ.get('INGEST_PROGRESS_EVERY') or 50)
    SYNC_MAX_BATCH_SIZE = int(os.environ.get('SYNC_MAX_BATCH_SIZE') or 450)


class TestConfig(Config):
    """Configuration used by the test-suite: in-memory database, no .env secrets."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    UPLOAD_FOLDER = os.path.join(basedir, 'instance/test-uploads')
    LOG_LEVEL = 'DEBUG'
