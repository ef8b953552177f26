"""
Shared Flask extensions for the points ledger.

Created unbound here and attached to the app inside create_app().
"""
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Ledger, account and settings tables
db = SQLAlchemy()

# Alembic revisions live in migrations/versions
migrate = Migrate()
