"""
Shared pytest fixtures for the points ledger tests.

`app` runs against in-memory SQLite with an application context pushed for
the whole test, so tests can use the services and `db` directly.
`file_app` uses a file-backed database instead, for tests that open
connections from several threads.
"""
import pytest

from pointsledger import create_app
from pointsledger.extensions import db
from pointsledger.models import AccountRole, LoyaltySetting, TransactionKind


@pytest.fixture
def app():
    """Create test application."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Test client sharing the app fixture's database."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """CLI runner for flask commands."""
    return app.test_cli_runner()


@pytest.fixture
def file_app(tmp_path):
    """App backed by a SQLite file so worker threads get real connections."""
    db_path = tmp_path / 'ledger.db'
    app = create_app('testing', config_overrides={
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        'SQLALCHEMY_ENGINE_OPTIONS': {
            'connect_args': {'check_same_thread': False, 'timeout': 30},
        },
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def default_settings(app):
    """Store the default points-per-order settings."""
    db.session.add_all([
        LoyaltySetting(key='customer_points_per_order', value='10'),
        LoyaltySetting(key='representative_points_per_order', value='10'),
    ])
    db.session.commit()


@pytest.fixture
def ledger(app):
    from pointsledger.services import LedgerService
    return LedgerService()


@pytest.fixture
def funded_customer(app, ledger):
    """Customer C1 holding 10 points from order O1."""
    ledger.append('C1', AccountRole.CUSTOMER, TransactionKind.EARNED, 10, source_order_id='O1')
    return 'C1'
