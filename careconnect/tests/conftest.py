import os

# Must be set before the app module reads its configuration
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
os.environ.setdefault('COGNITO_POOL_ID', 'test-pool')

import pytest
from careconnect import app as flask_app, db

@pytest.fixture
def test_app():
    """Fixture to build the app for testing"""
    flask_app.config['TESTING'] = True
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()

@pytest.fixture
def client(test_app):
    """Fixture for the test client"""
    return test_app.test_client()
