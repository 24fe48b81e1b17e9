import os

import pytest

os.environ['DATABASE_URL'] = 'sqlite://'

import app as app_module
from models import db


@pytest.fixture
def flask_app():
    app_module.app.config['TESTING'] = True
    with app_module.app.app_context():
        db.drop_all()
        db.create_all()
        yield app_module.app
        db.session.remove()


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture
def store(flask_app):
    return app_module.rule_store
