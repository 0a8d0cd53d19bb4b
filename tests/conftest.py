import os
import tempfile

# Configure before the app module reads the environment
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['LOG_FILE'] = os.path.join(tempfile.gettempdir(), 'gametopup-test.log')
os.environ.setdefault('STRIPE_SECRET_KEY', 'sk_test_dummy')

import pytest
import stripe
from flask import g
from flask.testing import FlaskClient
from werkzeug.security import generate_password_hash

from app import app as flask_app
from models import db, AdminUser, User, Game, GamePackage


ADMIN_EMAIL = 'admin@example.com'
ADMIN_PASSWORD = 'secret123'


class FakeStripe:
    """Stands in for the Stripe PaymentIntent API."""

    def __init__(self):
        self.intents = {}
        self.created = []

    def create(self, **kwargs):
        intent_id = f'pi_test_{len(self.intents) + 1}'
        intent = {
            'id': intent_id,
            'client_secret': f'{intent_id}_secret',
            'status': 'requires_payment_method',
            **kwargs,
        }
        self.intents[intent_id] = intent
        self.created.append(intent)
        return intent

    def retrieve(self, intent_id):
        if intent_id not in self.intents:
            raise stripe.InvalidRequestError(f'No such payment_intent: {intent_id}', 'intent')
        return self.intents[intent_id]

    def succeed(self, intent_id):
        self.intents[intent_id]['status'] = 'succeeded'


class SessionClient(FlaskClient):
    """Test client that reloads the admin from the session cookie on every request.

    Requests reuse the fixture's app context, so Flask-Login's cached user on
    ``g`` would otherwise leak from one request into the next.
    """

    def open(self, *args, **kwargs):
        g.pop('_login_user', None)
        return super().open(*args, **kwargs)


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True, STRIPE_WEBHOOK_SECRET='whsec_test')
    flask_app.test_client_class = SessionClient
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin(app):
    admin = AdminUser(email=ADMIN_EMAIL, password=generate_password_hash(ADMIN_PASSWORD, method='pbkdf2:sha256'))
    db.session.add(admin)
    db.session.commit()
    return admin


@pytest.fixture
def admin_client(client, admin):
    response = client.post('/api/admin/login', json={'email': ADMIN_EMAIL, 'password': ADMIN_PASSWORD})
    assert response.status_code == 200
    return client


@pytest.fixture
def fake_stripe(monkeypatch):
    fake = FakeStripe()
    monkeypatch.setattr(stripe.PaymentIntent, 'create', fake.create)
    monkeypatch.setattr(stripe.PaymentIntent, 'retrieve', fake.retrieve)
    return fake


@pytest.fixture
def user(app):
    user = User(id='firebase-uid-1', email='player@example.com', display_name='Player One', provider='google')
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def game(app):
    game = Game(
        name='Free Fire',
        slug='free-fire',
        description='Battle royale',
        image_url='https://img.example.com/ff.png',
        category='Battle Royale',
        publisher='Garena',
        stock=1,
    )
    db.session.add(game)
    db.session.commit()
    return game


@pytest.fixture
def package(game):
    pkg = GamePackage(game_id=game.id, name='100 Diamonds', amount='100 Diamonds', price=10000)
    db.session.add(pkg)
    db.session.commit()
    return pkg
