"""
Pytest fixtures for storefront backend tests.

Provides test database setup, member/admin accounts with live session
tokens, catalog helpers, a recording notifier, and the test client.
"""

import re

import pytest
from app import create_app
from app.extensions import db
from app.models import Category, Product, RewardTask, User
from app.services import session_service
from app.services.notification_service import Notifier


class RecordingNotifier(Notifier):
    """Captures outgoing messages instead of logging them."""

    def __init__(self):
        self.emails = []
        self.sms = []

    def send_email(self, to, subject, body):
        self.emails.append({"to": to, "subject": subject, "body": body})

    def send_sms(self, to, body):
        self.sms.append({"to": to, "body": body})

    def last_code(self) -> str | None:
        for message in reversed(self.sms + self.emails):
            match = re.search(r"\b(\d{6})\b", message["body"])
            if match:
                return match.group(1)
        return None


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp('uploads')),
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    db.session.rollback()
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()

    yield db.session

    # Cleanup after test
    db.session.rollback()


@pytest.fixture(scope='function')
def notifier(app):
    recorder = RecordingNotifier()
    app.extensions['notifier'] = recorder
    yield recorder
    app.extensions.pop('notifier', None)


def make_user(email, phone, full_name, role="user", status="verified", reward_points=0) -> User:
    user = User(
        email=email,
        phone=phone,
        full_name=full_name,
        role=role,
        status=status,
        reward_points=reward_points,
    )
    db.session.add(user)
    db.session.commit()
    return user


def make_product(name, price_cents, stock=None, category=None, images=None) -> Product:
    product = Product(
        name=name,
        price_cents=price_cents,
        stock=stock,
        category_id=category.id if category is not None else None,
        images=images or [],
        is_active=True,
    )
    db.session.add(product)
    db.session.commit()
    return product


def make_task(task_id, title, reward, is_required=True, is_visible=True, sort_order=0) -> RewardTask:
    task = RewardTask(
        task_id=task_id,
        title=title,
        description="",
        reward=reward,
        is_required=is_required,
        is_visible=is_visible,
        sort_order=sort_order,
    )
    db.session.add(task)
    db.session.commit()
    return task


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user: User) -> dict:
    _, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def member(db_session):
    return make_user("alice@example.com", "5550000001", "Alice Member")


@pytest.fixture(scope='function')
def other_member(db_session):
    return make_user("bob@example.com", "5550000002", "Bob Member")


@pytest.fixture(scope='function')
def admin(db_session):
    return make_user("admin@example.com", "5559999999", "Store Admin", role="admin")


@pytest.fixture(scope='function')
def member_headers(member):
    return headers_for(member)


@pytest.fixture(scope='function')
def other_member_headers(other_member):
    return headers_for(other_member)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Drinks", description="Cold and hot drinks")
    db.session.add(category)
    db.session.commit()
    return category
