import os

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret')
os.environ.setdefault('STRIPE_SECRET_KEY', 'sk_test_codebyte')
os.environ.setdefault('STRIPE_WEBHOOK_SECRET', 'whsec_codebyte')

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from codebyte.auth.passwords import hash_password  # noqa: E402
from codebyte.core.errors import GatewayError  # noqa: E402
from codebyte.database import Base  # noqa: E402
from codebyte.models.category import Category  # noqa: E402
from codebyte.models.course import Course, CourseSection  # noqa: E402
from codebyte.models.purchase import Purchase  # noqa: E402,F401
from codebyte.models.documentation import Documentation  # noqa: E402
from codebyte.models.user import User  # noqa: E402
from codebyte.payments.gateway import (  # noqa: E402
    CheckoutSession,
    SessionStatus,
    WebhookSignatureError,
    resource_type_of,
)

TEST_PASSWORD = 'password123'


class FakeGateway:
    """In-memory stand-in for the Stripe adapter."""

    def __init__(self, webhook_secret: str | None = 'whsec_codebyte'):
        self.webhook_secret = webhook_secret
        self.created: list[dict] = []
        self.sessions: dict[str, SessionStatus] = {}
        self.events: dict[bytes, object] = {}

    def create_checkout_session(self, user, resource, success_url, cancel_url):
        session_id = f'cs_test_{len(self.created) + 1}'
        self.created.append({
            'session_id': session_id,
            'user_id': user.id,
            'resource': resource,
            'success_url': success_url,
            'cancel_url': cancel_url,
        })
        self.sessions[session_id] = SessionStatus(
            id=session_id,
            payment_status='unpaid',
            metadata={
                'user_id': str(user.id),
                'resource_type': resource_type_of(resource),
                'resource_id': str(resource.id),
            },
            amount_total=int(round(resource.price * 100)),
            currency=resource.currency,
            customer_email=user.email,
        )
        return CheckoutSession(id=session_id, url=f'https://checkout.stripe.test/{session_id}')

    def mark_paid(self, session_id: str) -> SessionStatus:
        session = self.sessions[session_id]
        session.payment_status = 'paid'
        session.payment_intent_id = f'pi_{session_id}'
        return session

    def retrieve_session(self, session_id: str) -> SessionStatus:
        if session_id not in self.sessions:
            raise GatewayError('Failed to verify session')
        return self.sessions[session_id]

    def construct_event(self, payload: bytes, signature: str):
        if signature != 'valid-signature' or payload not in self.events:
            raise WebhookSignatureError('No signatures found matching the expected signature for payload')
        return self.events[payload]


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


def _add(db, instance):
    db.add(instance)
    db.commit()
    db.refresh(instance)
    return instance


@pytest.fixture
def user(db) -> User:
    return _add(db, User(email='reader@example.com', hashed_password=hash_password(TEST_PASSWORD), role='USER'))


@pytest.fixture
def other_user(db) -> User:
    return _add(db, User(email='other@example.com', hashed_password=hash_password(TEST_PASSWORD), role='USER'))


@pytest.fixture
def admin(db) -> User:
    return _add(db, User(email='admin@example.com', hashed_password=hash_password(TEST_PASSWORD), role='ADMIN'))


@pytest.fixture
def category(db) -> Category:
    return _add(db, Category(title='Python', slug='python', description='Python guides', order=1))


@pytest.fixture
def paid_doc(db, category) -> Documentation:
    doc = _add(db, Documentation(
        title='Async Python in Depth',
        slug='async-python',
        description='Event loops, tasks and structured concurrency',
        content='asyncio ' * 200,
        category_id=category.id,
        key_features=['Event loop internals', 'Task groups'],
        code_examples=[{'title': 'Hello', 'code': 'print(1)', 'description': 'Smallest example'}],
        pro_tip='Never block the loop.',
        price=10.0,
        currency='usd',
    ))
    _add(db, Documentation(
        title='Task Groups',
        slug='async-python-task-groups',
        content='Task group body',
        category_id=category.id,
        parent_id=doc.id,
        order=1,
    ))
    db.refresh(doc)
    return doc


@pytest.fixture
def free_doc(db, category) -> Documentation:
    return _add(db, Documentation(
        title='Python Basics',
        slug='python-basics',
        content='Variables, loops and functions.',
        category_id=category.id,
        price=0,
    ))


@pytest.fixture
def course(db, category) -> Course:
    course = _add(db, Course(
        title='FastAPI Bootcamp',
        description='Build APIs with FastAPI',
        level='INTERMEDIATE',
        rating=4.7,
        student_count=1200,
        price=49.0,
        is_published=True,
        category_id=category.id,
    ))
    _add(db, CourseSection(title='Routing', content='Routers', order=2, course_id=course.id))
    _add(db, CourseSection(title='Setup', content='Install', order=1, course_id=course.id))
    return course
