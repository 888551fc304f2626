"""
Pytest configuration and fixtures for helpdesk tests
"""
import pytest
from flask import g
from helpdesk import create_app, db
from helpdesk.models.user import User
from helpdesk.models.tenant import Tenant, TenantMembership
from helpdesk.models.contact import Contact
from helpdesk.services import ticket_service


@pytest.fixture(scope='session')
def app():
    """Create and configure a test application instance"""
    app = create_app('testing')

    # Establish an application context
    ctx = app.app_context()
    ctx.push()

    yield app

    ctx.pop()


@pytest.fixture(scope='session')
def _db(app):
    """Create test database"""
    db.create_all()
    yield db
    db.session.remove()


@pytest.fixture(scope='function', autouse=True)
def cleanup_db(_db):
    """Drop and recreate every table around each test"""
    yield

    g.pop('_login_user', None)
    _db.session.remove()
    _db.drop_all()
    _db.create_all()


@pytest.fixture(scope='function')
def db_session(_db):
    """Provide the database session for tests"""
    return _db.session


@pytest.fixture
def client(app):
    """Create a test client with login/logout helpers"""
    client = app.test_client()

    def login(user, tenant_id=None):
        """Log in a user for testing"""
        # Requests share the pushed app context; drop the cached user
        g.pop('_login_user', None)
        with client.session_transaction() as sess:
            sess['_user_id'] = str(user.id)  # Flask-Login uses _user_id
            sess['_fresh'] = True
            if tenant_id:
                sess['current_tenant_id'] = tenant_id

    def logout():
        g.pop('_login_user', None)
        with client.session_transaction() as sess:
            sess.clear()

    client.login = login
    client.logout = logout
    return client


def _make_user(db_session, email, first_name, last_name):
    user = User(email=email, first_name=first_name, last_name=last_name)
    user.set_password('Test123!@#')
    db_session.add(user)
    db_session.commit()
    return user


def _make_tenant(db_session, name, slug, owner):
    tenant = Tenant(name=name, slug=slug)
    db_session.add(tenant)
    db_session.flush()

    db_session.add(TenantMembership(tenant_id=tenant.id, user_id=owner.id, role='owner'))
    db_session.commit()
    return tenant


@pytest.fixture
def test_user(db_session):
    """Create a test user"""
    return _make_user(db_session, 'test@example.com', 'Test', 'User')


@pytest.fixture
def test_user_2(db_session):
    """Create a second test user"""
    return _make_user(db_session, 'test2@example.com', 'Test', 'User2')


@pytest.fixture
def test_tenant(db_session, test_user):
    """Create a test tenant with the test user as owner"""
    return _make_tenant(db_session, 'Test Workspace', 'test-workspace', test_user)


@pytest.fixture
def test_tenant_2(db_session, test_user_2):
    """Create a second test tenant with test_user_2 as owner"""
    return _make_tenant(db_session, 'Test Workspace 2', 'test-workspace-2', test_user_2)


@pytest.fixture
def test_agent(db_session, test_tenant):
    """A plain agent (no admin rights) in test_tenant"""
    user = _make_user(db_session, 'agent@example.com', 'Plain', 'Agent')
    db_session.add(TenantMembership(tenant_id=test_tenant.id, user_id=user.id, role='agent'))
    db_session.commit()
    return user


@pytest.fixture
def test_contact(db_session, test_tenant):
    contact = Contact(tenant_id=test_tenant.id, email='customer@acme.com', name='Casey Customer')
    db_session.add(contact)
    db_session.commit()
    return contact


@pytest.fixture
def test_ticket(db_session, test_tenant, test_contact):
    """A new ticket from test_contact"""
    return ticket_service.create_ticket(
        test_tenant.id,
        'Cannot log in',
        'The login page says my password is wrong.',
        contact_id=test_contact.id,
        priority='medium'
    )


@pytest.fixture
def auth_client(client, test_user, test_tenant):
    """Client logged in as the owner of test_tenant"""
    client.login(test_user, test_tenant.id)
    return client
