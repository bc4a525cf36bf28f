"""
Pytest fixtures for OrderDesk backend tests.

Provides test database setup, two tenants with users of each grade,
a small catalog, and helpers for staging and confirming spreadsheets.
"""

import base64
import io

import pytest
from openpyxl import Workbook

from orderdesk import create_app
from orderdesk.extensions import db
from orderdesk.models import Company, User, Product, Mall, UploadTemplate
from orderdesk.models.auth import GRADE_ADMIN, GRADE_ONLINE, GRADE_STAFF
from orderdesk.services.auth_service import hash_password
from orderdesk.services import confirm_service, staging_service


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ORDERDESK_TIMEZONE': 'Asia/Seoul',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def company_a(db_session):
    """Create Company A (first tenant)."""
    company = Company(name="Company A - Acme", code="ACME", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_b(db_session):
    """Create Company B (second tenant)."""
    company = Company(name="Company B - Beta", code="BETA", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


def _make_user(db_session, company, username, grade=GRADE_STAFF):
    user = User(
        company_id=company.id,
        username=username,
        email=f"{username}@example.com",
        password_hash=hash_password(PASSWORD),
        grade=grade,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_a(db_session, company_a):
    """Staff user in Company A."""
    return _make_user(db_session, company_a, "user_a")


@pytest.fixture(scope='function')
def colleague_a(db_session, company_a):
    """Second staff user in Company A."""
    return _make_user(db_session, company_a, "colleague_a")


@pytest.fixture(scope='function')
def online_user_a(db_session, company_a):
    """Online-grade user in Company A (marketplace uploads)."""
    return _make_user(db_session, company_a, "online_a", grade=GRADE_ONLINE)


@pytest.fixture(scope='function')
def admin_a(db_session, company_a):
    """Admin-grade user in Company A."""
    return _make_user(db_session, company_a, "admin_a", grade=GRADE_ADMIN)


@pytest.fixture(scope='function')
def user_b(db_session, company_b):
    """Staff user in Company B."""
    return _make_user(db_session, company_b, "user_b")


@pytest.fixture(scope='function')
def admin_b(db_session, company_b):
    """Admin-grade user in Company B."""
    return _make_user(db_session, company_b, "admin_b", grade=GRADE_ADMIN)


@pytest.fixture(scope='function')
def mall_a(db_session, company_a):
    """Mall 'ACME' in Company A."""
    mall = Mall(company_id=company_a.id, name="ACME", code="AC")
    db_session.add(mall)
    db_session.commit()
    return mall


@pytest.fixture(scope='function')
def products_a(db_session, company_a):
    """Small catalog for Company A."""
    products = [
        Product(company_id=company_a.id, code="P-100", name="위젯", price=1000, type="외주", post_type="CJ대한통운"),
        Product(company_id=company_a.id, code="P-200", name="가방", price=5000, sale_price=6500,
                sabang_name="ㄱ프리미엄 가방", type="외주"),
        Product(company_id=company_a.id, code="106464", name="참기름", price=3000, type="내주", post_type="CJ대한통운"),
        Product(company_id=company_a.id, code="P-300", name="들기름", price=3500, type="내주"),
    ]
    db_session.add_all(products)
    db_session.commit()
    return {p.code: p for p in products}


def stage_and_confirm(company, user, table, *, file_name="orders.xlsx", file_id=None, vendor_name=None):
    """Stage one table for `user` and confirm it; returns the ConfirmResult."""
    file_id = file_id or f"fid-{file_name}"
    staging_service.stage_file(
        company_id=company.id,
        user_id=user.id,
        file_id=file_id,
        file_name=file_name,
        table_data=table,
        vendor_name=vendor_name,
    )
    return confirm_service.confirm_staged_files(company.id, user, [file_id])


def make_template(db_session, company, name, column_order=None, *, original_file=None, **extra):
    """Store an UploadTemplate with a plain column order."""
    data = dict(extra)
    if column_order is not None:
        data["column_order"] = list(column_order)
    if original_file is not None:
        data["original_file"] = original_file
    template = UploadTemplate(company_id=company.id, name=name, template_data=data)
    db_session.add(template)
    db_session.commit()
    return template


def workbook_b64(wb: Workbook) -> str:
    buffer = io.BytesIO()
    wb.save(buffer)
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
