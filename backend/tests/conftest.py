"""
Pytest fixtures for posledger tests.

Provides an in-memory database, two tenants with an outlet each, a seeded
chart of accounts and a small catalog.
"""

from datetime import datetime
from decimal import Decimal

import pytest
from posledger import create_app
from posledger.extensions import db
from posledger.models import ChartOfAccount, Outlet, Product, ProductVariant, Tenant
from posledger.services.accounting_service import initialize_default_coa
from posledger.services.checkout_service import CheckoutItem, CheckoutRequest, PaymentRequest


# A day before the billing due date, so the gate never blocks by accident
BEFORE_DUE = datetime(2026, 3, 5, 10, 0, 0)
AFTER_DUE = datetime(2026, 3, 10, 10, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'JOURNAL_POSTING_MODE': 'inline',
        'BILLING_TIMEZONE': 'Asia/Jakarta',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


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
def tenant_a(db_session):
    """Create Tenant A (first merchant)."""
    tenant = Tenant(name="Warung Kopi A", code="WKA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second merchant)."""
    tenant = Tenant(name="Toko Roti B", code="TRB", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def outlet_a(db_session, tenant_a):
    outlet = Outlet(tenant_id=tenant_a.id, name="Outlet A1")
    db_session.add(outlet)
    db_session.commit()
    return outlet


@pytest.fixture(scope='function')
def outlet_b(db_session, tenant_b):
    outlet = Outlet(tenant_id=tenant_b.id, name="Outlet B1")
    db_session.add(outlet)
    db_session.commit()
    return outlet


@pytest.fixture(scope='function')
def coa_a(db_session, tenant_a):
    """Default chart of accounts for Tenant A, keyed by code."""
    initialize_default_coa(tenant_a.id)
    return {a.code: a for a in db_session.query(ChartOfAccount).filter_by(tenant_id=tenant_a.id)}


@pytest.fixture(scope='function')
def product_a(db_session, tenant_a):
    """10000 with 10% tax."""
    product = Product(
        tenant_id=tenant_a.id,
        sku="KOPI-001",
        name="Kopi Susu",
        base_price=Decimal("10000"),
        tax_rate=Decimal("10"),
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, tenant_a):
    """5000, no tax."""
    product = Product(
        tenant_id=tenant_a.id,
        sku="ROTI-001",
        name="Roti Bakar",
        base_price=Decimal("5000"),
        tax_rate=Decimal("0"),
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def variant_large(db_session, product_a):
    variant = ProductVariant(product_id=product_a.id, name="Large", additional_price=Decimal("3000"))
    db_session.add(variant)
    db_session.commit()
    return variant


@pytest.fixture(scope='function')
def foreign_product(db_session, tenant_b):
    """Product owned by Tenant B."""
    product = Product(tenant_id=tenant_b.id, sku="B-001", name="Foreign", base_price=Decimal("1000"))
    db_session.add(product)
    db_session.commit()
    return product


def make_request(outlet_id, lines, payments, **kwargs) -> CheckoutRequest:
    """
    Helper to build a CheckoutRequest.

    lines: [(product_id, quantity)] or [(product_id, quantity, variant_id)]
    payments: [(method, amount)]
    """
    items = []
    for line in lines:
        product_id, quantity = line[0], line[1]
        variant_id = line[2] if len(line) > 2 else None
        items.append(CheckoutItem(product_id=product_id, quantity=quantity, variant_id=variant_id))
    return CheckoutRequest(
        outlet_id=outlet_id,
        items=items,
        payments=[PaymentRequest(method=m, amount=Decimal(str(a))) for m, a in payments],
        **kwargs,
    )
