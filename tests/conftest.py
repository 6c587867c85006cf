import pytest
import os
import uuid
from datetime import date, datetime, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["TIME_ZONE"] = "UTC"

from app.core.clock import FixedClock, get_clock
from app.database import Base, get_db
from app.main import app
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Wednesday; the current week starts Monday 2024-01-08
NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Get a clean database session for each test function with rollback safety."""
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def clock():
    return FixedClock(NOW)


@pytest.fixture(scope="function")
def org(db_session):
    """Create a default organization for tests."""
    from app.models.organization import Organization
    org = Organization(name="Alpha Corp", slug=f"alpha-corp-{uuid.uuid4()}")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope="function")
def make_user(db_session, org):
    """Factory for users with an employee profile in the default organization."""
    from app.models.employee import Employee
    from app.models.user import User

    def _make_user(role, name=None, manager=None, organization=None):
        organization = organization or org
        name = name or role.value.lower()
        user = User(
            email=f"{name}-{uuid.uuid4().hex[:8]}@alphacorp.com",
            full_name=name.title(),
            role=role,
            organization_id=organization.id,
            is_active=True,
        )
        db_session.add(user)
        db_session.flush()
        employee = Employee(
            organization_id=organization.id,
            user_id=user.id,
            full_name=user.full_name,
            manager_id=manager.employee_profile.id if manager else None,
        )
        db_session.add(employee)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make_user


@pytest.fixture(scope="function")
def manager_user(make_user):
    from app.models.user import UserRole
    return make_user(UserRole.MANAGER, "manager")


@pytest.fixture(scope="function")
def employee_user(make_user, manager_user):
    from app.models.user import UserRole
    return make_user(UserRole.EMPLOYEE, "employee", manager=manager_user)


@pytest.fixture(scope="function")
def hr_user(make_user):
    from app.models.user import UserRole
    return make_user(UserRole.HR_MANAGER, "hr")


@pytest.fixture(scope="function")
def admin_user(make_user):
    from app.models.user import UserRole
    return make_user(UserRole.HR_ADMIN, "admin")


@pytest.fixture(scope="function")
def leave_type(db_session, org):
    from app.models.leave_type import LeaveType
    lt = LeaveType(organization_id=org.id, name="Paid Time Off", code="PTO")
    db_session.add(lt)
    db_session.commit()
    return lt


@pytest.fixture(scope="function")
def make_balance(db_session, org):
    from app.models.leave_balance import LeaveBalance

    def _make_balance(user, leave_type, balance_days=20.0, used_ytd=0.0, year=2024):
        balance = LeaveBalance(
            organization_id=org.id,
            employee_id=user.employee_profile.id,
            leave_type_id=leave_type.id,
            period_start=date(year, 1, 1),
            period_end=date(year, 12, 31),
            balance_days=balance_days,
            used_ytd=used_ytd,
        )
        db_session.add(balance)
        db_session.commit()
        return balance
    return _make_balance


@pytest.fixture(scope="function")
def auth_headers():
    """Helper fixture to build bearer headers for a user."""
    from app.services.auth import create_access_token

    def _auth_headers(user):
        token = create_access_token(data={"sub": user.email, "role": user.role.value})
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers


@pytest.fixture(scope="function")
def client(db_session, clock):
    """Get a TestClient that uses the test database session and a fixed clock."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def service_for(db_session, clock):
    """Build a tenant-scoped service for a user, sharing the test session and clock."""
    def _service_for(service_cls, user, **kwargs):
        return service_cls(db_session, user.organization_id, actor=user, clock=clock, **kwargs)
    return _service_for
