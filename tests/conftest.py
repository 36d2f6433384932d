# tests/conftest.py - Shared fixtures: in-memory database, API client, factories
import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ENV"] = "dev"
os.environ.pop("LOG_FILE_PATH", None)

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from academy_ledger.core.db import db_manager, get_db
from academy_ledger.models import Base, PaymentPlanRow
from academy_ledger.services.course_fees import CourseFeeService
from academy_ledger.services.plan_generator import PlanGenerator
from academy_ledger.services.registrations import RegistrationService
from academy_ledger.services.settings_service import InstitutionConfig, PenaltyPolicy, ledger_config


@pytest.fixture(scope="session", autouse=True)
def database():
    db_manager.initialize("sqlite:///:memory:")
    yield db_manager
    db_manager.close()


@pytest.fixture(autouse=True)
def schema(database):
    Base.metadata.create_all(bind=database.engine)
    ledger_config.reset()
    yield
    ledger_config.reset()
    Base.metadata.drop_all(bind=database.engine)


@pytest.fixture
def db(database):
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client(db):
    from academy_ledger.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def config():
    """Institution defaults: due on the 10th, 10% after 10 days, +10% after 20"""
    return InstitutionConfig(penalty=PenaltyPolicy())


@pytest.fixture
def student_id():
    return uuid.uuid4()


@pytest.fixture
def make_course(db):
    def factory(course_id="ENG-A1", monthly_fee="3500", registration_fee="1000", duration_months=6, is_active=True):
        course = CourseFeeService(db).upsert_config(
            course_id=course_id,
            registration_fee=Decimal(registration_fee),
            monthly_fee=Decimal(monthly_fee),
            duration_months=duration_months,
            course_name=f"Course {course_id}",
            is_active=is_active,
        )
        db.commit()
        return course
    return factory


@pytest.fixture
def make_registration(db, make_course):
    def factory(student_id=None, course_id="ENG-A1", registration_date=date(2025, 2, 1), **course_kwargs):
        if CourseFeeService(db).find_config(course_id) is None:
            make_course(course_id=course_id, **course_kwargs)
        registration = RegistrationService(db).register(
            student_id=student_id or uuid.uuid4(),
            course_id=course_id,
            registration_date=registration_date,
        )
        db.commit()
        return registration
    return factory


@pytest.fixture
def enrolled(db, config, make_registration, student_id):
    """Student registered on 2025-02-01 in a 6 x 3500 course, plan generated"""
    registration = make_registration(student_id=student_id)
    rows = PlanGenerator(db, config).generate_for_registration(registration.id, as_of=date(2025, 2, 1))
    db.commit()
    return rows


@pytest.fixture
def make_plans(db):
    """Insert plan rows with arbitrary base amounts, one per month from ``start``"""
    def factory(student_id, amounts, course_id="ENG-A1", start=date(2025, 1, 10)):
        rows = []
        due = start
        for amount in amounts:
            rows.append(PaymentPlanRow(
                student_id=student_id,
                course_id=course_id,
                month_reference=f"{due.year:04d}-{due.month:02d}",
                due_date=due,
                base_amount=Decimal(str(amount)),
                discount_amount=Decimal("0.00"),
                paid_total=Decimal("0.00"),
            ))
            due = (due.replace(day=1) + timedelta(days=32)).replace(day=due.day)
        db.add_all(rows)
        db.commit()
        return rows
    return factory


@pytest.fixture
def new_session(database):
    """Session factory for reading back, in a separate identity map, what ``db`` committed"""
    return database.SessionLocal
