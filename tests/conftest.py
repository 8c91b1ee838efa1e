"""Pytest configuration and shared fixtures."""

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database.models import AcademicYear, Base, Evidence, SubIndicator, User
from scopeguard import AcademicYear as PolicyYear, Requester, Resource, Role
from scopeguard.audit import clear_audit_log, shutdown_audit_logger

THIS_YEAR = date.today().year


def make_requester(role: Role, user_id: str = "u1", scopes=(), is_active: bool = True) -> Requester:
    return Requester(id=user_id, role=role, is_active=is_active, owned_scope_ids=frozenset(scopes))


def make_resource(
    owner_id: str = "u1",
    scope_id: str = "S1",
    academic_year_id: str = "AY2024",
    deleted: bool = False,
    resource_id: str = "E1",
) -> Resource:
    return Resource(
        id=resource_id,
        owner_id=owner_id,
        scope_id=scope_id,
        academic_year_id=academic_year_id,
        deleted_at=datetime(2024, 9, 1) if deleted else None,
    )


def make_year(
    year_id: str = "AY2024",
    start_year: int = 2024,
    is_active: bool = True,
    upload_window_open: bool = True,
    evaluation_window_open: bool = True,
) -> PolicyYear:
    return PolicyYear(
        id=year_id,
        start_year=start_year,
        is_active=is_active,
        upload_window_open=upload_window_open,
        evaluation_window_open=evaluation_window_open,
    )


@pytest.fixture(autouse=True)
def reset_audit_log():
    """Each test starts with an empty in-memory audit log."""
    clear_audit_log()
    yield
    shutdown_audit_logger()
    clear_audit_log()


def _year_row(year_id: str, start: int, **flags) -> AcademicYear:
    return AcademicYear(
        id=year_id,
        name=f"{start}-{start + 1}",
        start_date=date(start, 6, 1),
        end_date=date(start + 1, 3, 31),
        **flags,
    )


def _user(user_id: str, role: str, is_active: bool = True, password_hash: str = "!") -> User:
    return User(
        id=user_id,
        email=f"{user_id}@school.test",
        name=user_id,
        role=role,
        is_active=is_active,
        password_hash=password_hash,
    )


@pytest.fixture
def seeded_db(tmp_path, monkeypatch):
    """A SQLite file with one institution, written synchronously before the app starts."""
    path = tmp_path / "scopeguard.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    base_time = datetime(THIS_YEAR, 7, 1, 9, 0, 0)
    with Session(engine) as s:
        s.add_all([
            _user("admin", "ADMIN"),
            _user("teacher1", "TEACHER"),
            _user("teacher2", "TEACHER"),
            _user("former", "TEACHER", is_active=False),
            _user("iqa", "IQA_EVALUATOR"),
            _user("iqa-unassigned", "IQA_EVALUATOR"),
            _user("eqa", "EQA_EVALUATOR"),
            _user("exec", "EXECUTIVE"),
        ])
        s.flush()
        s.add_all([
            SubIndicator(id="s1", code="1.1.1", name="Learning outcomes", owner_id="iqa"),
            SubIndicator(id="s2", code="1.1.2", name="Curriculum review"),
            _year_row("ay-current", THIS_YEAR, is_active=True, upload_window_open=True, evaluation_window_open=True),
            _year_row("ay-prev", THIS_YEAR - 1, is_active=False, evaluation_window_open=False),
            _year_row("ay-old", THIS_YEAR - 5, is_active=False, evaluation_window_open=True),
        ])
        s.flush()
        s.add_all([
            Evidence(id="ev-1", uploader_id="teacher1", sub_indicator_id="s1", academic_year_id="ay-current",
                     original_name="syllabus.pdf", file_size=10, uploaded_at=base_time),
            Evidence(id="ev-2", uploader_id="teacher2", sub_indicator_id="s2", academic_year_id="ay-current",
                     original_name="review.pdf", file_size=10, uploaded_at=base_time + timedelta(hours=1)),
            Evidence(id="ev-3", uploader_id="teacher1", sub_indicator_id="s1", academic_year_id="ay-prev",
                     original_name="last-year.pdf", file_size=10, uploaded_at=base_time - timedelta(days=300)),
            Evidence(id="ev-4", uploader_id="teacher2", sub_indicator_id="s1", academic_year_id="ay-old",
                     original_name="archive.pdf", file_size=10, uploaded_at=base_time - timedelta(days=1800)),
            Evidence(id="ev-del", uploader_id="teacher1", sub_indicator_id="s1", academic_year_id="ay-current",
                     original_name="wrong-file.pdf", file_size=10, uploaded_at=base_time,
                     deleted_at=base_time + timedelta(minutes=5)),
        ])
        s.commit()
    engine.dispose()

    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{path}")
    monkeypatch.setenv("AUDIT_LOG_PATH", str(tmp_path / "audit_log.jsonl"))
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    return path
