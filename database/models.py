# ScopeGuard - database models
import uuid
from datetime import datetime
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, declarative_base


Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"
    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(128), nullable=True)
    password_hash = Column(String(256), nullable=False)
    role = Column(String(20), nullable=False)  # TEACHER, IQA_EVALUATOR, EQA_EVALUATOR, EXECUTIVE, ADMIN
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class SubIndicator(Base):
    __tablename__ = "sub_indicators"
    id = Column(String(36), primary_key=True, default=_uuid)
    code = Column(String(32), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    owner = relationship("User", backref="owned_sub_indicators")

    def __repr__(self):
        return f"<SubIndicator(id={self.id}, code={self.code})>"


class AcademicYear(Base):
    __tablename__ = "academic_years"
    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(64), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    upload_window_open = Column(Boolean, nullable=False, default=False)
    evaluation_window_open = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<AcademicYear(id={self.id}, name={self.name})>"


class Evidence(Base):
    __tablename__ = "evidence"
    id = Column(String(36), primary_key=True, default=_uuid)
    uploader_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    sub_indicator_id = Column(String(36), ForeignKey("sub_indicators.id"), nullable=False, index=True)
    academic_year_id = Column(String(36), ForeignKey("academic_years.id"), nullable=False, index=True)
    original_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False, default=0)
    mime_type = Column(String(128), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    uploaded_at = Column(DateTime, default=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)  # soft delete (recycle bin)

    uploader = relationship("User", backref="evidence")
    sub_indicator = relationship("SubIndicator", backref="evidence")
    academic_year = relationship("AcademicYear", backref="evidence")

    def __repr__(self):
        return f"<Evidence(id={self.id}, sub_indicator_id={self.sub_indicator_id})>"


# One evaluation per (evidence, evaluator); a second submission updates it
class Evaluation(Base):
    __tablename__ = "evaluations"
    __table_args__ = (UniqueConstraint("evidence_id", "evaluator_id", name="uq_evaluation_evidence_evaluator"),)
    id = Column(String(36), primary_key=True, default=_uuid)
    evidence_id = Column(String(36), ForeignKey("evidence.id"), nullable=False)
    evaluator_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    qualitative_score = Column(Integer, nullable=True)  # 1..5
    quantitative_score = Column(Integer, nullable=True)  # 0..100
    comments = Column(Text, nullable=True)
    evaluated_at = Column(DateTime, default=datetime.utcnow)

    evidence = relationship("Evidence", backref="evaluations")
    evaluator = relationship("User", backref="evaluations")
