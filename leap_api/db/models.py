import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

# Define naming conventions for constraints and indexes
# https://alembic.sqlalchemy.org/en/latest/naming.html
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)
Base = declarative_base(metadata=metadata)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Always stored lower-cased; the unique constraint is the concurrency guard
    # for "resolve or create user by email".
    email = Column(String(254), unique=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    company = Column(String(255), nullable=True)
    role = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    user_role = Column(String(20), nullable=False, default="user")
    email_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    assessment_responses = relationship("AssessmentResponse", back_populates="user")


class AssessmentResponse(Base):
    __tablename__ = "assessment_responses"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assessment_type = Column(String(20), nullable=False)
    scores = Column(JSON, nullable=False)  # {leadership, effectiveness, accountability, productivity}
    habit_score = Column(Integer, nullable=False)
    ability_score = Column(Integer, nullable=False)
    talent_score = Column(Integer, nullable=False)
    skill_score = Column(Integer, nullable=False)
    answers = Column(JSON, nullable=False)
    # Client-generated; a retried submission carries the same key
    idempotency_key = Column(String(128), unique=True, nullable=True)
    # Lead-capture channel reported by the client
    source = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())

    user = relationship("User", back_populates="assessment_responses")

    __table_args__ = (
        Index("ix_assessment_responses_user_id_created_at", "user_id", created_at.desc()),
    )
