import uuid

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy import text as sql_text
from sqlalchemy.dialects.postgresql import JSONB, UUID

from .database import Base


class Intention(Base):
    __tablename__ = "intention"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    text = Column(Text, nullable=False, default="")
    parsed_json = Column(JSONB, nullable=False)
    status = Column(String, nullable=False, default="active")
    valid_until = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_intention_status", "status"),
        Index("uq_intention_active_user", "user_id", unique=True, postgresql_where=sql_text("status = 'active'")),
    )


class PoolEntry(Base):
    __tablename__ = "pool_entry"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    intention_id = Column(UUID(as_uuid=True), ForeignKey("intention.id", ondelete="CASCADE"), nullable=False, unique=True)
    tier = Column(Integer, nullable=False, default=0)
    joined_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_batch_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_pool_entry_tier", "tier"),)


class UserProfile(Base):
    __tablename__ = "user_profile"

    user_id = Column(UUID(as_uuid=True), primary_key=True)
    age = Column(Integer, nullable=True)
    gender = Column(String, nullable=True)


class SurveyResponse(Base):
    __tablename__ = "survey_response"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    question_id = Column(String, nullable=False)
    value = Column(JSONB, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "question_id", name="uq_survey_response_user_question"),
        Index("idx_survey_response_user_id", "user_id"),
    )


class Match(Base):
    __tablename__ = "match"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    mode = Column(String, nullable=False)
    group_size = Column(Integer, nullable=False)
    score = Column(Float, nullable=False)
    avg_compatibility = Column(Float, nullable=False)
    tier_used = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)


class MatchMember(Base):
    __tablename__ = "match_member"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    match_id = Column(UUID(as_uuid=True), ForeignKey("match.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    intention_id = Column(UUID(as_uuid=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("match_id", "user_id", name="uq_match_member"),
        Index("idx_match_member_user_id", "user_id"),
    )


class MatchEvent(Base):
    __tablename__ = "match_event"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    match_id = Column(UUID(as_uuid=True), nullable=True)
    user_id = Column(UUID(as_uuid=True), nullable=True)
    event_type = Column(String, nullable=False)
    payload = Column(JSONB, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


def create_schema(bind) -> None:
    Base.metadata.create_all(bind=bind)
