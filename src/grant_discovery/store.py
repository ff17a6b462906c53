from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .models import GrantRecord, RunSummary

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("researching", "preparing", "writing")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class GrantOpportunity(Base):
    __tablename__ = "grant_opportunities"
    # The unique key is what makes concurrent imports safe, not the lookup before insert.
    __table_args__ = (
        UniqueConstraint("opportunity_number", name="uq_grant_opportunities_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    grant_name: Mapped[str] = mapped_column(Text)
    opportunity_number: Mapped[str] = mapped_column(String(255))
    agency_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount_available: Mapped[float | None] = mapped_column(Float, nullable=True)
    application_opens: Mapped[date | None] = mapped_column(Date, nullable=True)
    application_deadline: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(32))
    priority: Mapped[str] = mapped_column(String(16))
    target_modules: Mapped[list[str]] = mapped_column(JSON, default=list)
    match_score: Mapped[int] = mapped_column(Integer, default=0)
    win_probability: Mapped[int] = mapped_column(Integer, default=0)
    website_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    discovery_source: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "grant_name": self.grant_name,
            "opportunity_number": self.opportunity_number,
            "agency_name": self.agency_name,
            "description": self.description,
            "amount_available": self.amount_available,
            "application_opens": _iso(self.application_opens),
            "application_deadline": _iso(self.application_deadline),
            "status": self.status,
            "priority": self.priority,
            "target_modules": list(self.target_modules or []),
            "match_score": self.match_score,
            "win_probability": self.win_probability,
            "website_url": self.website_url,
            "discovery_source": self.discovery_source,
        }


class SystemLog(Base):
    __tablename__ = "system_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    log_type: Mapped[str] = mapped_column(String(64))
    message: Mapped[str] = mapped_column(Text)
    details: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class GrantStore:
    def __init__(self, database_url: str, echo: bool = False) -> None:
        connect_args: dict[str, Any] = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine = create_engine(
            database_url, echo=echo, pool_pre_ping=True, connect_args=connect_args
        )
        self._sessions = sessionmaker(self.engine, expire_on_commit=False)

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def session(self) -> Session:
        return self._sessions()

    def get(self, opportunity_number: str) -> GrantOpportunity | None:
        with self.session() as session:
            return session.scalars(
                select(GrantOpportunity).where(
                    GrantOpportunity.opportunity_number == opportunity_number
                )
            ).first()

    def insert(self, record: GrantRecord) -> GrantOpportunity | None:
        """Insert a new row; ``None`` when the opportunity number already exists."""
        row = GrantOpportunity(**asdict(record))
        with self.session() as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.debug("Opportunity %s already stored", record.opportunity_number)
                return None
        return row

    def update(self, opportunity_number: str, values: dict[str, Any]) -> bool:
        with self.session() as session:
            row = session.scalars(
                select(GrantOpportunity).where(
                    GrantOpportunity.opportunity_number == opportunity_number
                )
            ).first()
            if row is None:
                return False
            for key, value in values.items():
                setattr(row, key, value)
            session.commit()
        return True

    def count(self) -> int:
        with self.session() as session:
            return session.scalar(select(func.count()).select_from(GrantOpportunity)) or 0

    def list_records(self) -> list[GrantOpportunity]:
        with self.session() as session:
            return list(
                session.scalars(select(GrantOpportunity).order_by(GrantOpportunity.id)).all()
            )

    def upcoming_deadlines(self, today: date, days: int) -> list[GrantOpportunity]:
        with self.session() as session:
            return list(
                session.scalars(
                    select(GrantOpportunity)
                    .where(GrantOpportunity.application_deadline >= today)
                    .where(GrantOpportunity.application_deadline <= today + timedelta(days=days))
                    .where(GrantOpportunity.status.in_(ACTIVE_STATUSES))
                    .order_by(GrantOpportunity.application_deadline)
                ).all()
            )

    def write_run_summary(self, summary: RunSummary) -> None:
        message = (
            f"Discovery complete: {summary.discovered} found, {summary.imported} imported, "
            f"{summary.high_priority} high priority"
        )
        if summary.timed_out:
            message += " (stopped at deadline)"
        with self.session() as session:
            session.add(
                SystemLog(log_type="grant_discovery", message=message, details=summary.to_dict())
            )
            session.commit()

    def run_logs(self, log_type: str = "grant_discovery") -> list[SystemLog]:
        with self.session() as session:
            return list(
                session.scalars(
                    select(SystemLog).where(SystemLog.log_type == log_type).order_by(SystemLog.id)
                ).all()
            )


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None
