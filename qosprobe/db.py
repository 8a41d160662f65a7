"""Database utilities and ORM models."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker


class Base(DeclarativeBase):
    pass


class ProbeRun(Base):
    """One probing session, with its summary as of the last delivery."""
    __tablename__ = "probe_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    transport: Mapped[str] = mapped_column(String(32))
    payload_size: Mapped[Optional[int]] = mapped_column(Integer)
    expected_count: Mapped[Optional[int]] = mapped_column(Integer)
    sent: Mapped[int] = mapped_column(Integer, default=0)
    received: Mapped[int] = mapped_column(Integer, default=0)
    duplicates: Mapped[int] = mapped_column(Integer, default=0)
    out_of_order: Mapped[int] = mapped_column(Integer, default=0)
    missing: Mapped[int] = mapped_column(Integer, default=0)
    latency_avg_ms: Mapped[Optional[float]] = mapped_column(Float)
    latency_max_ms: Mapped[Optional[float]] = mapped_column(Float)
    jitter_ms: Mapped[Optional[float]] = mapped_column(Float)

    deliveries: Mapped[list["Delivery"]] = relationship("Delivery", back_populates="run")


class Delivery(Base):
    """A single received test message and its QoS report."""
    __tablename__ = "deliveries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(Integer, ForeignKey("probe_runs.id"), index=True)
    sequence: Mapped[int] = mapped_column(Integer, index=True)
    origin_time: Mapped[datetime] = mapped_column(DateTime)
    received_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    latency_ms: Mapped[float] = mapped_column(Float)
    sequence_delta: Mapped[int] = mapped_column(Integer)
    duplicate: Mapped[bool] = mapped_column(Boolean, default=False)
    payload_bytes: Mapped[int] = mapped_column(Integer, default=0)

    run: Mapped["ProbeRun"] = relationship("ProbeRun", back_populates="deliveries")


def init_db(data_dir: Path) -> sessionmaker:
    db_path = data_dir / "probe.db"
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, future=True, expire_on_commit=False)


@contextmanager
def get_session(Session: sessionmaker) -> Iterator:
    session = Session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
