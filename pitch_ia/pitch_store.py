# pitch_ia/pitch_store.py

import logging
import time
from typing import List, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pitch_ia.entities import Base, PitchRecord, StoredPitch
from pitch_ia.result_cache import normalize_input

logger = logging.getLogger("pitch_ia")


def generate_pitch_id() -> str:
    return f"pitch_{time.time_ns()}"


class PitchStore:
    """
    Finished pitches persisted through SQLAlchemy, looked up by normalized description.

    - sqlite by default; any SQLAlchemy URL works
    - one session per operation, closed in all cases
    """

    def __init__(self, database_url: str = "sqlite:///pitches.db") -> None:
        self.database_url = database_url
        engine_kwargs = {"future": True, "pool_pre_ping": True}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # a single shared connection, otherwise each session sees its own empty db
                engine_kwargs["poolclass"] = StaticPool

        self.engine = create_engine(database_url, **engine_kwargs)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, future=True)

    def save(self, input_key: str, record: PitchRecord) -> str:
        pitch_id = generate_pitch_id()
        session: Session = self.Session()
        try:
            session.add(
                StoredPitch(
                    id=pitch_id,
                    input_key=normalize_input(input_key),
                    problem=record.problem,
                    solution=record.solution,
                    market=record.market,
                    value=record.value,
                    channels=record.channels,
                    model=record.model,
                    raw=record.raw,
                )
            )
            session.commit()
            logger.debug(f"[DB] Saved pitch {pitch_id}")
            return pitch_id
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, pitch_id: str) -> Optional[PitchRecord]:
        session: Session = self.Session()
        try:
            row = session.get(StoredPitch, pitch_id)
            return row.to_record() if row is not None else None
        finally:
            session.close()

    def get_by_input(self, input_key: str) -> Optional[PitchRecord]:
        """Most recent pitch stored for this description, if any."""
        session: Session = self.Session()
        try:
            row = (
                session.query(StoredPitch)
                .filter(StoredPitch.input_key == normalize_input(input_key))
                .order_by(StoredPitch.created_at.desc(), StoredPitch.id.desc())
                .first()
            )
            return row.to_record() if row is not None else None
        finally:
            session.close()

    def list_all(self) -> List[tuple]:
        """
        Return (id, input_key, record) for every stored pitch, oldest first.
        """
        session: Session = self.Session()
        try:
            rows = session.query(StoredPitch).order_by(StoredPitch.created_at.asc(), StoredPitch.id.asc()).all()
            return [(r.id, r.input_key, r.to_record()) for r in rows]
        finally:
            session.close()

    def delete(self, pitch_id: str) -> None:
        session: Session = self.Session()
        try:
            row = session.get(StoredPitch, pitch_id)
            if row is None:
                raise KeyError(f"pitch with ID {pitch_id} not found")
            session.delete(row)
            session.commit()
        except KeyError:
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
