# pitch_ia/entities.py
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List

from sqlalchemy import Column, DateTime, String, Text, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class FieldKey(Enum):
    """
    Canonical key of a pitch section.

    Each member carries:
    - attr: attribute name on PitchRecord
    - label: French display label (the one the prompt asks for)
    - surface_forms: lower-cased label variants the extractor recognizes
    - placeholder: back-fill sentence used when the section could not be recovered
    """

    PROBLEM = (
        "problem",
        "Problème",
        ("problème", "probleme", "problem", "pain point"),
        "Problème à définir basé sur votre description.",
    )
    SOLUTION = (
        "solution",
        "Solution",
        ("solution",),
        "Solution à développer selon votre projet.",
    )
    MARKET = (
        "market",
        "Marché",
        ("marché cible", "marché", "marche", "market", "client cible", "clients cibles", "cible"),
        "Marché cible à identifier.",
    )
    VALUE = (
        "value",
        "Valeur",
        ("proposition de valeur", "valeur unique", "valeur", "uvp", "value proposition", "value", "usp"),
        "Proposition de valeur unique à définir.",
    )
    CHANNELS = (
        "channels",
        "Canaux",
        ("canaux de distribution", "canaux", "canal", "go-to-market", "distribution", "channels", "channel"),
        "Canaux de distribution à mettre en place.",
    )
    MODEL = (
        "model",
        "Modèle",
        ("modèle économique", "modèle d'affaires", "modèle", "modele", "business model",
         "revenue model", "model", "monétisation", "monetisation", "revenus"),
        "Modèle économique : freemium + abonnement premium ou commissions selon le service.",
    )

    def __init__(self, attr: str, label: str, surface_forms: tuple, placeholder: str):
        self.attr = attr
        self.label = label
        self.surface_forms = surface_forms
        self.placeholder = placeholder


@dataclass
class PitchRecord:
    """
    Six-section pitch. An empty string means the section was not recovered.
    `raw` keeps the full response text the record was extracted from.
    """

    problem: str = ""
    solution: str = ""
    market: str = ""
    value: str = ""
    channels: str = ""
    model: str = ""
    raw: str = ""

    def get(self, key: FieldKey) -> str:
        return getattr(self, key.attr)

    def set_if_empty(self, key: FieldKey, text: str) -> bool:
        """First write wins: only stores non-empty text into an empty field."""
        text = (text or "").strip()
        if not text or self.get(key):
            return False
        setattr(self, key.attr, text)
        return True

    def found_keys(self) -> List[FieldKey]:
        return [k for k in FieldKey if self.get(k)]

    def missing_keys(self) -> List[FieldKey]:
        return [k for k in FieldKey if not self.get(k)]

    @property
    def filled_count(self) -> int:
        return len(self.found_keys())

    @property
    def is_complete(self) -> bool:
        return self.filled_count == len(FieldKey)

    def with_placeholders(self) -> "PitchRecord":
        backfill = {k.attr: k.placeholder for k in self.missing_keys()}
        return replace(self, **backfill)

    def copy(self) -> "PitchRecord":
        return replace(self)

    def to_canonical_text(self) -> str:
        """Render the record in the strict `N. [Label] content` layout requested from the model."""
        return "\n".join(
            f"{i}. [{k.label}] {self.get(k)}" for i, k in enumerate(FieldKey, start=1)
        )

    def to_dict(self) -> Dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "PitchRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{k: str(v or "") for k, v in (data or {}).items() if k in known})


class StoredPitch(Base):
    __tablename__ = "pitches"

    id = Column(String, primary_key=True)              # "pitch_<ns timestamp>"
    input_key = Column(Text, nullable=False)           # normalized project description
    problem = Column(Text, nullable=False, default="")
    solution = Column(Text, nullable=False, default="")
    market = Column(Text, nullable=False, default="")
    value = Column(Text, nullable=False, default="")
    channels = Column(Text, nullable=False, default="")
    model = Column(Text, nullable=False, default="")
    raw = Column(Text, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_pitches_input_key", "input_key"),
    )

    def to_record(self) -> PitchRecord:
        return PitchRecord(
            problem=self.problem or "",
            solution=self.solution or "",
            market=self.market or "",
            value=self.value or "",
            channels=self.channels or "",
            model=self.model or "",
            raw=self.raw or "",
        )
