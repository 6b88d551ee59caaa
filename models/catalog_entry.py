"""SQLAlchemy model for catalog entries used as display decoration."""

from __future__ import annotations

from sqlalchemy import Column, String

from core.database import Base
from core.records import Descriptor


class CatalogEntryRecord(Base):
    __tablename__ = "catalog_entries"

    id = Column(String(36), primary_key=True)
    name = Column(String(256), nullable=False)
    form = Column(String(128), nullable=True)
    strength = Column(String(128), nullable=True)

    def to_descriptor(self) -> Descriptor:
        return Descriptor(name=self.name, form=self.form or "", strength=self.strength or "")
