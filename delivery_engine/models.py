"""
SQLAlchemy Database Models

The settings table holds named JSON configuration blobs
(deliverySettings, deliveryZones, ...). One row per key; rows are created
on first read and afterwards only changed through an upsert.

Version: 4.0.0
"""

from sqlalchemy import Column, String, DateTime, JSON

from delivery_engine.database import Base


class Setting(Base):
    """
    Named configuration blob.

    `updated_at` is stamped by the writer (not the database) so that racing
    upserts can be ordered last-write-wins.
    """
    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<Setting {self.key} @ {self.updated_at}>"
