"""ORM models for stored XP and the formula metadata side table."""

from __future__ import annotations

import uuid

from sqlalchemy import BigInteger, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from levelcore.db.base import Base


class PlayerLevel(Base):
    """One row per tracked identity."""

    __tablename__ = "player_levels"

    player_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")


class LevelMeta(Base):
    """String key/value pairs; holds the descriptor of the formula that produced stored XP."""

    __tablename__ = "levelcore_meta"

    meta_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    meta_value: Mapped[str] = mapped_column(Text, nullable=False)
