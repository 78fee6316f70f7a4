# catalog_service/models.py
from datetime import datetime

from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    Enum,
    ForeignKey,
    JSON,
    Text,
    UniqueConstraint,
)

Base = declarative_base()

RANKINGS = ("high", "medium", "low")


class CatalogGame(Base):
    """
    Shared, deduplicated game product. One row per barcode.
    """
    __tablename__ = "catalog_game"

    id = Column(Integer, primary_key=True, autoincrement=True)
    barcode = Column(String(32), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    bgg_id = Column(Integer)
    publisher = Column(String(255))
    year = Column(Integer)
    edition = Column(String(255))
    cover_image = Column(String(1024))
    min_players = Column(Integer)
    max_players = Column(Integer)
    playtime_minutes = Column(Integer)
    min_age = Column(Integer)
    game_type = Column(JSON)
    game_category = Column(JSON)
    game_mechanic = Column(JSON)
    game_family = Column(JSON)
    description = Column(Text)
    # NULL when no BGG data backs the row
    is_expansion = Column(Boolean)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    entries = relationship("LibraryEntry", back_populates="game")


class LibraryEntry(Base):
    __tablename__ = "library_entry"
    __table_args__ = (UniqueConstraint("user_id", "game_id", name="uq_library_user_game"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), nullable=False)
    game_id = Column(Integer, ForeignKey("catalog_game.id"), nullable=False)
    is_favorite = Column(Boolean, nullable=False, default=False)
    for_sale = Column(Boolean, nullable=False, default=False)
    personal_ranking = Column(Enum(*RANKINGS, name="personal_ranking"))
    notes = Column(Text)
    played_dates = Column(JSON)
    added_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    game = relationship("CatalogGame", back_populates="entries")


class PendingMappingSubmission(Base):
    """
    Barcode -> BGG id contributions that couldn't reach the lookup service.
    """
    __tablename__ = "pending_mapping_submission"

    id = Column(Integer, primary_key=True, autoincrement=True)
    barcode = Column(String(32), nullable=False)
    bgg_id = Column(Integer, nullable=False)
    last_error = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
