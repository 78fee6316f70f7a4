import logging
from datetime import date, datetime

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from .models import CatalogGame, LibraryEntry, RANKINGS

logger = logging.getLogger(__name__)

GAME_FIELDS = (
    "name",
    "bgg_id",
    "publisher",
    "year",
    "edition",
    "cover_image",
    "min_players",
    "max_players",
    "playtime_minutes",
    "min_age",
    "game_type",
    "game_category",
    "game_mechanic",
    "game_family",
    "description",
    "is_expansion",
)
ENTRY_FIELDS = ("is_favorite", "for_sale", "personal_ranking", "notes", "played_dates")


class AlreadyInLibrary(Exception):
    def __init__(self, entry):
        super().__init__(f"Game {entry.game_id} is already in library of {entry.user_id}")
        self.entry = entry


class CatalogGameInUse(Exception):
    pass


def game_fields(data):
    """
    Keep only catalog columns from a payload. ``game_mechanism`` is the
    legacy spelling of ``game_mechanic``.
    """
    data = dict(data)
    if "game_mechanism" in data:
        logger.warning("game_mechanism is deprecated, use game_mechanic")
        legacy = data.pop("game_mechanism")
        data.setdefault("game_mechanic", legacy)
    return {k: v for k, v in data.items() if k in GAME_FIELDS}


# ---------------------------------------------------------
# Catalog
# ---------------------------------------------------------

def get_game_by_barcode(session, barcode):
    q = select(CatalogGame).where(CatalogGame.barcode == barcode)
    return session.execute(q).scalar_one_or_none()


def search_catalog(session, query, limit=20):
    q = (
        select(CatalogGame)
        .where(CatalogGame.name.ilike(f"%{query}%"))
        .order_by(CatalogGame.name)
        .limit(limit)
    )
    return session.execute(q).scalars().all()


def create_catalog_game(session, barcode, fields):
    """
    Insert a catalog row for ``barcode``. If another writer got there first
    the unique constraint fires and the existing row is returned instead.

    Returns (game, created).
    """
    game = CatalogGame(barcode=barcode, **game_fields(fields))
    session.add(game)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        existing = get_game_by_barcode(session, barcode)
        if existing is None:
            raise
        logger.info("Barcode %s already in catalog, reusing game %s", barcode, existing.id)
        return existing, False

    logger.info("Created catalog game %s (%s) for barcode %s", game.id, game.name, barcode)
    return game, True


def update_catalog_game(session, game, data):
    fields = game_fields(data)
    if "name" in fields and not (isinstance(fields["name"], str) and fields["name"].strip()):
        raise ValueError("name must be a non-empty string")
    if fields.get("is_expansion") is not None and not isinstance(fields["is_expansion"], bool):
        raise ValueError("is_expansion must be true, false or null")
    if "barcode" in data and not (isinstance(data["barcode"], str) and data["barcode"].strip()):
        raise ValueError("barcode must be a non-empty string")

    for key, value in fields.items():
        setattr(game, key, value)
    if "barcode" in data:
        game.barcode = data["barcode"].strip()
    session.commit()
    return game


def delete_catalog_game(session, game):
    refs = session.execute(
        select(func.count(LibraryEntry.id)).where(LibraryEntry.game_id == game.id)
    ).scalar_one()
    if refs:
        raise CatalogGameInUse(f"Game {game.id} is in {refs} libraries")
    session.delete(game)
    session.commit()


# ---------------------------------------------------------
# Library
# ---------------------------------------------------------

def get_library_entry(session, user_id, game_id):
    q = select(LibraryEntry).where(
        (LibraryEntry.user_id == user_id) & (LibraryEntry.game_id == game_id)
    )
    return session.execute(q).scalar_one_or_none()


def add_game_to_library(session, user_id, game):
    existing = get_library_entry(session, user_id, game.id)
    if existing:
        raise AlreadyInLibrary(existing)

    entry = LibraryEntry(user_id=user_id, game_id=game.id, played_dates=[])
    session.add(entry)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        existing = get_library_entry(session, user_id, game.id)
        if existing is None:
            raise
        raise AlreadyInLibrary(existing)

    logger.info("Added game %s to library of %s", game.id, user_id)
    return entry


def get_user_library(session, user_id):
    q = (
        select(LibraryEntry)
        .where(LibraryEntry.user_id == user_id)
        .order_by(LibraryEntry.added_date.desc(), LibraryEntry.id.desc())
    )
    return session.execute(q).scalars().all()


def _iso_date(value):
    try:
        return date.fromisoformat(str(value)[:10]).isoformat()
    except ValueError:
        raise ValueError(f"Invalid play date: {value!r}")


def update_library_entry(session, entry, updates):
    updates = {k: v for k, v in updates.items() if k in ENTRY_FIELDS}

    for flag in ("is_favorite", "for_sale"):
        if flag in updates and not isinstance(updates[flag], bool):
            raise ValueError(f"{flag} must be true or false")
    if "personal_ranking" in updates and updates["personal_ranking"] not in RANKINGS + (None,):
        raise ValueError("personal_ranking must be high, medium, low or null")
    if "notes" in updates and updates["notes"] is not None and not isinstance(updates["notes"], str):
        raise ValueError("notes must be a string or null")
    if "played_dates" in updates:
        played = updates["played_dates"]
        if played is None:
            played = []
        if not isinstance(played, list):
            raise ValueError("played_dates must be a list of ISO dates")
        updates["played_dates"] = [_iso_date(d) for d in played]

    for key, value in updates.items():
        setattr(entry, key, value)
    session.commit()
    return entry


def log_play(session, entry, played_on=None):
    played = _iso_date(played_on) if played_on else date.today().isoformat()
    # reassign so the JSON column is flagged dirty
    entry.played_dates = list(entry.played_dates or []) + [played]
    session.commit()
    return entry


# ---------------------------------------------------------
# Serialization
# ---------------------------------------------------------

def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else value


def serialize_game(game):
    data = {"id": game.id, "barcode": game.barcode}
    for field in GAME_FIELDS:
        data[field] = getattr(game, field)
    data["created_at"] = _iso(game.created_at)
    data["updated_at"] = _iso(game.updated_at)
    return data


def serialize_entry(entry, with_game=True):
    data = {
        "id": entry.id,
        "user_id": entry.user_id,
        "game_id": entry.game_id,
        "is_favorite": entry.is_favorite,
        "for_sale": entry.for_sale,
        "personal_ranking": entry.personal_ranking,
        "notes": entry.notes,
        "played_dates": entry.played_dates or [],
        "added_date": _iso(entry.added_date),
    }
    if with_game:
        data["game"] = serialize_game(entry.game)
    return data
