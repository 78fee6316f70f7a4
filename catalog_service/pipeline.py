"""
Barcode -> catalog -> library resolution.

Every entry point takes the session factory and the lookup client as
arguments, so the same code runs against lookup_service in production and
against in-memory fakes in tests.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .catalog import (
    AlreadyInLibrary,
    add_game_to_library,
    create_catalog_game,
    get_game_by_barcode,
    serialize_entry,
    serialize_game,
)
from .lookup_client import GameNotFound, LookupUnavailable, UNKNOWN_GAME_NAME
from .models import PendingMappingSubmission

logger = logging.getLogger(__name__)

ADDED = "added"
ALREADY_IN_LIBRARY = "already_in_library"
NEEDS_MANUAL_ENTRY = "needs_manual_entry"

AUTHORITATIVE_SOURCE = "gameupc"


@dataclass
class LookupResult:
    barcode: str
    name: str
    source: str
    bgg_id: Optional[int] = None
    publisher: Optional[str] = None
    year: Optional[int] = None
    cover_image: Optional[str] = None
    min_players: Optional[int] = None
    max_players: Optional[int] = None
    playtime_minutes: Optional[int] = None
    min_age: Optional[int] = None
    game_type: Optional[list] = None
    categories: Optional[list] = None
    mechanics: Optional[list] = None
    families: Optional[list] = None
    description: Optional[str] = None
    is_expansion: Optional[bool] = None

    @classmethod
    def from_bgg(cls, barcode, source, bgg_id, details):
        return cls(
            barcode=barcode,
            name=details.get("name") or UNKNOWN_GAME_NAME,
            source=source,
            bgg_id=int(bgg_id),
            publisher=details.get("publisher"),
            year=details.get("year"),
            cover_image=details.get("cover_image"),
            min_players=details.get("min_players"),
            max_players=details.get("max_players"),
            playtime_minutes=details.get("playtime_minutes"),
            min_age=details.get("min_age"),
            game_type=details.get("game_type"),
            categories=details.get("game_category"),
            mechanics=details.get("game_mechanic"),
            families=details.get("game_family"),
            description=details.get("description"),
            is_expansion=bool(details.get("is_expansion")),
        )

    @property
    def should_contribute(self):
        return bool(self.bgg_id) and self.source != AUTHORITATIVE_SOURCE

    def catalog_fields(self):
        return {
            "name": self.name,
            "bgg_id": self.bgg_id,
            "publisher": self.publisher,
            "year": self.year,
            "cover_image": self.cover_image,
            "min_players": self.min_players,
            "max_players": self.max_players,
            "playtime_minutes": self.playtime_minutes,
            "min_age": self.min_age,
            "game_type": self.game_type,
            "game_category": self.categories,
            "game_mechanic": self.mechanics,
            "game_family": self.families,
            "description": self.description,
            "is_expansion": self.is_expansion,
        }


@dataclass
class ScanOutcome:
    status: str
    barcode: str
    game: Optional[dict] = None
    entry: Optional[dict] = None
    message: Optional[str] = None

    def to_dict(self):
        data = {"status": self.status, "barcode": self.barcode}
        for key in ("game", "entry", "message"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


# ---------------------------------------------------------
# Lookup
# ---------------------------------------------------------

def resolve_barcode(lookups, barcode):
    """
    Barcode -> LookupResult, or None when no vendor knows the barcode.

    A vendor-supplied BGG id is fetched directly. Otherwise the vendor title
    is searched on BGG and the first candidate is fetched. With no
    candidates the vendor data is used as-is.
    """
    match = lookups.lookup_barcode(barcode)
    name = (match.get("name") or "").strip()
    source = match.get("source") or "none"
    if not name or name == UNKNOWN_GAME_NAME:
        logger.info("No vendor title for %s", barcode)
        return None

    logger.info("Found title from %s for %s: %s", source, barcode, name)
    bgg_id = match.get("bgg_id")
    if bgg_id:
        try:
            details = lookups.fetch_game(bgg_id)
            return LookupResult.from_bgg(barcode, source, bgg_id, details)
        except GameNotFound:
            logger.warning("Vendor BGG id %s for %s not found, searching by title", bgg_id, barcode)

    vendor_only = LookupResult(
        barcode=barcode,
        name=name,
        source=source,
        publisher=match.get("brand"),
    )

    try:
        candidates = lookups.search_games(name)
    except LookupUnavailable as e:
        logger.warning("BGG search failed for %r, using vendor data only: %s", name, e)
        return vendor_only

    if not candidates:
        logger.info("No BGG results for %r, using vendor data only", name)
        return vendor_only

    best = candidates[0]
    logger.info("BGG match for %r: %s (%s)", name, best["name"], best["bgg_id"])
    try:
        details = lookups.fetch_game(best["bgg_id"])
    except GameNotFound:
        logger.warning("BGG game %s vanished, using search result data", best["bgg_id"])
        return LookupResult(
            barcode=barcode,
            name=best["name"],
            source=source,
            bgg_id=int(best["bgg_id"]),
            publisher=match.get("brand"),
            year=best.get("year"),
        )
    return LookupResult.from_bgg(barcode, source, best["bgg_id"], details)


# ---------------------------------------------------------
# Contribution side channel
# ---------------------------------------------------------

# Submissions run off the request thread so a slow vendor never delays a scan.
_contribution_pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="mapping-submit")
_in_flight = set()
_in_flight_lock = threading.Lock()


def contribute_mapping(session_factory, lookups, barcode, bgg_id):
    """
    Best effort: tell the authoritative vendor about barcode -> bgg_id.
    Failures are logged and queued, never raised.
    """
    try:
        lookups.submit_mapping(barcode, bgg_id)
        logger.info("Submitted barcode %s -> BGG ID %s", barcode, bgg_id)
        return True
    except Exception as e:
        logger.warning("Failed to submit mapping %s -> %s: %s", barcode, bgg_id, e)
        error = str(e)

    session = session_factory()
    try:
        queued = session.execute(
            select(PendingMappingSubmission).where(
                (PendingMappingSubmission.barcode == barcode)
                & (PendingMappingSubmission.bgg_id == bgg_id)
            )
        ).scalars().first()
        if queued:
            queued.last_error = error
        else:
            session.add(
                PendingMappingSubmission(barcode=barcode, bgg_id=bgg_id, last_error=error)
            )
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning("Could not queue mapping %s -> %s: %s", barcode, bgg_id, e)
    finally:
        session.close()
    return False


def schedule_contribution(session_factory, lookups, barcode, bgg_id):
    """Queue contribute_mapping on the background pool and return its Future."""
    future = _contribution_pool.submit(
        contribute_mapping, session_factory, lookups, barcode, bgg_id
    )
    with _in_flight_lock:
        _in_flight.add(future)
    future.add_done_callback(_forget)
    return future


def _forget(future):
    with _in_flight_lock:
        _in_flight.discard(future)


def wait_for_contributions(timeout=None):
    """Block until every scheduled submission has finished (tests, shutdown)."""
    with _in_flight_lock:
        pending = list(_in_flight)
    wait(pending, timeout=timeout)


def retry_pending_mappings(session_factory, lookups):
    """
    Retry queued mapping submissions. Can be called manually or scheduled.
    """
    session = session_factory()
    sent = 0
    try:
        pending = session.execute(select(PendingMappingSubmission)).scalars().all()
        for item in pending:
            try:
                lookups.submit_mapping(item.barcode, item.bgg_id)
            except Exception as e:
                # leave for next retry
                item.last_error = str(e)
                continue
            session.delete(item)
            sent += 1
        session.commit()
        return {"sent": sent, "pending": len(pending) - sent}
    finally:
        session.close()


# ---------------------------------------------------------
# Upsert + link
# ---------------------------------------------------------

def _store(session_factory, session, lookups, result):
    game, created = create_catalog_game(session, result.barcode, result.catalog_fields())
    if created and result.should_contribute:
        schedule_contribution(session_factory, lookups, result.barcode, result.bgg_id)
    return game


def _link(session, user_id, game, barcode):
    try:
        entry = add_game_to_library(session, user_id, game)
    except AlreadyInLibrary:
        return ScanOutcome(
            ALREADY_IN_LIBRARY,
            barcode,
            game=serialize_game(game),
            message=f"{game.name} is already in your library!",
        )
    return ScanOutcome(
        ADDED,
        barcode,
        game=serialize_game(game),
        entry=serialize_entry(entry, with_game=False),
    )


def resolve_and_add_barcode(session_factory, lookups, barcode, user_id):
    """
    Scan entry point: returns a ScanOutcome that is ``added``,
    ``already_in_library`` or ``needs_manual_entry``.

    LookupUnavailable from the BGG detail fetch and SQLAlchemyError from the
    upsert propagate; both are safe to retry.
    """
    barcode = barcode.strip()
    session = session_factory()
    try:
        game = get_game_by_barcode(session, barcode)
        if game is None:
            result = resolve_barcode(lookups, barcode)
            if result is None:
                return ScanOutcome(NEEDS_MANUAL_ENTRY, barcode)
            game = _store(session_factory, session, lookups, result)
        else:
            logger.info("Barcode %s already in catalog as game %s", barcode, game.id)

        return _link(session, user_id, game, barcode)
    finally:
        session.close()


def add_from_bgg(session_factory, lookups, barcode, bgg_id, user_id):
    """
    Manual fallback after a failed scan: the user picked a BGG search result
    for this barcode. GameNotFound propagates.
    """
    barcode = barcode.strip()
    session = session_factory()
    try:
        game = get_game_by_barcode(session, barcode)
        if game is None:
            details = lookups.fetch_game(bgg_id)
            result = LookupResult.from_bgg(barcode, "manual", bgg_id, details)
            game = _store(session_factory, session, lookups, result)
        return _link(session, user_id, game, barcode)
    finally:
        session.close()


def add_manual_game(session_factory, barcode, fields, user_id):
    """Fully manual entry; an existing barcode reuses its catalog row."""
    barcode = barcode.strip()
    session = session_factory()
    try:
        game = get_game_by_barcode(session, barcode)
        if game is None:
            game, _ = create_catalog_game(session, barcode, fields)
        return _link(session, user_id, game, barcode)
    finally:
        session.close()
