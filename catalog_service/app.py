import os
import logging
from functools import wraps

from flask import Flask, jsonify, request, abort
from flask_cors import CORS
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .config import Config
from .models import Base, CatalogGame, LibraryEntry
from .catalog import (
    CatalogGameInUse,
    delete_catalog_game,
    get_game_by_barcode,
    get_user_library,
    log_play,
    search_catalog,
    serialize_entry,
    serialize_game,
    update_catalog_game,
    update_library_entry,
)
from .enrich import enrich_catalog
from .lookup_client import GameNotFound, LookupServiceClient, LookupUnavailable
from .pipeline import (
    ADDED,
    add_from_bgg,
    add_manual_game,
    resolve_and_add_barcode,
    retry_pending_mappings,
)

# ---------------------------------------------------------
# Logging (so you can see lookups in the terminal)
# ---------------------------------------------------------
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------
# Flask + DB setup
# ---------------------------------------------------------

app = Flask(__name__)
app.config.from_object(Config)
CORS(app)

engine = create_engine(app.config["SQLALCHEMY_DATABASE_URI"], future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

# Create tables if not present
Base.metadata.create_all(engine)

lookups = LookupServiceClient(
    app.config["LOOKUP_BASE_URL"],
    app.config["SERVICE_API_KEY"],
    timeout=app.config["HTTP_TIMEOUT"],
)

RETRY_MESSAGE = "Something went wrong adding this game. Please try again."


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------

def require_api_key(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        expected = app.config.get("SERVICE_API_KEY")
        sent = request.headers.get("X-API-Key")
        if not expected or sent != expected:
            logger.warning("Invalid API key on %s", request.path)
            abort(401, description="Invalid or missing service API key")
        return func(*args, **kwargs)

    return wrapper


def outcome_response(outcome):
    return jsonify(outcome.to_dict()), 201 if outcome.status == ADDED else 200


def required(data, *keys):
    values = []
    for key in keys:
        value = data.get(key)
        if isinstance(value, str):
            value = value.strip()
        if not value:
            abort(400, description=f"{', '.join(keys)} required")
        values.append(value)
    return values


# ---------------------------------------------------------
# Health
# ---------------------------------------------------------

@app.get("/api/health")
def health_check():
    return jsonify({"status": "ok", "service": "catalog_service"}), 200


# ---------------------------------------------------------
# Adding games
# ---------------------------------------------------------

@app.post("/api/scan")
def scan_barcode():
    """
    Resolve a scanned barcode and add the game to a user's library.

    Request JSON:
      {"barcode": "618149323746", "user_id": "u-123"}

    201 -> {"status": "added", "game": {...}, "entry": {...}}
    200 -> {"status": "already_in_library", "game": {...}, "message": "..."}
    200 -> {"status": "needs_manual_entry", "barcode": "..."}
    """
    data = request.get_json(force=True)
    barcode, user_id = required(data, "barcode", "user_id")

    try:
        outcome = resolve_and_add_barcode(SessionLocal, lookups, barcode, user_id)
    except LookupUnavailable as e:
        logger.warning("Lookup failed while scanning %s: %s", barcode, e)
        return jsonify({"error": "Game lookup is unavailable. Please try again."}), 502
    except SQLAlchemyError:
        logger.exception("Database error while adding %s for %s", barcode, user_id)
        return jsonify({"error": RETRY_MESSAGE}), 503

    logger.info("Scan %s for %s -> %s", barcode, user_id, outcome.status)
    return outcome_response(outcome)


@app.get("/api/bgg/search")
def bgg_search():
    """Candidates for the manual search-by-title fallback."""
    query = (request.args.get("query") or "").strip()
    if not query:
        abort(400, description="query is required")

    try:
        results = lookups.search_games(query)
    except LookupUnavailable as e:
        logger.warning("BGG search failed for %r: %s", query, e)
        return jsonify({"error": "BGG search is unavailable"}), 502
    return jsonify({"results": results})


@app.post("/api/library/bgg")
def add_bgg_pick():
    """
    Request JSON:
      {"user_id": "u-123", "barcode": "3558380020400", "bgg_id": 230802}
    """
    data = request.get_json(force=True)
    user_id, barcode, bgg_id = required(data, "user_id", "barcode", "bgg_id")
    try:
        bgg_id = int(bgg_id)
    except (TypeError, ValueError):
        abort(400, description="bgg_id must be an integer")

    try:
        outcome = add_from_bgg(SessionLocal, lookups, barcode, bgg_id, user_id)
    except GameNotFound:
        return jsonify({"error": f"BGG game {bgg_id} not found"}), 404
    except LookupUnavailable as e:
        logger.warning("BGG fetch failed for %s: %s", bgg_id, e)
        return jsonify({"error": "Game lookup is unavailable. Please try again."}), 502
    except SQLAlchemyError:
        logger.exception("Database error while adding BGG %s for %s", bgg_id, user_id)
        return jsonify({"error": RETRY_MESSAGE}), 503

    return outcome_response(outcome)


@app.post("/api/library/manual")
def add_manual_entry():
    """
    Fully manual entry. Any catalog field may be sent alongside the
    required ones.

    Request JSON:
      {"user_id": "u-123", "barcode": "3558380020400", "name": "Dixit", ...}
    """
    data = request.get_json(force=True)
    user_id, barcode, _ = required(data, "user_id", "barcode", "name")

    try:
        outcome = add_manual_game(SessionLocal, barcode, data, user_id)
    except SQLAlchemyError:
        logger.exception("Database error on manual entry %s for %s", barcode, user_id)
        return jsonify({"error": RETRY_MESSAGE}), 503

    return outcome_response(outcome)


# ---------------------------------------------------------
# Catalog search
# ---------------------------------------------------------

@app.get("/api/catalog")
def catalog_search():
    """
    - ?query=...  matches name (case-insensitive), first 20
    - no params   returns nothing
    """
    query = (request.args.get("query") or "").strip()
    if not query:
        return jsonify([])

    session = SessionLocal()
    try:
        games = search_catalog(session, query)
        return jsonify([serialize_game(g) for g in games])
    finally:
        session.close()


@app.get("/api/catalog/barcode/<barcode>")
def catalog_by_barcode(barcode):
    session = SessionLocal()
    try:
        game = get_game_by_barcode(session, barcode)
        if not game:
            return jsonify({"error": "Game not found"}), 404
        return jsonify(serialize_game(game))
    finally:
        session.close()


# ---------------------------------------------------------
# Library
# ---------------------------------------------------------

@app.get("/api/library")
def list_library():
    user_id = request.args.get("user_id")
    if not user_id:
        return jsonify([])

    session = SessionLocal()
    try:
        entries = get_user_library(session, user_id)
        return jsonify([serialize_entry(e) for e in entries])
    finally:
        session.close()


def _get_entry(session, entry_id):
    entry = session.get(LibraryEntry, entry_id)
    if not entry:
        abort(404, description="Library entry not found")
    return entry


@app.get("/api/library/<int:entry_id>")
def get_entry(entry_id):
    session = SessionLocal()
    try:
        return jsonify(serialize_entry(_get_entry(session, entry_id)))
    finally:
        session.close()


@app.patch("/api/library/<int:entry_id>")
def patch_entry(entry_id):
    """
    Update any of: is_favorite, for_sale, personal_ranking, notes,
    played_dates.
    """
    data = request.get_json(force=True)

    session = SessionLocal()
    try:
        entry = _get_entry(session, entry_id)
        try:
            update_library_entry(session, entry, data)
        except ValueError as e:
            session.rollback()
            abort(400, description=str(e))
        return jsonify(serialize_entry(entry))
    finally:
        session.close()


@app.post("/api/library/<int:entry_id>/plays")
def add_play(entry_id):
    """
    Log a play. Request JSON (optional): {"date": "2024-05-01"}; defaults
    to today.
    """
    data = request.get_json(silent=True) or {}

    session = SessionLocal()
    try:
        entry = _get_entry(session, entry_id)
        try:
            log_play(session, entry, data.get("date"))
        except ValueError as e:
            abort(400, description=str(e))
        return jsonify(serialize_entry(entry)), 201
    finally:
        session.close()


@app.delete("/api/library/<int:entry_id>")
def remove_entry(entry_id):
    session = SessionLocal()
    try:
        entry = _get_entry(session, entry_id)
        user_id = entry.user_id
        session.delete(entry)
        session.commit()
        logger.info("Removed library entry %s for %s", entry_id, user_id)
        return jsonify({"message": "Removed"}), 200
    finally:
        session.close()


# ---------------------------------------------------------
# Admin curation
# ---------------------------------------------------------

def _get_game(session, game_id):
    game = session.get(CatalogGame, game_id)
    if not game:
        abort(404, description="Game not found")
    return game


@app.patch("/api/admin/catalog/<int:game_id>")
@require_api_key
def admin_update_game(game_id):
    data = request.get_json(force=True)

    session = SessionLocal()
    try:
        game = _get_game(session, game_id)
        try:
            update_catalog_game(session, game, data)
        except ValueError as e:
            session.rollback()
            abort(400, description=str(e))
        except IntegrityError:
            session.rollback()
            # the barcode is the only unique column a curator can change
            if "barcode" not in data:
                raise
            return jsonify({"error": "Another game already uses that barcode"}), 409
        logger.info("Admin updated catalog game %s", game_id)
        return jsonify(serialize_game(game))
    finally:
        session.close()


@app.delete("/api/admin/catalog/<int:game_id>")
@require_api_key
def admin_delete_game(game_id):
    session = SessionLocal()
    try:
        game = _get_game(session, game_id)
        try:
            delete_catalog_game(session, game)
        except CatalogGameInUse as e:
            return jsonify({"error": str(e)}), 409
        logger.info("Admin deleted catalog game %s", game_id)
        return jsonify({"message": "Deleted"}), 200
    finally:
        session.close()


@app.post("/api/admin/catalog/enrich")
@require_api_key
def admin_enrich():
    data = request.get_json(silent=True) or {}
    summary = enrich_catalog(
        SessionLocal,
        lookups,
        delay=app.config["ENRICH_DELAY_SECONDS"],
        only_missing=data.get("only_missing", True),
    )
    return jsonify(summary), 200


@app.post("/api/admin/mappings/retry")
@require_api_key
def admin_retry_mappings():
    return jsonify(retry_pending_mappings(SessionLocal, lookups)), 200


if __name__ == "__main__":
    port = int(os.getenv("PORT", "5000"))
    app.run(host="0.0.0.0", port=port, debug=True)
