import logging
import time

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .catalog import GAME_FIELDS
from .lookup_client import GameNotFound, LookupUnavailable, UNKNOWN_GAME_NAME
from .models import CatalogGame

logger = logging.getLogger(__name__)


def enrich_game(lookups, game):
    """
    Work out the BGG id for a catalog row (stored id, then barcode cascade,
    then title search) and return the BGG fields that have values, or None
    when nothing was found.
    """
    bgg_id = game.bgg_id

    if not bgg_id and game.barcode:
        match = lookups.lookup_barcode(game.barcode)
        bgg_id = match.get("bgg_id")
        if bgg_id:
            logger.info("  Found BGG ID %s from barcode %s", bgg_id, game.barcode)

    if not bgg_id and game.name and game.name != UNKNOWN_GAME_NAME:
        try:
            candidates = lookups.search_games(game.name)
        except LookupUnavailable as e:
            logger.warning("  BGG search failed for %r: %s", game.name, e)
            return None
        if not candidates:
            logger.info("  No BGG results for %r", game.name)
            return None
        bgg_id = candidates[0]["bgg_id"]
        logger.info("  Found BGG ID %s from search (%s)", bgg_id, candidates[0]["name"])

    if not bgg_id:
        return None

    try:
        details = lookups.fetch_game(bgg_id)
    except (GameNotFound, LookupUnavailable) as e:
        logger.warning("  Failed to fetch BGG data for %s: %s", bgg_id, e)
        return None

    updates = {"bgg_id": int(bgg_id)}
    for key in GAME_FIELDS:
        value = details.get(key)
        if key in updates or value is None or value == [] or value == "":
            continue
        if key == "name" and value == UNKNOWN_GAME_NAME:
            continue
        updates[key] = value
    return updates


def enrich_catalog(session_factory, lookups, delay=2.0, only_missing=True):
    """
    Enrich every catalog row, oldest first. BGG rate limits hard, so rows
    are spaced ``delay`` seconds apart.
    """
    session = session_factory()
    summary = {"updated": 0, "skipped": 0, "errors": 0, "total": 0}
    try:
        q = select(CatalogGame).order_by(CatalogGame.created_at, CatalogGame.id)
        if only_missing:
            q = q.where(CatalogGame.bgg_id.is_(None))
        games = session.execute(q).scalars().all()
        summary["total"] = len(games)

        for i, game in enumerate(games):
            if i and delay:
                time.sleep(delay)
            game_id = game.id
            logger.info("[%d/%d] Enriching %s (%s)", i + 1, len(games), game.name, game_id)

            updates = enrich_game(lookups, game)
            if not updates:
                summary["skipped"] += 1
                continue

            try:
                for key, value in updates.items():
                    setattr(game, key, value)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.warning("  Error updating game %s: %s", game_id, e)
                summary["errors"] += 1
                continue
            summary["updated"] += 1

        logger.info("Enrichment complete: %s", summary)
        return summary
    finally:
        session.close()
