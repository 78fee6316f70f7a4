from sqlalchemy import text

from catalog_service.catalog import create_catalog_game, get_game_by_barcode
from catalog_service.enrich import enrich_catalog, enrich_game
from catalog_service.lookup_client import LookupUnavailable
from catalog_service.models import CatalogGame
from tests.fakes import FakeLookups

AZUL = {
    "name": "Azul",
    "year": 2017,
    "publisher": "Next Move Games",
    "min_players": 2,
    "max_players": 4,
    "game_category": ["Abstract Strategy"],
    "game_mechanic": [],
    "description": "",
}


def test_enrich_game_prefers_stored_bgg_id():
    game = CatalogGame(barcode="826956600107", name="Azul", bgg_id=230802)
    lookups = FakeLookups(games={230802: AZUL})

    updates = enrich_game(lookups, game)

    assert updates["bgg_id"] == 230802
    assert updates["publisher"] == "Next Move Games"
    # empty values never overwrite what is stored
    assert "game_mechanic" not in updates
    assert "description" not in updates
    assert lookups.called("lookup_barcode") == []


def test_enrich_game_uses_barcode_before_title():
    game = CatalogGame(barcode="826956600107", name="Azul (2nd printing)")
    lookups = FakeLookups(
        barcodes={"826956600107": {"name": "Azul", "source": "gameupc", "bgg_id": 230802}},
        games={230802: AZUL},
    )

    updates = enrich_game(lookups, game)

    assert updates["bgg_id"] == 230802
    assert lookups.called("search_games") == []


def test_enrich_game_nothing_found():
    game = CatalogGame(barcode="1", name="Homebrew")
    assert enrich_game(FakeLookups(), game) is None

    outage = FakeLookups(searches={"Homebrew": LookupUnavailable("down")})
    assert enrich_game(outage, game) is None


def test_enrich_catalog_only_touches_rows_without_bgg_id(session_factory):
    session = session_factory()
    create_catalog_game(session, "826956600107", {"name": "Azul"})
    create_catalog_game(session, "2", {"name": "Homebrew"})
    create_catalog_game(session, "3", {"name": "Sail", "bgg_id": 377470})
    session.close()
    lookups = FakeLookups(
        searches={"Azul": [{"bgg_id": 230802, "name": "Azul", "year": 2017}]},
        games={230802: AZUL},
    )

    summary = enrich_catalog(session_factory, lookups, delay=0)

    assert summary == {"updated": 1, "skipped": 1, "errors": 0, "total": 2}
    assert ("fetch_game", 377470) not in lookups.calls

    session = session_factory()
    azul = get_game_by_barcode(session, "826956600107")
    assert azul.bgg_id == 230802
    assert azul.year == 2017
    assert azul.game_category == ["Abstract Strategy"]
    session.close()


def test_enrich_catalog_counts_failed_update_and_keeps_going(session_factory):
    session = session_factory()
    create_catalog_game(session, "1", {"name": "Azul"})
    create_catalog_game(session, "2", {"name": "Broken"})
    create_catalog_game(session, "3", {"name": "Cascadia"})
    session.execute(
        text(
            "CREATE TRIGGER refuse_broken BEFORE UPDATE ON catalog_game "
            "WHEN NEW.name = 'Broken' "
            "BEGIN SELECT RAISE(ABORT, 'update refused'); END"
        )
    )
    session.commit()
    session.close()

    lookups = FakeLookups(
        searches={
            "Azul": [{"bgg_id": 230802, "name": "Azul", "year": 2017}],
            "Broken": [{"bgg_id": 1, "name": "Broken", "year": 2000}],
            "Cascadia": [{"bgg_id": 295947, "name": "Cascadia", "year": 2021}],
        },
        games={
            230802: AZUL,
            1: {"name": "Broken", "year": 2000},
            295947: {"name": "Cascadia", "year": 2021},
        },
    )

    summary = enrich_catalog(session_factory, lookups, delay=0)

    assert summary == {"updated": 2, "skipped": 0, "errors": 1, "total": 3}

    session = session_factory()
    assert get_game_by_barcode(session, "2").bgg_id is None
    assert get_game_by_barcode(session, "3").bgg_id == 295947
    session.close()
