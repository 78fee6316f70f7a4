from unittest.mock import MagicMock, patch

import pytest
import requests

from lookup_service.bgg import (
    BggClient,
    BggError,
    BggNotFound,
    decode_html_entities,
    parse_search_response,
    parse_thing_response,
)

THING_XML = """<?xml version="1.0" encoding="utf-8"?>
<items termsofuse="https://boardgamegeek.com/xmlapi/termsofuse">
  <item type="boardgame" id="377470">
    <thumbnail>https://cf.geekdo-images.com/sail_thumb.jpg</thumbnail>
    <image>https://cf.geekdo-images.com/sail.jpg</image>
    <name type="alternate" sortindex="1" value="Segel" />
    <name type="primary" sortindex="1" value="Sail" />
    <description>A cooperative trick-taking game &amp;amp; more. Riders&amp;rsquo; Guild&amp;hellip;</description>
    <yearpublished value="2022" />
    <minplayers value="2" />
    <maxplayers value="2" />
    <playingtime value="30" />
    <minage value="10" />
    <link type="boardgamecategory" id="1040" value="Card Game" />
    <link type="boardgamecategory" id="1008" value="Nautical" />
    <link type="boardgamemechanic" id="2081" value="Trick-taking" />
    <link type="boardgamefamily" id="5" value="Players: Two Player Only Games" />
    <link type="boardgamepublisher" id="1" value="Allplay" />
    <link type="boardgamepublisher" id="2" value="Corax Games" />
  </item>
</items>
"""

SPARSE_THING_XML = """<items>
  <item type="boardgameexpansion" id="9">
    <thumbnail>https://cf.geekdo-images.com/thumb_only.jpg</thumbnail>
    <minplayers value="" />
  </item>
</items>
"""

SEARCH_XML = """<items total="3">
  <item type="boardgame" id="13">
    <name type="primary" value="CATAN" />
    <yearpublished value="1995" />
  </item>
  <item type="boardgame" id="27710">
    <name type="alternate" value="Catan Dice Game" />
  </item>
  <item type="boardgame" id="bogus">
    <name type="primary" value="Broken" />
  </item>
</items>
"""


def fake_response(status=200, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = text
    return resp


# ---------------------------------------------------------
# Entity decoding
# ---------------------------------------------------------

def test_decode_fixed_entity_set():
    assert decode_html_entities("Kingdom &amp; Castle") == "Kingdom & Castle"
    assert decode_html_entities("Riders&rsquo; Guild") == "Riders' Guild"
    assert decode_html_entities("&ldquo;Hi&rdquo; &lt;b&gt; &quot;x&quot; &#039;y&lsquo;") == (
        "\"Hi\" <b> \"x\" 'y'"
    )


def test_decode_leaves_unknown_entities_alone():
    assert decode_html_entities("Line&#10;break &mdash; ok") == "Line&#10;break &mdash; ok"


def test_decode_is_idempotent_on_decoded_text():
    decoded = decode_html_entities("Kingdom &amp; Castle")
    assert decode_html_entities(decoded) == decoded


# ---------------------------------------------------------
# Parsing
# ---------------------------------------------------------

def test_parse_thing_extracts_all_fields():
    game = parse_thing_response(THING_XML)

    assert game["name"] == "Sail"
    assert game["year"] == 2022
    assert game["cover_image"] == "https://cf.geekdo-images.com/sail.jpg"
    assert game["publisher"] == "Allplay"
    assert game["min_players"] == 2
    assert game["max_players"] == 2
    assert game["playtime_minutes"] == 30
    assert game["min_age"] == 10
    assert game["game_category"] == ["Card Game", "Nautical"]
    assert game["game_mechanic"] == ["Trick-taking"]
    assert game["game_family"] == ["Players: Two Player Only Games"]
    assert game["game_type"] == game["game_family"]
    assert game["description"] == (
        "A cooperative trick-taking game & more. Riders' Guild&hellip;"
    )
    assert game["is_expansion"] is False


def test_parse_thing_missing_fields_are_none():
    game = parse_thing_response(SPARSE_THING_XML)

    assert game["name"] == "Unknown Game"
    assert game["cover_image"] == "https://cf.geekdo-images.com/thumb_only.jpg"
    for key in (
        "year",
        "publisher",
        "min_players",
        "max_players",
        "playtime_minutes",
        "min_age",
        "game_category",
        "game_mechanic",
        "game_family",
        "game_type",
        "description",
    ):
        assert game[key] is None, key
    assert game["is_expansion"] is True


def test_parse_thing_without_item_is_not_found():
    with pytest.raises(BggNotFound):
        parse_thing_response('<items termsofuse="x"></items>')


def test_parse_garbage_is_bgg_error():
    with pytest.raises(BggError):
        parse_thing_response("<html><body>rate limited")


def test_parse_search_keeps_upstream_order():
    results = parse_search_response(SEARCH_XML)

    assert results == [
        {"bgg_id": 13, "name": "CATAN", "year": 1995},
        {"bgg_id": 27710, "name": "Catan Dice Game", "year": None},
    ]


def test_parse_search_empty():
    assert parse_search_response('<items total="0"></items>') == []


# ---------------------------------------------------------
# Client
# ---------------------------------------------------------

def test_fetch_game_sends_token_and_params():
    client = BggClient("https://bgg.example/xmlapi2/", token="tok", timeout=4)
    with patch("lookup_service.bgg.requests.get", return_value=fake_response(200, THING_XML)) as get:
        game = client.fetch_game(377470)

    assert game["name"] == "Sail"
    assert get.call_args.args[0] == "https://bgg.example/xmlapi2/thing"
    assert get.call_args.kwargs["params"] == {"id": 377470, "stats": 1}
    assert get.call_args.kwargs["headers"]["Authorization"] == "Bearer tok"
    assert get.call_args.kwargs["timeout"] == 4


def test_search_games_hits_search_endpoint():
    client = BggClient("https://bgg.example/xmlapi2")
    with patch("lookup_service.bgg.requests.get", return_value=fake_response(200, SEARCH_XML)) as get:
        results = client.search_games("Catan")

    assert [r["bgg_id"] for r in results] == [13, 27710]
    assert get.call_args.kwargs["params"] == {"query": "Catan", "type": "boardgame"}
    assert "Authorization" not in get.call_args.kwargs["headers"]


def test_client_maps_http_failures():
    client = BggClient("https://bgg.example/xmlapi2")

    with patch("lookup_service.bgg.requests.get", return_value=fake_response(404)):
        with pytest.raises(BggNotFound):
            client.fetch_game(1)

    with patch("lookup_service.bgg.requests.get", return_value=fake_response(503, "busy")):
        with pytest.raises(BggError):
            client.fetch_game(1)

    with patch("lookup_service.bgg.requests.get", side_effect=requests.Timeout("slow")):
        with pytest.raises(BggError):
            client.search_games("Sail")
