import logging
import re
import xml.etree.ElementTree as ET

import requests

logger = logging.getLogger(__name__)

UNKNOWN_GAME_NAME = "Unknown Game"

HTML_ENTITIES = {
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#039;": "'",
    "&rsquo;": "'",
    "&lsquo;": "'",
    "&rdquo;": '"',
    "&ldquo;": '"',
}
_ENTITY_RE = re.compile(r"&[a-z]+;|&#\d+;", re.IGNORECASE)


class BggError(Exception):
    """BoardGameGeek could not be reached or sent something unusable."""


class BggNotFound(BggError):
    """The requested BGG id does not exist upstream."""


def decode_html_entities(text):
    """
    Decode the handful of entities BGG double-escapes in descriptions.
    Anything outside HTML_ENTITIES is left as-is.
    """
    return _ENTITY_RE.sub(lambda m: HTML_ENTITIES.get(m.group(0), m.group(0)), text)


# ---------------------------------------------------------
# XML parsing
# ---------------------------------------------------------

def _parse_xml(xml_text):
    try:
        return ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise BggError(f"Unparseable BGG response: {e}") from e


def _value(item, tag):
    el = item.find(tag)
    if el is None:
        return None
    return el.get("value")


def _int_value(item, tag):
    raw = _value(item, tag)
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _text(item, tag):
    el = item.find(tag)
    if el is None or not el.text or not el.text.strip():
        return None
    return el.text.strip()


def _links(item, link_type):
    values = [
        link.get("value")
        for link in item.findall("link")
        if link.get("type") == link_type and link.get("value")
    ]
    return values or None


def parse_search_response(xml_text):
    """Candidates in upstream order: [{"bgg_id", "name", "year"}, ...]."""
    root = _parse_xml(xml_text)
    results = []
    for item in root.findall("item"):
        try:
            bgg_id = int(item.get("id"))
        except (TypeError, ValueError):
            continue

        name_el = item.find("name[@type='primary']")
        if name_el is None:
            name_el = item.find("name")
        name = name_el.get("value") if name_el is not None else None
        if not name:
            continue

        results.append(
            {
                "bgg_id": bgg_id,
                "name": name,
                "year": _int_value(item, "yearpublished"),
            }
        )
    return results


def parse_thing_response(xml_text):
    root = _parse_xml(xml_text)
    item = root.find("item")
    if item is None:
        raise BggNotFound("No item in BGG thing response")

    primary = item.find("name[@type='primary']")
    name = primary.get("value") if primary is not None else None

    publishers = _links(item, "boardgamepublisher")
    families = _links(item, "boardgamefamily")
    description = _text(item, "description")

    return {
        "name": name or UNKNOWN_GAME_NAME,
        "year": _int_value(item, "yearpublished"),
        "cover_image": _text(item, "image") or _text(item, "thumbnail"),
        "publisher": publishers[0] if publishers else None,
        "min_players": _int_value(item, "minplayers"),
        "max_players": _int_value(item, "maxplayers"),
        "playtime_minutes": _int_value(item, "playingtime"),
        "min_age": _int_value(item, "minage"),
        "game_category": _links(item, "boardgamecategory"),
        "game_mechanic": _links(item, "boardgamemechanic"),
        # families double as the broad game type
        "game_type": families,
        "game_family": families,
        "description": decode_html_entities(description) if description else None,
        "is_expansion": item.get("type") == "boardgameexpansion",
    }


# ---------------------------------------------------------
# Client
# ---------------------------------------------------------

class BggClient:
    def __init__(self, base_url, token=None, timeout=5):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _get(self, path, params):
        headers = {"Accept": "application/xml"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        url = f"{self.base_url}/{path}"
        try:
            resp = requests.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise BggError(f"BGG request failed: {e}") from e

        if resp.status_code == 404:
            raise BggNotFound(f"BGG returned 404 for {path} {params}")
        if not resp.ok:
            logger.error("BGG API error %s: %s", resp.status_code, resp.text[:200])
            raise BggError(f"BGG returned {resp.status_code}")
        return resp.text

    def search_games(self, name):
        xml_text = self._get("search", {"query": name, "type": "boardgame"})
        results = parse_search_response(xml_text)
        logger.info("BGG search %r -> %d candidates", name, len(results))
        return results

    def fetch_game(self, bgg_id):
        xml_text = self._get("thing", {"id": bgg_id, "stats": 1})
        return parse_thing_response(xml_text)
