import logging

import requests

logger = logging.getLogger(__name__)

UNKNOWN_GAME_NAME = "Unknown Game"


class LookupUnavailable(Exception):
    """The lookup service (or BGG behind it) failed to answer."""


class GameNotFound(Exception):
    """BGG has no game with the requested id."""


def _json(resp):
    try:
        data = resp.json()
    except ValueError as e:
        raise LookupUnavailable(f"Lookup service sent a non-JSON body: {e}") from e
    if not isinstance(data, dict):
        raise LookupUnavailable("Lookup service sent an unexpected body")
    return data


class LookupServiceClient:
    """
    HTTP client for lookup_service. The pipeline only relies on these four
    methods, so tests pass a fake object with the same shape instead.
    """

    def __init__(self, base_url, api_key, timeout=5):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _request(self, method, path, **kwargs):
        try:
            return requests.request(
                method,
                f"{self.base_url}{path}",
                headers={"X-API-Key": self.api_key},
                timeout=self.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            raise LookupUnavailable(f"{method} {path} failed: {e}") from e

    def lookup_barcode(self, barcode):
        """
        Returns {"name", "source", "brand"?, "bgg_id"?}. An unreachable
        lookup service or a garbled reply is a miss, not an error.
        """
        try:
            resp = self._request("POST", "/api/barcode-lookup", json={"barcode": barcode})
        except LookupUnavailable as e:
            logger.warning("Barcode lookup unavailable for %s: %s", barcode, e)
            return {"name": UNKNOWN_GAME_NAME, "source": "none"}

        if not resp.ok:
            if resp.status_code != 404:
                logger.warning("Barcode lookup returned %s for %s", resp.status_code, barcode)
            return {"name": UNKNOWN_GAME_NAME, "source": "none"}

        try:
            return _json(resp)
        except LookupUnavailable as e:
            logger.warning("Barcode lookup for %s: %s", barcode, e)
            return {"name": UNKNOWN_GAME_NAME, "source": "none"}

    def search_games(self, name):
        resp = self._request("GET", "/api/bgg/search", params={"query": name})
        if not resp.ok:
            raise LookupUnavailable(f"BGG search returned {resp.status_code}")
        return _json(resp).get("results", [])

    def fetch_game(self, bgg_id):
        resp = self._request("GET", f"/api/bgg/games/{int(bgg_id)}")
        if resp.status_code == 404:
            raise GameNotFound(f"BGG game {bgg_id} not found")
        if not resp.ok:
            raise LookupUnavailable(f"BGG fetch returned {resp.status_code}")
        return _json(resp)

    def submit_mapping(self, barcode, bgg_id):
        resp = self._request(
            "POST",
            "/api/barcode-mappings",
            json={"barcode": barcode, "bgg_id": bgg_id},
        )
        if not resp.ok:
            raise LookupUnavailable(f"Mapping submission returned {resp.status_code}")
