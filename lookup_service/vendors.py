import logging
from dataclasses import dataclass
from typing import Optional

import requests

logger = logging.getLogger(__name__)

UNKNOWN_GAME_NAME = "Unknown Game"

BARCODELOOKUP_URL = "https://api.barcodelookup.com/v3/products"
UPCITEMDB_URL = "https://api.upcitemdb.com/prod/v1/lookup"
UPCITEMDB_TRIAL_URL = "https://api.upcitemdb.com/prod/trial/lookup"


@dataclass(frozen=True)
class VendorMatch:
    name: str
    source: str
    brand: Optional[str] = None
    bgg_id: Optional[int] = None

    @property
    def is_unknown(self):
        return self.source == "none"

    def to_dict(self):
        data = {"source": self.source, "name": self.name}
        if self.brand:
            data["brand"] = self.brand
        if self.bgg_id:
            data["bgg_id"] = self.bgg_id
        return data


UNKNOWN_GAME = VendorMatch(name=UNKNOWN_GAME_NAME, source="none")


def _clean(value):
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _payload(resp):
    data = resp.json()
    return data if isinstance(data, dict) else {}


def _first(items):
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return None


def _as_bgg_id(value):
    try:
        bgg_id = int(value)
    except (TypeError, ValueError):
        return None
    return bgg_id if bgg_id > 0 else None


# ---------------------------------------------------------
# Vendor adapters
# ---------------------------------------------------------

class GameUpcAdapter:
    """
    GameUPC links barcodes straight to BoardGameGeek ids, so it is the
    authoritative vendor and the target of mapping contributions.
    """

    source = "gameupc"

    def __init__(self, api_key, base_url="https://api.gameupc.com/v1", timeout=5):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _headers(self):
        return {"x-api-key": self.api_key or ""}

    def lookup(self, barcode):
        resp = requests.get(
            f"{self.base_url}/upc/{barcode}",
            headers=self._headers(),
            timeout=self.timeout,
        )
        if not resp.ok:
            logger.warning("GameUPC returned %s for %s", resp.status_code, barcode)
            return None

        match = _first(_payload(resp).get("bgg_info"))
        name = _clean(match.get("name")) if match else None
        if not name:
            return None
        return VendorMatch(name=name, source=self.source, bgg_id=_as_bgg_id(match.get("id")))

    def submit_mapping(self, barcode, bgg_id):
        """POST barcode -> BGG id so future lookups resolve here directly."""
        return requests.post(
            f"{self.base_url}/upc/{barcode}/bgg/{bgg_id}",
            headers={**self._headers(), "Content-Type": "application/json"},
            timeout=self.timeout,
        )


class BarcodeLookupAdapter:
    source = "barcodelookup"

    def __init__(self, api_key, timeout=5):
        self.api_key = api_key
        self.timeout = timeout

    def lookup(self, barcode):
        resp = requests.get(
            BARCODELOOKUP_URL,
            params={"barcode": barcode, "formatted": "y", "key": self.api_key},
            timeout=self.timeout,
        )
        if not resp.ok:
            logger.warning("BarcodeLookup returned %s for %s", resp.status_code, barcode)
            return None

        product = _first(_payload(resp).get("products"))
        name = _clean(product.get("title")) if product else None
        if not name:
            return None
        return VendorMatch(name=name, source=self.source, brand=_clean(product.get("brand")))


class UpcItemDbAdapter:
    source = "upcitemdb"

    def __init__(self, user_key=None, key_type="3scale", timeout=5):
        self.user_key = user_key
        self.key_type = key_type
        self.timeout = timeout

    def lookup(self, barcode):
        headers = {"Accept": "application/json"}
        if self.user_key:
            url = UPCITEMDB_URL
            headers["user_key"] = self.user_key
            headers["key_type"] = self.key_type
        else:
            url = UPCITEMDB_TRIAL_URL

        resp = requests.get(url, params={"upc": barcode}, headers=headers, timeout=self.timeout)
        if not resp.ok:
            logger.warning("UPCItemDB returned %s for %s", resp.status_code, barcode)
            return None

        item = _first(_payload(resp).get("items"))
        name = _clean(item.get("title")) if item else None
        if not name:
            return None
        return VendorMatch(name=name, source=self.source, brand=_clean(item.get("brand")))


# ---------------------------------------------------------
# Cascade
# ---------------------------------------------------------

class BarcodeCascade:
    def __init__(self, adapters):
        self.adapters = list(adapters)

    def lookup(self, barcode):
        """
        Try each adapter in order and return the first match with a name.
        A failing vendor counts as a miss. Returns UNKNOWN_GAME when all miss.
        """
        for adapter in self.adapters:
            try:
                match = adapter.lookup(barcode)
            except (requests.RequestException, ValueError) as e:
                logger.warning("%s lookup failed for %s: %s", adapter.source, barcode, e)
                continue

            if match and match.name.strip():
                logger.info("%s matched %s -> %s", adapter.source, barcode, match.name)
                return match
            logger.info("%s had no result for %s", adapter.source, barcode)

        return UNKNOWN_GAME


def build_cascade(config):
    timeout = config["HTTP_TIMEOUT"]
    adapters = [
        GameUpcAdapter(
            config["GAMEUPC_API_KEY"],
            base_url=config["GAMEUPC_BASE_URL"],
            timeout=timeout,
        )
    ]

    if config.get("BARCODELOOKUP_API_KEY"):
        adapters.append(BarcodeLookupAdapter(config["BARCODELOOKUP_API_KEY"], timeout=timeout))
    else:
        logger.warning("BARCODELOOKUP_API_KEY not configured, skipping BarcodeLookup")

    adapters.append(
        UpcItemDbAdapter(
            config.get("UPCITEMDB_USER_KEY"),
            key_type=config["UPCITEMDB_KEY_TYPE"],
            timeout=timeout,
        )
    )
    return BarcodeCascade(adapters)
