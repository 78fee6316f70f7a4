"""In-memory stand-in for catalog_service.lookup_client.LookupServiceClient."""

from catalog_service.lookup_client import GameNotFound, LookupUnavailable

UNKNOWN = {"name": "Unknown Game", "source": "none"}


class FakeLookups:
    def __init__(self, barcodes=None, searches=None, games=None, fail_submit=False):
        self.barcodes = barcodes or {}
        self.searches = searches or {}
        self.games = games or {}
        self.fail_submit = fail_submit
        self.calls = []
        self.submitted = []

    def called(self, method):
        return [args for name, args in self.calls if name == method]

    def lookup_barcode(self, barcode):
        self.calls.append(("lookup_barcode", barcode))
        return dict(self.barcodes.get(barcode, UNKNOWN))

    def search_games(self, name):
        self.calls.append(("search_games", name))
        value = self.searches.get(name, [])
        if isinstance(value, Exception):
            raise value
        return list(value)

    def fetch_game(self, bgg_id):
        self.calls.append(("fetch_game", bgg_id))
        if bgg_id not in self.games:
            raise GameNotFound(f"BGG game {bgg_id} not found")
        value = self.games[bgg_id]
        if isinstance(value, Exception):
            raise value
        return dict(value)

    def submit_mapping(self, barcode, bgg_id):
        self.calls.append(("submit_mapping", (barcode, bgg_id)))
        if self.fail_submit:
            raise LookupUnavailable("lookup service down")
        self.submitted.append((barcode, bgg_id))
