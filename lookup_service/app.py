import os
import logging
from functools import wraps

import requests
from flask import Flask, jsonify, request, abort
from flask_cors import CORS

from .config import Config
from .bgg import BggClient, BggError, BggNotFound
from .vendors import GameUpcAdapter, build_cascade

# ---------------------------------------------------------
# Logging (so you can see vendor calls in the terminal)
# ---------------------------------------------------------
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------
# Flask + client setup
# ---------------------------------------------------------

app = Flask(__name__)
app.config.from_object(Config)
CORS(app)

cascade = build_cascade(app.config)
bgg_client = BggClient(
    app.config["BGG_API_BASE_URL"],
    token=app.config["BGG_API_TOKEN"],
    timeout=app.config["HTTP_TIMEOUT"],
)
gameupc = GameUpcAdapter(
    app.config["GAMEUPC_API_KEY"],
    base_url=app.config["GAMEUPC_BASE_URL"],
    timeout=app.config["HTTP_TIMEOUT"],
)


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


# ---------------------------------------------------------
# Health
# ---------------------------------------------------------

@app.get("/api/health")
def health():
    return jsonify({"status": "ok", "service": "lookup_service"}), 200


# ---------------------------------------------------------
# Barcode cascade
# ---------------------------------------------------------

@app.post("/api/barcode-lookup")
@require_api_key
def barcode_lookup():
    """
    Resolve a barcode to a title through the vendor cascade.

    Request JSON:
      {"barcode": "618149323746"}

    200 -> {"source": "gameupc", "name": "Sail", "bgg_id": 377470}
    404 -> {"error": "...", "source": "none", "name": "Unknown Game"}
    """
    data = request.get_json(force=True)
    barcode = (data.get("barcode") or "").strip()
    if not barcode:
        abort(400, description="barcode is required")

    logger.info("Looking up barcode %s", barcode)
    match = cascade.lookup(barcode)

    if match.is_unknown:
        body = match.to_dict()
        body["error"] = "No game found for this barcode"
        return jsonify(body), 404

    return jsonify(match.to_dict()), 200


# ---------------------------------------------------------
# BoardGameGeek
# ---------------------------------------------------------

@app.get("/api/bgg/search")
@require_api_key
def bgg_search():
    query = (request.args.get("query") or "").strip()
    if not query:
        abort(400, description="query is required")

    try:
        results = bgg_client.search_games(query)
    except BggNotFound:
        results = []
    except BggError as e:
        logger.warning("BGG search failed for %r: %s", query, e)
        return jsonify({"error": "BGG API request failed"}), 502

    return jsonify({"results": results}), 200


@app.get("/api/bgg/games/<int:bgg_id>")
@require_api_key
def bgg_game(bgg_id):
    try:
        game = bgg_client.fetch_game(bgg_id)
    except BggNotFound:
        return jsonify({"error": f"BGG game {bgg_id} not found"}), 404
    except BggError as e:
        logger.warning("BGG fetch failed for %s: %s", bgg_id, e)
        return jsonify({"error": "BGG API request failed"}), 502

    game["bgg_id"] = bgg_id
    return jsonify(game), 200


# ---------------------------------------------------------
# Mapping contributions back to GameUPC
# ---------------------------------------------------------

@app.post("/api/barcode-mappings")
@require_api_key
def submit_barcode_mapping():
    """
    Request JSON:
      {"barcode": "3558380020400", "bgg_id": 230802}
    """
    if not app.config.get("GAMEUPC_API_KEY"):
        logger.error("GAMEUPC_API_KEY not configured")
        return jsonify({"error": "Server configuration error"}), 500

    data = request.get_json(force=True)
    barcode = (data.get("barcode") or "").strip()
    bgg_id = data.get("bgg_id")
    if not barcode or not bgg_id:
        abort(400, description="barcode and bgg_id are required")

    logger.info("Submitting mapping: barcode %s -> BGG ID %s", barcode, bgg_id)
    try:
        resp = gameupc.submit_mapping(barcode, bgg_id)
    except requests.RequestException as e:
        logger.warning("GameUPC submission failed for %s: %s", barcode, e)
        return jsonify({"error": "Failed to submit mapping to GameUPC"}), 502

    if not resp.ok:
        logger.error("GameUPC API error %s: %s", resp.status_code, resp.text[:200])
        return (
            jsonify(
                {
                    "error": "Failed to submit mapping to GameUPC",
                    "status": resp.status_code,
                }
            ),
            502,
        )

    return jsonify({"success": True, "message": "Barcode mapping submitted successfully"}), 200


if __name__ == "__main__":
    port = int(os.getenv("PORT", "5001"))
    app.run(host="0.0.0.0", port=port, debug=True)
