import os

class Config:
    # Shared API key for service-to-service calls
    SERVICE_API_KEY = os.getenv("SERVICE_API_KEY", "dev-service-key")

    # Barcode vendors, tried in this order
    GAMEUPC_API_KEY = os.getenv("GAMEUPC_API_KEY")
    GAMEUPC_BASE_URL = os.getenv("GAMEUPC_BASE_URL", "https://api.gameupc.com/v1")
    BARCODELOOKUP_API_KEY = os.getenv("BARCODELOOKUP_API_KEY")
    UPCITEMDB_USER_KEY = os.getenv("UPCITEMDB_USER_KEY")
    UPCITEMDB_KEY_TYPE = os.getenv("UPCITEMDB_KEY_TYPE", "3scale")

    # BoardGameGeek XML API
    BGG_API_TOKEN = os.getenv("BGG_API_TOKEN")
    BGG_API_BASE_URL = os.getenv("BGG_API_BASE_URL", "https://boardgamegeek.com/xmlapi2")

    # Seconds per outgoing HTTP call
    HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "5"))
