# seed_demo.py
import requests

CATALOG_BASE_URL = "http://localhost:5000"
LOOKUP_BASE_URL = "http://localhost:5001"
SERVICE_API_KEY = "dev-service-key"

DEMO_USER_ID = "demo-user"

DEMO_BARCODES = [
    "618149323746",   # Sail, GameUPC knows the BGG id
    "729220070982",
    "689521156658",
    "3558380020400",  # unknown everywhere -> manual entry
]

# Used when a barcode can't be resolved automatically
MANUAL_FALLBACKS = {
    "3558380020400": {
        "name": "Dixit",
        "publisher": "Libellud",
        "year": 2008,
        "min_players": 3,
        "max_players": 6,
        "playtime_minutes": 30,
    },
}


def check_service(name, url):
    """Hit /api/health and return True/False."""
    health_url = f"{url.rstrip('/')}/api/health"
    try:
        r = requests.get(health_url, timeout=3)
        print(f"[CHECK] {name} -> {health_url} -> {r.status_code}")
        return r.ok
    except Exception as e:
        print(f"[ERROR] {name} not reachable at {health_url}: {e}")
        return False


def add_manually(barcode):
    fields = MANUAL_FALLBACKS.get(barcode)
    if not fields:
        print("      No manual fallback for this barcode, skipping.")
        return

    payload = dict(fields, barcode=barcode, user_id=DEMO_USER_ID)
    try:
        resp = requests.post(f"{CATALOG_BASE_URL}/api/library/manual", json=payload, timeout=10)
        print(f"      manual entry -> {resp.status_code} {resp.json().get('status')}")
    except Exception as e:
        print(f"      manual entry FAILED -> {e}")


def scan_barcodes():
    print(f"\n== Scanning demo barcodes for {DEMO_USER_ID} ==")

    for i, barcode in enumerate(DEMO_BARCODES, start=1):
        try:
            resp = requests.post(
                f"{CATALOG_BASE_URL}/api/scan",
                json={"barcode": barcode, "user_id": DEMO_USER_ID},
                timeout=30,
            )
        except Exception as e:
            print(f"  [{i:02}] {barcode} -> FAILED: {e}")
            continue

        if not resp.ok:
            print(f"  [{i:02}] {barcode} -> {resp.status_code} {resp.text.strip()}")
            continue

        body = resp.json()
        name = body.get("game", {}).get("name", "?")
        print(f"  [{i:02}] {barcode} -> {body['status']} ({name})")
        if body["status"] == "needs_manual_entry":
            add_manually(barcode)


def main():
    # 0) Make sure both services are up
    print("Checking services...")
    if not check_service("Catalog", CATALOG_BASE_URL):
        print("\nCatalog service is not reachable. Make sure it is running on 5000.")
        return
    if not check_service("Lookup", LOOKUP_BASE_URL):
        print("\nLookup service is not reachable; every scan will need manual entry.")

    # 1) Scan every demo barcode (manual entry for the ones nobody knows)
    scan_barcodes()

    # 2) Small hint for you
    print("\nDone.")
    print("Try hitting:")
    print(f"  {CATALOG_BASE_URL}/api/library?user_id={DEMO_USER_ID}")


if __name__ == "__main__":
    main()
