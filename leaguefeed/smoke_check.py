import json
import os

import requests

base_url = os.getenv("LEAGUE_FEED_BASE_URL", "http://127.0.0.1:8000")
season_id = os.getenv("SMOKE_SEASON_ID", "4644")

try:
    response = requests.get(
        f"{base_url}/api/fixtures",
        params={"seasonId": season_id, "format": "playoff"},
        timeout=60,
    )
    response.raise_for_status()
    payload = response.json()
    print(json.dumps(payload["meta"], indent=2))
    print(f"{len(payload['data'])} playoff fixtures")
except requests.exceptions.RequestException as exc:
    print(f"Error: {exc}")
