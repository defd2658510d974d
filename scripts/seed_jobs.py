"""
Seed script — submits a few sample screenshot jobs for demo purposes.

Usage:
    python -m scripts.seed_jobs

This creates:
- 1 fire-and-observe job from inline HTML (no target)
- 1 job for a marketplace listing, high priority
- 1 delayed job for a template
- 1 job whose html_ref does not exist (demos the non-retriable failure path)

Run this after the API and a worker are up.
"""

import httpx

BASE_URL = "http://localhost:8000"

SAMPLE_HTML = """<!doctype html>
<html>
  <head><style>body { font-family: sans-serif; background: #2980b9; color: white; }</style></head>
  <body>
    <h1>Sample landing page</h1>
    <p>Rendered by the screenshot queue.</p>
  </body>
</html>
"""


def seed():
    client = httpx.Client(base_url=BASE_URL, timeout=10.0)

    jobs = [
        {"html": SAMPLE_HTML},
        {
            "html": SAMPLE_HTML,
            "target": {"entity_type": "PageListing", "entity_id": "demo-listing"},
            "priority": 1,
        },
        {
            "html": SAMPLE_HTML,
            "target": {"entity_type": "Template", "entity_id": "demo-template"},
            "delay_seconds": 10,
        },
        {
            "html_ref": "pages/does-not-exist.html",
            "target": {"entity_type": "UserPage", "entity_id": "demo-page"},
        },
    ]

    for job in jobs:
        resp = client.post("/screenshots/", json=job)
        resp.raise_for_status()
        data = resp.json()
        target = job.get("target", {}).get("entity_type", "no target")
        print(f"  Created job {data['id'][:8]}... [{target}] state={data['state']}")

    stats = client.get("/screenshots/stats").json()
    print(f"\nQueue: {stats}")


if __name__ == "__main__":
    seed()
