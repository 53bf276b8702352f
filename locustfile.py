"""
Locust load tests for the donation pages.

Install: pip install -e ".[load]"
Run: locust -f locustfile.py --host=http://127.0.0.1:5173

For headless: locust -f locustfile.py --host=http://127.0.0.1:5173 \
    --users 10 --spawn-rate 2 --run-time 1m --headless
"""

import os
from locust import HttpUser, task, between

CAMPAIGN_ID = os.getenv("LOCUST_CAMPAIGN_ID", "00000000-0000-0000-0000-000000000001")


class DonationPageVisitor(HttpUser):
    wait_time = between(1, 3)

    @task(10)
    def ping(self):
        self.client.get("/__ping")

    @task(8)
    def donate_page(self):
        self.client.get(f"/donate/{CAMPAIGN_ID}", name="/donate/[id]")

    @task(6)
    def embed_widget(self):
        self.client.get(f"/embed/{CAMPAIGN_ID}", name="/embed/[id]")

    @task(3)
    def metrics(self):
        self.client.get("/admin/metrics")

    @task(1)
    def bad_amount(self):
        # rejected locally, never reaches the backend
        with self.client.post(
            f"/donate/{CAMPAIGN_ID}/checkout",
            json={"amount": 0},
            name="/donate/[id]/checkout",
            catch_response=True,
        ) as r:
            if r.status_code in (400, 503):
                r.success()
