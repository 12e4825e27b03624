"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overselling
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests

The concurrency scenario needs an approved product. Create one, approve it
as an admin, then pass its id:
  CONCURRENCY_PRODUCT_ID=7 locust -f locustfile.py --tags concurrency
"""

import os
import random
import string
from locust import HttpUser, task, between, tag, events

EMAIL_DOMAIN = os.getenv("UNIVERSITY_EMAIL_DOMAIN", "@brainwareuniversity.ac.in")
PASSWORD = "loadtest123"

# Shared state
PRODUCTS = {}
CONCURRENCY_PRODUCT_ID = os.getenv("CONCURRENCY_PRODUCT_ID")


def random_email():
    suffix = "".join(random.choices(string.ascii_lowercase, k=8))
    return f"load_{suffix}{EMAIL_DOMAIN}"


def register_and_login(client):
    email = random_email()
    client.post("/api/v1/auth/register", json={
        "name": "Load Tester",
        "email": email,
        "password": PASSWORD,
    })
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    if resp.status_code == 200:
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}
    return {}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    if CONCURRENCY_PRODUCT_ID:
        print(f"CONCURRENCY: all users compete for product {CONCURRENCY_PRODUCT_ID}")
    else:
        print("CONCURRENCY: CONCURRENCY_PRODUCT_ID not set, booking task idle")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> one product with N units

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT SUM(quantity) FROM booking_items
      JOIN bookings ON bookings.id = booking_items.booking_id
      WHERE product_id = X AND bookings.status <> 'Cancelled';
    Should equal the starting quantity minus products.quantity, and
    products.quantity should never be negative.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = register_and_login(self.client)

    @tag("concurrency")
    @task
    def book_last_units(self):
        """All users fight for the same units."""
        if not CONCURRENCY_PRODUCT_ID or not self.headers:
            return

        with self.client.post("/api/v1/bookings/",
            json={
                "line_items": [{"product_id": int(CONCURRENCY_PRODUCT_ID), "quantity": 1}],
                "total_price": 1,
            },
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: sold out or storage conflict
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: Stop Redis, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_products_cached(self):
        """Hammer the cached endpoint."""
        page = random.randint(1, 5)
        resp = self.client.get(f"/api/v1/products/?page={page}&page_size=20",
            name="/api/v1/products/ [cached]")
        if resp.status_code == 200:
            for product in resp.json().get("products", []):
                PRODUCTS[product["id"]] = product["price"]

    @tag("throughput", "read")
    @task(3)
    def get_product_detail(self):
        """Read individual products."""
        if PRODUCTS:
            product_id = random.choice(list(PRODUCTS))
            self.client.get(f"/api/v1/products/{product_id}",
                name="/api/v1/products/{id}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = register_and_login(self.client)

    def expect(self, body, allowed, headers=None):
        with self.client.post("/api/v1/bookings/",
            json=body,
            headers=self.headers if headers is None else headers,
            catch_response=True
        ) as resp:
            if resp.status_code in allowed:
                resp.success()
            else:
                resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_product_id(self):
        """Book non-existent product."""
        self.expect(
            {"line_items": [{"product_id": 999999, "quantity": 1}], "total_price": 10},
            [404],
        )

    @tag("edge")
    @task
    def empty_line_items(self):
        self.expect({"line_items": [], "total_price": 10}, [400])

    @tag("edge")
    @task
    def zero_quantity(self):
        self.expect(
            {"line_items": [{"product_id": 1, "quantity": 0}], "total_price": 10},
            [400],
        )

    @tag("edge")
    @task
    def missing_total(self):
        self.expect({"line_items": [{"product_id": 1, "quantity": 1}]}, [400])

    @tag("edge")
    @task
    def huge_quantity(self):
        """Try to book an absurd number of units."""
        self.expect(
            {"line_items": [{"product_id": 1, "quantity": 999999}], "total_price": 10},
            [404, 409],
        )

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post("/api/v1/bookings/",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_auth(self):
        self.expect(
            {"line_items": [{"product_id": 1, "quantity": 1}], "total_price": 10},
            [401],
            headers={},
        )


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly browsing
      - Some bookings, a few of them cancelled
      - Rare listings
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = register_and_login(self.client)
        self.booking_ids = []

    @task(50)
    def browse_products(self):
        resp = self.client.get("/api/v1/products/?page=1&page_size=20")
        if resp.status_code == 200:
            for product in resp.json().get("products", []):
                PRODUCTS[product["id"]] = product["price"]

    @task(20)
    def view_product(self):
        if PRODUCTS:
            self.client.get(f"/api/v1/products/{random.choice(list(PRODUCTS))}",
                name="/api/v1/products/{id}")

    @task(10)
    def book_products(self):
        """Occasional booking of one or two products."""
        if not PRODUCTS or not self.headers:
            return
        chosen = random.sample(list(PRODUCTS), k=min(len(PRODUCTS), random.randint(1, 2)))
        line_items = [{"product_id": product_id, "quantity": 1} for product_id in chosen]
        total = sum(PRODUCTS[product_id] for product_id in chosen)
        with self.client.post("/api/v1/bookings/",
            json={"line_items": line_items, "total_price": total or 1},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                self.booking_ids.append(resp.json()["id"])
                resp.success()
            elif resp.status_code == 409:
                resp.success()

    @task(2)
    def cancel_booking(self):
        if self.booking_ids:
            booking_id = self.booking_ids.pop()
            self.client.put(f"/api/v1/bookings/{booking_id}/cancel",
                headers=self.headers,
                name="/api/v1/bookings/{id}/cancel")

    @task(3)
    def list_product(self):
        """Rare: list a new product (pending until approved)."""
        if self.headers:
            self.client.post("/api/v1/products/",
                json={
                    "title": f"Item {random.randint(1, 10000)}",
                    "description": "Load test listing",
                    "category": random.choice(["Books", "Electronics", "Furniture"]),
                    "price": random.randint(50, 5000),
                    "quantity": random.randint(1, 10),
                },
                headers=self.headers)
