"""
Locust Load Test Suite

Tokens are minted locally with the shared SECRET_KEY, so point the suite at a
server started with the same settings. The catalog must already hold at least
one small event product (e.g. 10 places) and one open game product.

Run scenarios:
  locust -f locustfile.py --tags contention   # Oversell check on the smallest event
  locust -f locustfile.py --tags throughput   # Catalog cache
  locust -f locustfile.py --tags gate         # Concurrent scans of shared passes
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import random

from locust import HttpUser, between, tag, task

from parkpass.core.security import Role, create_access_token

# Shared state, filled from the catalog by the first user to start
EVENT_TICKET_TYPES = []  # (ticket_type_id, product_id, event_id, capacity)
GAME_TICKET_TYPES = []  # (ticket_type_id, product_id)
TICKET_CODES = []


def bearer(user_id: int, role: Role = Role.VISITOR) -> dict:
    token = create_access_token(data={"sub": str(user_id), "role": role.value})
    return {"Authorization": f"Bearer {token}"}


def smallest_event():
    return min(EVENT_TICKET_TYPES, key=lambda t: t[3]) if EVENT_TICKET_TYPES else None


def load_catalog(client) -> None:
    """Read the catalog once so every user books real ticket types."""
    if EVENT_TICKET_TYPES or GAME_TICKET_TYPES:
        return
    resp = client.get("/api/v1/catalog/products")
    if resp.status_code != 200:
        print(f"Catalog unavailable: {resp.status_code}")
        return
    for product in resp.json()["products"]:
        for ticket_type in product["ticket_types"]:
            if product["kind"] == "EVENT":
                EVENT_TICKET_TYPES.append(
                    (ticket_type["id"], product["id"], product["event"]["id"], product["event"]["capacity"])
                )
            elif product["kind"] == "GAME":
                GAME_TICKET_TYPES.append((ticket_type["id"], product["id"]))
    target = smallest_event()
    if target:
        print(f"\nContention target: event {target[2]} with {target[3]} places\n")


class ContentionUser(HttpUser):
    """
    TEST 1: Contention - 100 users fight for the smallest event

    Run: locust -f locustfile.py --tags contention -u 100 -r 50 --run-time 30s

    After test, verify:
      GET /api/v1/catalog/events/{id}/availability
    sold must equal capacity, never more.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        load_catalog(self.client)
        self.headers = bearer(random.randint(10_000, 99_999))

    @tag("contention")
    @task
    def book_last_places(self):
        target = smallest_event()
        if not target:
            return

        with self.client.post(
            "/api/v1/bookings/",
            json={"items": [{"ticket_type_id": target[0], "quantity": 1}], "payment_method": "CASH"},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()  # 409 expected once sold out
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the server, run again
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        load_catalog(self.client)

    @tag("throughput", "read")
    @task(10)
    def list_products_cached(self):
        self.client.get("/api/v1/catalog/products", name="/api/v1/catalog/products [cached]")

    @tag("throughput", "read")
    @task(3)
    def event_availability(self):
        if EVENT_TICKET_TYPES:
            event_id = random.choice(EVENT_TICKET_TYPES)[2]
            self.client.get(
                f"/api/v1/catalog/events/{event_id}/availability",
                name="/api/v1/catalog/events/{id}/availability",
            )

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class GateUser(HttpUser):
    """
    TEST 3: Gate - visitors buy multi-use game passes, staff scan them concurrently

    Run: locust -f locustfile.py --tags gate -u 50 -r 10 --run-time 60s

    Scans past the balance must come back 409, never 500.
    """
    wait_time = between(0, 0.2)

    def on_start(self):
        load_catalog(self.client)
        self.visitor = bearer(random.randint(10_000, 99_999))
        self.staff = bearer(random.randint(1, 99), Role.STAFF)

    @tag("gate")
    @task(1)
    def buy_pass(self):
        if not GAME_TICKET_TYPES:
            return
        ticket_type_id, _ = random.choice(GAME_TICKET_TYPES)
        resp = self.client.post(
            "/api/v1/bookings/",
            json={"items": [{"ticket_type_id": ticket_type_id, "quantity": 3}], "payment_method": "TELEBIRR"},
            headers=self.visitor,
        )
        if resp.status_code == 201:
            ticket = resp.json()["ticket"]
            TICKET_CODES.append((ticket["code"], ticket["entitlements"][0]["product_id"]))

    @tag("gate")
    @task(5)
    def scan(self):
        if not TICKET_CODES:
            return
        code, product_id = random.choice(TICKET_CODES)
        with self.client.post(
            f"/api/v1/tickets/{code}/redeem",
            json={"product_id": product_id},
            headers=self.staff,
            name="/api/v1/tickets/{code}/redeem",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        load_catalog(self.client)
        self.headers = bearer(random.randint(10_000, 99_999))

    def _expect(self, resp, *codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_ticket_type(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"items": [{"ticket_type_id": 999999, "quantity": 1}], "payment_method": "CASH"},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, 422)

    @tag("edge")
    @task
    def zero_quantity(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"items": [{"ticket_type_id": 1, "quantity": 0}], "payment_method": "CASH"},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, 422)

    @tag("edge")
    @task
    def empty_cart(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"items": [], "payment_method": "CASH"},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, 422)

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/bookings/", data="not json at all", headers=self.headers, catch_response=True
        ) as resp:
            self._expect(resp, 400, 422)

    @tag("edge")
    @task
    def anonymous_without_guest(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"items": [{"ticket_type_id": 1, "quantity": 1}], "payment_method": "CASH"},
            catch_response=True,
        ) as resp:
            self._expect(resp, 422)

    @tag("edge")
    @task
    def visitor_scans(self):
        with self.client.post(
            "/api/v1/tickets/TKT-0000/redeem",
            json={"product_id": 1},
            headers=self.headers,
            name="/api/v1/tickets/{code}/redeem [forbidden]",
            catch_response=True,
        ) as resp:
            self._expect(resp, 403)
