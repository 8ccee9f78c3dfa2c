"""
Locust Load Test Suite

Tokens are minted locally with the API's SECRET_KEY for users that already
exist in the database (ids LOAD_FIRST_USER_ID .. +LOAD_USER_COUNT-1).
LOAD_ADMIN_ID must be an ADMIN; it opens LOAD_TARGET_DATE before the run.

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overbooking
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import itertools
import os
import random
from datetime import datetime, timedelta, timezone

import jwt
from locust import HttpUser, task, between, tag, events

SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key-change-in-production")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ADMIN_ID = int(os.getenv("LOAD_ADMIN_ID", "1"))
FIRST_USER_ID = int(os.getenv("LOAD_FIRST_USER_ID", "2"))
USER_COUNT = int(os.getenv("LOAD_USER_COUNT", "200"))
# A next-month date whose weekday has an active schedule
TARGET_DATE = os.getenv("LOAD_TARGET_DATE", "")

_user_ids = itertools.cycle(range(FIRST_USER_ID, FIRST_USER_ID + USER_COUNT))


def bearer(user_id: int) -> dict:
    token = jwt.encode(
        {"sub": str(user_id), "exp": datetime.now(timezone.utc) + timedelta(hours=2)},
        SECRET_KEY,
        algorithm=ALGORITHM,
    )
    return {"Authorization": f"Bearer {token}"}


def next_month() -> str:
    today = datetime.now(timezone.utc).date()
    if today.month == 12:
        return f"{today.year + 1}-01"
    return f"{today.year}-{today.month + 1:02d}"


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: open the contested day so members can book it."""
    print("\n" + "=" * 60)
    if not TARGET_DATE:
        print("SETUP: LOAD_TARGET_DATE not set, concurrency scenario will idle")
    else:
        print(f"SETUP: AdminSetupUser opens {TARGET_DATE} for enrollment")
    print("=" * 60)


class AdminSetupUser(HttpUser):
    """Opens the contested day once, then only watches the admin calendar."""
    fixed_count = 1
    wait_time = between(2, 5)

    def on_start(self):
        self.headers = bearer(ADMIN_ID)
        if TARGET_DATE:
            self.client.post(
                "/api/v1/admin/reservations/open-month",
                json={"dates": [TARGET_DATE]},
                headers=self.headers,
            )

    @tag("concurrency")
    @task
    def watch_calendar(self):
        self.client.get(
            f"/api/v1/admin/reservations/calendar?monthYear={TARGET_DATE[:7] or next_month()}",
            headers=self.headers,
            name="/api/v1/admin/reservations/calendar",
        )


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 200 members -> one day with max_capacity places

    Run: locust -f locustfile.py --tags concurrency -u 200 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM reservations
      WHERE date = '<LOAD_TARGET_DATE>' AND status <> 'CANCELLED';
    Should be <= the day's effective capacity
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.user_id = next(_user_ids)
        self.headers = bearer(self.user_id)

    @tag("concurrency")
    @task
    def book_contested_day(self):
        """All members fight for the same day."""
        if not TARGET_DATE:
            return

        with self.client.post(
            "/api/v1/reservations/batch",
            json={"dates": [TARGET_DATE]},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()  # 409: day full or already booked
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the API, run again
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        self.headers = bearer(next(_user_ids))

    @tag("throughput", "read")
    @task(10)
    def list_schedules_cached(self):
        self.client.get("/api/v1/schedules", name="/api/v1/schedules [cached]")

    @tag("throughput", "read")
    @task(5)
    def monthly_context(self):
        self.client.get(
            f"/api/v1/reservations/context?monthYear={next_month()}",
            headers=self.headers,
            name="/api/v1/reservations/context",
        )

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
        self.headers = bearer(next(_user_ids))

    def _expect(self, resp, *codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_date(self):
        with self.client.post(
            "/api/v1/reservations/batch",
            json={"dates": ["2025-13-45"]},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, 400)

    @tag("edge")
    @task
    def far_future_date(self):
        """Only next month can be booked."""
        with self.client.post(
            "/api/v1/reservations/batch",
            json={"dates": ["2099-01-05"]},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, 422)

    @tag("edge")
    @task
    def empty_batch(self):
        with self.client.post(
            "/api/v1/reservations/batch",
            json={"dates": []},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, 400, 422)

    @tag("edge")
    @task
    def release_unknown(self):
        with self.client.post(
            "/api/v1/reservations/release",
            json={"reservationIds": [random.randint(10**8, 10**9)]},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, 409)

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post(
            "/api/v1/reservations/batch",
            json={"dates": [TARGET_DATE or "2025-01-06"]},
            catch_response=True,
        ) as resp:
            self._expect(resp, 401)

    @tag("edge")
    @task
    def member_on_admin_route(self):
        with self.client.post(
            "/api/v1/admin/reservations/cancel-days",
            json={"dates": [TARGET_DATE or "2025-01-06"]},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, 403)
