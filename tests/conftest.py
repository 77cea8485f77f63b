import os
os.environ['TEST_DB_URL'] = 'sqlite:///test.db'
from datetime import date, timedelta

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from neo_dashboard import config, models, services
from neo_dashboard.auth import AuthError
from neo_dashboard.database import engine
from neo_dashboard.main import app, get_identity, sessions
from neo_dashboard.schemas import Neo, User


def neo_payload(
    neo_id,
    day,
    hazardous=False,
    diameter=(0.1, 0.3),
    miss_km="1000000.5",
    name=None,
    approaches=True,
):
    day = day.isoformat() if isinstance(day, date) else day
    approach = {
        "close_approach_date": day,
        "close_approach_date_full": f"{day} 12:00",
        "epoch_date_close_approach": 1700000000000,
        "relative_velocity": {
            "kilometers_per_second": "12.5",
            "kilometers_per_hour": "45000",
            "miles_per_hour": "27961.7",
        },
        "miss_distance": {
            "astronomical": "0.0066",
            "lunar": "2.6",
            "kilometers": miss_km,
            "miles": "621371.2",
        },
        "orbiting_body": "Earth",
    }
    return {
        "id": neo_id,
        "neo_reference_id": neo_id,
        "name": name or f"({neo_id})",
        "nasa_jpl_url": f"https://ssd.jpl.nasa.gov/tools/sbdb_lookup.html#/?sstr={neo_id}",
        "absolute_magnitude_h": 22.1,
        "is_potentially_hazardous_asteroid": hazardous,
        "is_sentry_object": False,
        "estimated_diameter": {
            "kilometers": {
                "estimated_diameter_min": diameter[0],
                "estimated_diameter_max": diameter[1],
            },
            "meters": {
                "estimated_diameter_min": diameter[0] * 1000,
                "estimated_diameter_max": diameter[1] * 1000,
            },
        },
        "close_approach_data": [approach] if approaches else [],
    }


@pytest.fixture
def make_payload():
    return neo_payload


@pytest.fixture
def make_neo():
    def factory(*args, **kwargs):
        return Neo.model_validate(neo_payload(*args, **kwargs))
    return factory


class FakeNasa:
    """Answers NeoWs routes from in-memory payloads."""

    def __init__(self):
        self.feed_days = {}
        self.details = {}
        self.orbital = {}
        self.orbital_status = 404
        self.orbital_body = None
        self.requests = []
        self.fail_status = None

    def add(self, payload):
        day = payload["close_approach_data"][0]["close_approach_date"]
        self.feed_days.setdefault(day, []).append(payload)
        self.details[payload["id"]] = payload

    def handler(self, request):
        self.requests.append(request)
        if self.fail_status:
            return httpx.Response(self.fail_status, json={"error": "boom"})
        path = request.url.path
        if path == services.FEED_PATH:
            start = date.fromisoformat(request.url.params["start_date"])
            end = date.fromisoformat(request.url.params["end_date"])
            objects = {}
            day = start
            while day <= end:
                if day.isoformat() in self.feed_days:
                    objects[day.isoformat()] = self.feed_days[day.isoformat()]
                day += timedelta(days=1)
            count = sum(len(v) for v in objects.values())
            return httpx.Response(200, json={"element_count": count, "near_earth_objects": objects})
        if path.endswith("/orbital"):
            neo_id = path.split("/")[-2]
            if neo_id in self.orbital:
                return httpx.Response(200, json={"orbital_data": self.orbital[neo_id]})
            body = {"error": "no orbit"} if self.orbital_body is None else self.orbital_body
            return httpx.Response(self.orbital_status, json=body)
        neo_id = path.rsplit("/", 1)[-1]
        if neo_id in self.details:
            return httpx.Response(200, json=self.details[neo_id])
        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
def nasa(monkeypatch):
    fake = FakeNasa()

    def build_client():
        return httpx.AsyncClient(
            base_url=config.NASA_BASE_URL,
            params={"api_key": "test-key"},
            transport=httpx.MockTransport(fake.handler),
        )

    monkeypatch.setattr(services, "build_client", build_client)
    return fake


class FakeIdentity:
    def __init__(self):
        self.user = User(id="user-1", email="ada@example.com", name="Ada")
        self.signed_out = []
        self.lookups = []
        self.confirm_email = True
        self.fail_sign_out = False

    async def sign_in(self, email, password):
        if password != "secret":
            raise AuthError("Invalid login credentials")
        return "token-1", self.user

    async def sign_up(self, email, password, name=None):
        if email == "taken@example.com":
            raise AuthError("User already registered")
        user = User(id="user-2", email=email, name=name)
        if self.confirm_email:
            return None, user
        return "token-2", user

    async def sign_out(self, token):
        self.signed_out.append(token)
        if self.fail_sign_out:
            raise AuthError("network down")

    async def get_user(self, token):
        self.lookups.append(token)
        if token != "token-1":
            raise AuthError("invalid JWT")
        return self.user


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest_asyncio.fixture
async def client(nasa, identity):
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)
    sessions.clear()
    app.dependency_overrides[get_identity] = lambda: identity
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def signed_in(client):
    resp = await client.post("/login", data={"email": "ada@example.com", "password": "secret"})
    assert resp.status_code == 303
    return client
