import sys
from importlib import reload
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def app_module(tmp_path, monkeypatch):
    db_path = tmp_path / "stats.db"
    monkeypatch.setenv("STATS_DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.setenv("STATS_REPORTS_RATE_LIMIT", "100")
    monkeypatch.setenv("STATS_REPORTS_RATE_WINDOW", "60")
    monkeypatch.setenv("METRICS_REFRESH_INTERVAL_SECONDS", "3600")

    from backend.app import database

    reload(database)

    from backend.app import main

    reload(main)
    main.reset_application_state()

    yield main

    main.reset_application_state()
    database.engine.dispose()


@pytest.fixture
def database(app_module):
    from backend.app import database

    return database


@pytest.fixture
def session(database):
    with database.SessionLocal() as db:
        yield db


@pytest.fixture
def companies(session):
    from backend.app.models import Company

    rows = [
        Company(id=1, slug="acme-plumbing", name="Acme Plumbing", city_name="Sofia", plan_type="pro"),
        Company(id=2, slug="bright-dental", name="Bright Dental", city_name="Plovdiv", plan_type="free"),
        Company(id=3, slug="corner-bakery", name="Corner Bakery", country_code="BG"),
    ]
    session.add_all(rows)
    session.commit()
    return {company.slug: company.id for company in rows}


@pytest.fixture(scope="session")
def producer_keys():
    from cryptography.hazmat.primitives.asymmetric import rsa

    return {
        kid: rsa.generate_private_key(public_exponent=65537, key_size=2048)
        for kid in ("primary", "secondary")
    }


@pytest.fixture
def producer_token(producer_keys, monkeypatch):
    """Factory for RS256 producer tokens verified against local keys."""
    import time

    import jwt

    from backend.app import auth

    monkeypatch.setenv("STATS_JWT_JWKS_URL", "https://jwks.example.com/.well-known/jwks.json")
    monkeypatch.setenv("STATS_JWT_ISSUER", "https://issuer.example.com")
    monkeypatch.setenv("STATS_JWT_AUDIENCE", "listing-stats")

    def signing_key(token, settings):
        kid = jwt.get_unverified_header(token).get("kid")
        if kid not in producer_keys:
            raise jwt.PyJWKClientError(f"Unable to find a signing key that matches: {kid!r}")
        return producer_keys[kid].public_key()

    monkeypatch.setattr(auth, "_signing_key", signing_key)
    auth.reset_auth_state()

    def build(kid="primary", signed_with=None, lifetime_seconds=300, scope="events:write", **overrides):
        claims = {
            "iss": "https://issuer.example.com",
            "aud": "listing-stats",
            "exp": int(time.time()) + lifetime_seconds,
            "sub": "events-producer",
        }
        if scope is not None:
            claims["scope"] = scope
        claims.update(overrides)
        return jwt.encode(
            {name: value for name, value in claims.items() if value is not None},
            producer_keys[signed_with or kid],
            algorithm="RS256",
            headers={"kid": kid},
        )

    yield build
    auth.reset_auth_state()
