from concurrent.futures import ThreadPoolExecutor
import threading

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from conftest import SECRET_KEY, FakeClock, add_user, bearer, build_test_client, login
from merchantpay.database import Base, configure_sqlite_locking
from merchantpay.errors import InvalidRefreshToken
from merchantpay.models.auth import RefreshSession
from merchantpay.models.user import Role
from merchantpay.services.sessions import SessionService, hash_token
from merchantpay.services.tokens import TokenCodec


def _cookie_value(set_cookie_headers: list[str], cookie_name: str) -> str:
    for header in set_cookie_headers:
        token_part = header.split(";", 1)[0]
        name, value = token_part.split("=", 1)
        if name == cookie_name:
            return value
    raise AssertionError(f"{cookie_name} cookie not set")


def _set_cookies(response) -> list[str]:
    return response.headers.get_list("set-cookie")


def _seed_cashier(session_local, email="john@x.com", password="pw"):
    db = session_local()
    try:
        return add_user(
            db,
            email,
            password,
            role=Role.CASHIER,
            tenant_id="t1",
            merchant_id="m1",
            branch_id="b1",
            pos_id="p1",
        ).id
    finally:
        db.close()


def test_login_returns_tokens_user_and_cookie_group(clock):
    client, session_local = build_test_client(clock=clock)
    user_id = _seed_cashier(session_local)

    response = login(client, "john@x.com")
    data = response.json()
    cookies = _set_cookies(response)

    assert data["tokenType"] == "bearer"
    assert data["user"]["id"] == user_id
    assert data["user"]["merchantId"] == "m1"
    assert data["user"]["role"] == "cashier"
    assert "password" not in str(data["user"]).lower()

    claims = client.app.state.session_service.codec.verify(data["accessToken"])
    assert claims.identity.subject_id == user_id
    assert claims.expires_at - claims.issued_at == 15 * 60

    assert _cookie_value(cookies, "accessToken") == data["accessToken"]
    assert _cookie_value(cookies, "refreshToken") == data["refreshToken"]
    assert _cookie_value(cookies, "tokenExpiry")
    refresh_cookie = next(c for c in cookies if c.startswith("refreshToken="))
    assert "HttpOnly" in refresh_cookie
    assert "Secure" in refresh_cookie
    assert "Max-Age=604800" in refresh_cookie


def test_login_failures_are_indistinguishable(clock):
    client, session_local = build_test_client(clock=clock)
    _seed_cashier(session_local)

    wrong_password = client.post("/api/auth/login", json={"email": "john@x.com", "password": "nope"})
    unknown_user = client.post("/api/auth/login", json={"email": "ghost@x.com", "password": "pw"})

    assert wrong_password.status_code == unknown_user.status_code == 401
    assert wrong_password.json()["code"] == unknown_user.json()["code"] == "INVALID_CREDENTIALS"
    assert wrong_password.json()["message"] == unknown_user.json()["message"]
    assert wrong_password.headers["www-authenticate"] == "Bearer"


def test_login_is_case_insensitive_on_email(clock):
    client, session_local = build_test_client(clock=clock)
    _seed_cashier(session_local)

    assert client.post("/api/auth/login", json={"email": "John@X.com", "password": "pw"}).status_code == 200


def test_inactive_user_cannot_login(clock):
    client, session_local = build_test_client(clock=clock)
    db = session_local()
    try:
        add_user(db, "gone@x.com", is_active=False)
    finally:
        db.close()

    response = client.post("/api/auth/login", json={"email": "gone@x.com", "password": "pw"})
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_CREDENTIALS"


def test_refresh_rotates_session_and_rejects_replay(clock):
    client, session_local = build_test_client(clock=clock)
    _seed_cashier(session_local)
    old_refresh = login(client, "john@x.com").json()["refreshToken"]

    refresh_response = client.post("/api/auth/refresh", json={"refreshToken": old_refresh})
    assert refresh_response.status_code == 200
    new_refresh = refresh_response.json()["refreshToken"]
    assert new_refresh != old_refresh

    replay_response = client.post("/api/auth/refresh", json={"refreshToken": old_refresh})
    assert replay_response.status_code == 401
    assert replay_response.json()["code"] == "INVALID_REFRESH_TOKEN"
    assert any(c.startswith('refreshToken=""') for c in _set_cookies(replay_response))

    db = session_local()
    try:
        rotated = db.query(RefreshSession).filter(RefreshSession.token_hash == hash_token(new_refresh)).one()
        previous = db.query(RefreshSession).filter(RefreshSession.token_hash == hash_token(old_refresh)).one()
        assert rotated.rotated_from_id == previous.id
        assert previous.revoked_at is not None
        assert rotated.revoked_at is None
    finally:
        db.close()


def test_refresh_accepts_cookie_when_body_is_missing(clock):
    client, session_local = build_test_client(clock=clock)
    _seed_cashier(session_local)
    refresh_token = login(client, "john@x.com").json()["refreshToken"]

    response = client.post("/api/auth/refresh", headers={"Cookie": f"refreshToken={refresh_token}"})

    assert response.status_code == 200


def test_refresh_rejects_expired_and_unknown_tokens(clock):
    client, session_local = build_test_client(clock=clock)
    _seed_cashier(session_local)
    refresh_token = login(client, "john@x.com").json()["refreshToken"]

    assert client.post("/api/auth/refresh", json={"refreshToken": "made-up"}).status_code == 401
    assert client.post("/api/auth/refresh", json={}).status_code == 401

    clock.advance(days=7, seconds=1)
    expired = client.post("/api/auth/refresh", json={"refreshToken": refresh_token})
    assert expired.status_code == 401
    assert expired.json()["code"] == "INVALID_REFRESH_TOKEN"


def test_new_login_supersedes_previous_refresh_token(clock):
    client, session_local = build_test_client(clock=clock)
    _seed_cashier(session_local)
    first = login(client, "john@x.com").json()["refreshToken"]
    second = login(client, "john@x.com").json()["refreshToken"]

    assert client.post("/api/auth/refresh", json={"refreshToken": first}).status_code == 401
    assert client.post("/api/auth/refresh", json={"refreshToken": second}).status_code == 200

    db = session_local()
    try:
        assert db.query(RefreshSession).filter(RefreshSession.revoked_at.is_(None)).count() == 1
    finally:
        db.close()


def test_logout_revokes_and_is_idempotent(clock):
    client, session_local = build_test_client(clock=clock)
    _seed_cashier(session_local)
    refresh_token = login(client, "john@x.com").json()["refreshToken"]

    first = client.post("/api/auth/logout", json={"refreshToken": refresh_token})
    second = client.post("/api/auth/logout", json={"refreshToken": refresh_token})

    assert first.status_code == second.status_code == 200
    assert first.json() == second.json() == {"success": True}
    cleared = {c.split("=", 1)[0] for c in _set_cookies(first)}
    assert cleared == {"accessToken", "refreshToken", "tokenExpiry"}

    assert client.post("/api/auth/refresh", json={"refreshToken": refresh_token}).status_code == 401
    assert client.post("/api/auth/logout", json={"refreshToken": "never-issued"}).status_code == 200
    assert client.post("/api/auth/logout").status_code == 200


def test_end_to_end_expiry_refresh_and_reuse_detection(clock):
    client, session_local = build_test_client(clock=clock)
    _seed_cashier(session_local)

    tokens = login(client, "john@x.com").json()
    a1, r1 = tokens["accessToken"], tokens["refreshToken"]
    assert client.get("/api/auth/me", headers=bearer(a1)).status_code == 200

    clock.advance(minutes=16)
    expired = client.get("/api/auth/me", headers=bearer(a1))
    assert expired.status_code == 401
    assert expired.json()["code"] == "UNAUTHENTICATED"

    refreshed = client.post("/api/auth/refresh", json={"refreshToken": r1})
    assert refreshed.status_code == 200
    a2 = refreshed.json()["accessToken"]

    assert client.post("/api/auth/refresh", json={"refreshToken": r1}).status_code == 401
    me = client.get("/api/auth/me", headers=bearer(a2))
    assert me.status_code == 200
    assert me.json()["posId"] == "p1"


def test_bad_bearer_token_degrades_to_anonymous(clock):
    client, session_local = build_test_client(clock=clock)
    _seed_cashier(session_local)

    assert client.get("/health", headers=bearer("garbage")).status_code == 200
    assert client.post(
        "/api/auth/login",
        json={"email": "john@x.com", "password": "pw"},
        headers=bearer("garbage"),
    ).status_code == 200
    assert client.get("/api/auth/me", headers=bearer("garbage")).status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Basic abc"}).status_code == 401


def test_concurrent_refresh_admits_exactly_one(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    configure_sqlite_locking(engine)
    Base.metadata.create_all(bind=engine)
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    _seed_cashier(session_local)

    service = SessionService(TokenCodec(SECRET_KEY, clock=FakeClock()))
    db = session_local()
    try:
        refresh_token = service.login(db, "john@x.com", "pw").refresh_token
    finally:
        db.close()

    barrier = threading.Barrier(2)

    def attempt(_):
        db = session_local()
        try:
            barrier.wait()
            service.refresh(db, refresh_token)
            return "rotated"
        except InvalidRefreshToken:
            return "rejected"
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = sorted(pool.map(attempt, range(2)))

    assert outcomes == ["rejected", "rotated"]
    engine.dispose()
