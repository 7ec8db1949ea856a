import time

from models import User
from services import auth as auth_service
from services.auth import PBKDF2_ITERATIONS, create_access_token, hash_password


def test_login_success_and_me(client, seeded_users):
    response = client.post(
        "/auth/login",
        json={
            "email": seeded_users["alice"]["email"],
            "password": seeded_users["alice"]["password"],
        },
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["token_type"] == "bearer"
    assert payload["user"]["full_name"] == "Alice Moreau"

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {payload['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == seeded_users["alice"]["email"]


def test_login_invalid_password(client, seeded_users):
    response = client.post(
        "/auth/login",
        json={"email": seeded_users["alice"]["email"], "password": "wrong-pass"},
    )
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credentials"}


def test_register_creates_user_and_profile(client):
    created = client.post(
        "/auth/register",
        json={"email": "New.Patient@Example.com", "password": "long-enough", "full_name": "New Patient"},
    )
    assert created.status_code == 201, created.text
    assert created.json()["email"] == "new.patient@example.com"

    duplicate = client.post(
        "/auth/register",
        json={"email": "new.patient@example.com", "password": "long-enough"},
    )
    assert duplicate.status_code == 409

    login = client.post("/auth/login", json={"email": "new.patient@example.com", "password": "long-enough"})
    assert login.status_code == 200
    headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

    profile = client.get("/profile", headers=headers)
    assert profile.status_code == 200
    assert profile.json()["full_name"] == "New Patient"


def test_register_rejects_short_password(client):
    response = client.post("/auth/register", json={"email": "short@example.com", "password": "abc"})
    assert response.status_code == 422


def test_auth_required_for_protected_endpoints(client, seeded_users):
    _ = seeded_users
    for path in ("/medications", "/allergies", "/medical-history", "/prescriptions", "/interactions", "/profile"):
        response = client.get(path)
        assert response.status_code == 401, path
        assert response.json() == {"error": "Missing authorization header"}


def test_tampered_token_rejected(client, alice_headers):
    token = alice_headers["Authorization"].removeprefix("Bearer ")
    header, payload, signature = token.split(".")
    forged = f"{header}.{payload}.{signature[:-2]}xx"

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {forged}"})
    assert response.status_code == 401

    wrong_scheme = client.get("/auth/me", headers={"Authorization": f"Token {token}"})
    assert wrong_scheme.status_code == 401


def test_unauthorized_responses_advertise_bearer_scheme(client, seeded_users):
    _ = seeded_users
    response = client.get("/auth/me")
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


def test_expired_token_rejected(client, seeded_users, db_session):
    user = db_session.get(User, seeded_users["alice"]["id"])
    stale = create_access_token(user, now=int(time.time()) - auth_service.TOKEN_TTL_SECONDS - 60)

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {stale}"})
    assert response.status_code == 401
    assert response.json() == {"error": "Token expired"}


def test_token_from_other_issuer_rejected(client, seeded_users, db_session, monkeypatch):
    user = db_session.get(User, seeded_users["alice"]["id"])
    monkeypatch.setattr(auth_service, "TOKEN_ISSUER", "someone-else")
    foreign = create_access_token(user)
    monkeypatch.undo()

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {foreign}"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid token issuer"}


def test_login_upgrades_weak_password_hash(client, seeded_users, db_session):
    user = db_session.get(User, seeded_users["bob"]["id"])
    user.password_hash = hash_password(seeded_users["bob"]["password"], iterations=1_000)
    db_session.add(user)
    db_session.commit()

    response = client.post(
        "/auth/login",
        json={"email": "  BOB@rxguard.local ", "password": seeded_users["bob"]["password"]},
    )
    assert response.status_code == 200

    db_session.expire_all()
    upgraded = db_session.get(User, seeded_users["bob"]["id"])
    assert upgraded.password_hash.split("$")[1] == str(PBKDF2_ITERATIONS)
