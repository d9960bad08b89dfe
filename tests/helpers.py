"""Shared test helpers: initData signing and an in-memory Supabase Auth fake."""

import hashlib
import hmac
import json
import time
import uuid
from urllib.parse import urlencode

import httpx

BOT_TOKEN = "123456:TEST-BOT-TOKEN"
PASSWORD_SECRET = "test-password-secret"
SUPABASE_URL = "https://project.supabase.test"
SERVICE_ROLE_KEY = "service-role-key"
ANON_KEY = "anon-key"


def sign_fields(fields: dict[str, str], bot_token: str = BOT_TOKEN) -> str:
    """Telegram WebApp signature computed independently of the app code."""
    check_string = "\n".join(f"{key}={fields[key]}" for key in sorted(fields))
    secret_key = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    return hmac.new(secret_key, check_string.encode(), hashlib.sha256).hexdigest()


def make_init_data(
    user_id: int | float | str = 555,
    username: str | None = "alice",
    auth_date: int | None = None,
    bot_token: str = BOT_TOKEN,
    extra: dict[str, str] | None = None,
    user: dict | None = None,
) -> str:
    """Build a correctly signed initData string."""
    if user is None:
        user = {"id": user_id, "first_name": "Alice"}
        if username is not None:
            user["username"] = username
    fields = {
        "auth_date": str(int(time.time()) if auth_date is None else auth_date),
        "query_id": "AAHdF6IQAAAAAN0XohDhrOrc",
        "user": json.dumps(user, separators=(",", ":")),
    }
    fields.update(extra or {})
    fields["hash"] = sign_fields(fields, bot_token)
    return urlencode(fields)


class FakeSupabase:
    """Just enough of the GoTrue REST API for the login and RPC flows."""

    def __init__(self):
        self.users: dict[str, dict] = {}
        self.sessions: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], httpx.Response] = {}

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def fail(self, method: str, path: str, status_code: int = 500, body: dict | None = None) -> None:
        """Make the next calls to ``method path`` fail (path relative to /auth/v1)."""
        self.failures[(method, path)] = httpx.Response(status_code, json=body or {"msg": "boom"})

    def add_user(self, email: str, password: str = "irrelevant") -> str:
        user_id = str(uuid.uuid4())
        self.users[user_id] = {
            "id": user_id,
            "email": email.lower(),
            "password": password,
            "user_metadata": {},
        }
        return user_id

    def issue_token(self, user_id: str) -> str:
        token = f"access-{uuid.uuid4().hex}"
        self.sessions[token] = user_id
        return token

    def _public(self, user: dict) -> dict:
        return {key: value for key, value in user.items() if key != "password"}

    def _by_email(self, email: str) -> dict | None:
        for user in self.users.values():
            if user["email"] == email.lower():
                return user
        return None

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/auth/v1")
        self.calls.append((request.method, path))

        failure = self.failures.get((request.method, path))
        if failure is not None:
            return failure

        if path == "/admin/users" and request.method == "POST":
            body = json.loads(request.content)
            if self._by_email(body["email"]):
                return httpx.Response(
                    422,
                    json={
                        "code": 422,
                        "error_code": "email_exists",
                        "msg": "A user with this email address has already been registered",
                    },
                )
            user_id = self.add_user(body["email"], body["password"])
            self.users[user_id]["user_metadata"] = body.get("user_metadata") or {}
            return httpx.Response(200, json=self._public(self.users[user_id]))

        if path == "/admin/users" and request.method == "GET":
            needle = request.url.params.get("filter", "").lower()
            matches = [self._public(u) for u in self.users.values() if needle in u["email"]]
            return httpx.Response(200, json={"users": matches, "aud": "authenticated"})

        if path.startswith("/admin/users/") and request.method == "PUT":
            user = self.users.get(path.rsplit("/", 1)[1])
            if user is None:
                return httpx.Response(404, json={"code": 404, "msg": "User not found"})
            body = json.loads(request.content)
            if "password" in body:
                user["password"] = body["password"]
            if "user_metadata" in body:
                user["user_metadata"] = body["user_metadata"]
            return httpx.Response(200, json=self._public(user))

        if path == "/token" and request.method == "POST":
            body = json.loads(request.content)
            user = self._by_email(body["email"])
            if user is None or user["password"] != body["password"]:
                return httpx.Response(
                    400,
                    json={"error": "invalid_grant", "error_description": "Invalid login credentials"},
                )
            return httpx.Response(
                200,
                json={
                    "access_token": self.issue_token(user["id"]),
                    "refresh_token": f"refresh-{uuid.uuid4().hex}",
                    "token_type": "bearer",
                    "user": self._public(user),
                },
            )

        if path == "/user" and request.method == "GET":
            token = request.headers.get("Authorization", "").removeprefix("Bearer ")
            user_id = self.sessions.get(token)
            if user_id is None:
                return httpx.Response(401, json={"code": 401, "msg": "invalid JWT"})
            return httpx.Response(200, json=self._public(self.users[user_id]))

        return httpx.Response(404, json={"msg": f"no route {request.method} {path}"})
