"""API tests for sign-up, sign-in, sign-out, health, root and unmatched routes."""

import unittest

from tests.support import DEFAULT_PASSWORD, make_client, make_session_factory, make_user

SIGNUP = {"name": "Ada Lovelace", "email": "Ada@Example.com", "password": "secret123"}


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        self.client = make_client(self.session_factory)


class TestSignUp(ApiTestCase):
    def test_signup_creates_user_and_sets_cookie(self) -> None:
        resp = self.client.post("/auth/signup", json=SIGNUP)
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertEqual(body["message"], "User registered successfully")
        self.assertEqual(body["user"]["email"], "ada@example.com")
        self.assertEqual(body["user"]["role"], "user")
        self.assertEqual(set(body["user"]), {"id", "name", "email", "role"})
        self.assertNotIn("password", resp.text)

        set_cookie = resp.headers["set-cookie"].lower()
        self.assertTrue(set_cookie.startswith("token="))
        self.assertIn("httponly", set_cookie)
        self.assertIn("max-age=86400", set_cookie)

    def test_signup_with_admin_role(self) -> None:
        resp = self.client.post("/auth/signup", json={**SIGNUP, "role": "admin"})
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["user"]["role"], "admin")

    def test_duplicate_email_is_400(self) -> None:
        self.client.post("/auth/signup", json=SIGNUP)
        resp = self.client.post("/auth/signup", json={**SIGNUP, "email": "ada@example.COM"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Email already exists")

    def test_invalid_fields_are_listed(self) -> None:
        resp = self.client.post(
            "/auth/signup", json={"name": "", "email": "nope", "password": "123"}
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(
            resp.json(),
            {
                "error": "Validation failed",
                "details": [
                    "Name is required",
                    "Invalid email format",
                    "Password must be at least 6 characters",
                ],
            },
        )

    def test_missing_body_is_400(self) -> None:
        resp = self.client.post("/auth/signup")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(
            resp.json()["details"],
            ["Request body is required and must be a valid JSON object"],
        )

    def test_malformed_json_is_400(self) -> None:
        resp = self.client.post(
            "/auth/signup",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Validation failed")


class TestSignIn(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        make_user(self.session_factory, email="ada@example.com")

    def test_signin_returns_user_and_cookie(self) -> None:
        resp = self.client.post(
            "/auth/signin", json={"email": "ADA@example.com", "password": DEFAULT_PASSWORD}
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["message"], "User signed in successfully")
        self.assertEqual(resp.json()["user"]["email"], "ada@example.com")
        self.assertTrue(resp.headers["set-cookie"].startswith("token="))

        me = self.client.get("/users/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["user"]["email"], "ada@example.com")

    def test_wrong_password_and_unknown_email_look_the_same(self) -> None:
        wrong = self.client.post(
            "/auth/signin", json={"email": "ada@example.com", "password": "wrong-pass"}
        )
        unknown = self.client.post(
            "/auth/signin", json={"email": "nobody@example.com", "password": DEFAULT_PASSWORD}
        )
        self.assertEqual(wrong.status_code, 401)
        self.assertEqual(unknown.status_code, 401)
        self.assertEqual(wrong.json(), unknown.json())
        self.assertEqual(
            wrong.json(), {"error": "Invalid credentials", "message": "Invalid email or password"}
        )
        self.assertNotIn("set-cookie", wrong.headers)

    def test_missing_password_is_validation_error(self) -> None:
        resp = self.client.post("/auth/signin", json={"email": "ada@example.com"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["details"], ["password is invalid"])


class TestSignOut(ApiTestCase):
    def test_signout_clears_cookie(self) -> None:
        resp = self.client.post("/auth/signout")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"message": "User signed out successfully"})
        set_cookie = resp.headers["set-cookie"].lower()
        self.assertTrue(set_cookie.startswith("token="))
        self.assertIn("max-age=0", set_cookie)

    def test_signed_out_client_is_unauthenticated(self) -> None:
        self.client.post("/auth/signup", json=SIGNUP)
        self.assertEqual(self.client.get("/users/me").status_code, 200)
        self.client.post("/auth/signout")
        self.assertEqual(self.client.get("/users/me").status_code, 401)


class TestHealthAndRoot(ApiTestCase):
    def test_health(self) -> None:
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["status"], "OK")
        self.assertIn("T", body["timestamp"])
        self.assertGreaterEqual(body["uptime"], 0)

    def test_root_and_api_welcome(self) -> None:
        for path in ("/", "/api"):
            resp = self.client.get(path)
            self.assertEqual(resp.status_code, 200)
            self.assertEqual(resp.json(), {"message": "Welcome to the Accounts API"})

    def test_unmatched_route_is_404_body(self) -> None:
        resp = self.client.get("/does-not-exist")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(
            resp.json(),
            {"error": "Not Found", "message": "The requested resource was not found."},
        )


if __name__ == "__main__":
    unittest.main()
