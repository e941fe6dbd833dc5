import unittest

from fastapi.testclient import TestClient

from challenge_backend.app import create_app
from challenge_backend.db import InMemoryDbClient
from challenge_backend.dependencies import (
    get_db_client,
    get_email_client,
    get_kv_store,
    get_storage_client,
)
from challenge_backend.mailer import InMemoryEmailClient
from challenge_backend.sessions import InMemoryKeyValueStore
from challenge_backend.storage import InMemoryStorageClient


class BackendApiTests(unittest.TestCase):
    def setUp(self):
        self.app = create_app()
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.app.dependency_overrides[get_db_client] = lambda: self.db
        self.app.dependency_overrides[get_storage_client] = lambda: self.storage
        kv_store = InMemoryKeyValueStore()
        self.app.dependency_overrides[get_kv_store] = lambda: kv_store
        mailer = InMemoryEmailClient()
        self.app.dependency_overrides[get_email_client] = lambda: mailer
        self.client = TestClient(self.app)

    def _register(self, client, username):
        response = client.post(
            "/api/register",
            json={
                "username": username,
                "email": f"{username}@example.com",
                "password": "secret",
            },
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertIsNone(payload["errors"])
        return payload["user"]

    def _submit(self, client, question, file_name="solution.py"):
        upload = client.post(
            "/api/upload-url",
            json={"file_name": file_name, "path": question, "file_type": "py"},
        ).json()["upload_data"]
        self.storage.put_bytes(upload["file_key"], b"print('hi')")
        check = client.post(
            "/api/check-existing-submission", json={"question": question}
        ).json()
        body = {"question": question, "file_key": upload["file_key"]}
        if check["existing"] and not check["errors"]:
            body.update(
                existing=True,
                id=check["id"],
                creator_id=check["creator_id"],
                updates=check["updates"],
            )
        return client.post("/api/submissions", json=body).json()

    def test_me_without_session(self):
        response = self.client.get("/api/me")
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json())

    def test_register_sets_session_cookie(self):
        user = self._register(self.client, "alice")
        self.assertIn("qid", self.client.cookies)
        me = self.client.get("/api/me").json()
        self.assertEqual(me["id"], user["id"])
        self.assertNotIn("password_hash", me)

    def test_register_validation_error(self):
        response = self.client.post(
            "/api/register",
            json={"username": "al", "email": "al@example.com", "password": "secret"},
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["errors"][0]["field"], "username")
        self.assertIsNone(payload["user"])
        self.assertNotIn("qid", self.client.cookies)

    def test_login_and_logout(self):
        self._register(self.client, "alice")
        self.client.post("/api/logout")
        self.assertIsNone(self.client.get("/api/me").json())

        other = TestClient(self.app)
        response = other.post(
            "/api/login",
            json={"username_or_email": "alice@example.com", "password": "secret"},
        )
        self.assertEqual(response.json()["user"]["username"], "alice")
        self.assertEqual(other.get("/api/me").json()["username"], "alice")

    def test_submission_routes_require_login(self):
        for path, body in [
            ("/api/upload-url", {"file_name": "a.py"}),
            ("/api/check-existing-submission", {"question": "q1"}),
            ("/api/submissions", {"question": "q1", "file_key": "q1/a.py"}),
            ("/api/delete-file", {"file_key": "q1/a.py"}),
        ]:
            response = self.client.post(path, json=body)
            self.assertEqual(response.status_code, 401, path)
        self.assertEqual(self.client.get("/api/user-points").status_code, 401)
        self.assertEqual(self.db.submissions, {})

    def test_submission_lifecycle(self):
        self._register(self.client, "alice")

        created = self._submit(self.client, "q1")
        self.assertEqual(created["submission"]["updates"], 0)
        self.assertRegex(created["submission"]["file_key"], r"^q1/.+-solution\.py$")

        for expected in (1, 2, 3):
            updated = self._submit(self.client, "q1", "solution v2.py")
            self.assertEqual(updated["submission"]["updates"], expected)
            self.assertEqual(updated["success"][0]["field"], "Update Submissions")

        check = self.client.post(
            "/api/check-existing-submission", json={"question": "q1"}
        ).json()
        self.assertTrue(check["existing"])
        self.assertIsNone(check["id"])
        self.assertEqual(check["errors"][0]["field"], "Max Submissions")

        rejected = self._submit(self.client, "q1", "late.py")
        self.assertIsNone(rejected["submission"])
        self.assertEqual(rejected["errors"][0]["field"], "Max Submissions")

        points = self.client.get("/api/user-points").json()
        self.assertEqual(len(points), 1)
        self.assertEqual(points[0]["updates"], 3)
        self.assertRegex(points[0]["file_key"], r"-solutionv2\.py$")

    def test_view_url_by_question_and_key(self):
        self._register(self.client, "alice")
        submission = self._submit(self.client, "q1")["submission"]

        by_question = self.client.post("/api/view-url", json={"question": "q1"}).json()
        self.assertEqual(by_question["upload_data"]["file_key"], submission["file_key"])
        self.assertIn("op=get", by_question["upload_data"]["signed_url"])

        missing = self.client.post("/api/view-url", json={"question": "q9"}).json()
        self.assertEqual(missing["errors"][0]["field"], "signedUrl")

        intruder = TestClient(self.app)
        self._register(intruder, "mallory")
        stolen = intruder.post(
            "/api/view-url", json={"file_key": submission["file_key"]}
        ).json()
        self.assertIsNone(stolen["upload_data"])

        self.assertEqual(self.client.post("/api/view-url", json={}).status_code, 422)

    def test_delete_file(self):
        self._register(self.client, "alice")
        self.storage.put_bytes("q1/old.py", b"x")
        response = self.client.post("/api/delete-file", json={"file_key": "q1/old.py"})
        self.assertEqual(response.json()["success"][0]["field"], "Delete File")
        self.assertNotIn("q1/old.py", self.storage.stored_objects)

    def test_cannot_delete_another_users_linked_file(self):
        self._register(self.client, "alice")
        key = self._submit(self.client, "q1", "a.py")["submission"]["file_key"]

        bobby = TestClient(self.app)
        self._register(bobby, "bobby")
        response = bobby.post("/api/delete-file", json={"file_key": key})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertIsNone(payload["success"])
        self.assertEqual(payload["errors"][0]["field"], "Delete File")
        self.assertIn(key, self.storage.stored_objects)

        own = self.client.post("/api/delete-file", json={"file_key": key}).json()
        self.assertEqual(own["errors"][0]["field"], "Delete File")
        self.assertIn(key, self.storage.stored_objects)

    def test_previous_file_can_be_deleted_after_replacement(self):
        self._register(self.client, "alice")
        old_key = self._submit(self.client, "q1", "a.py")["submission"]["file_key"]
        new_key = self._submit(self.client, "q1", "b.py")["submission"]["file_key"]

        response = self.client.post("/api/delete-file", json={"file_key": old_key})
        self.assertEqual(response.json()["success"][0]["field"], "Delete File")
        self.assertNotIn(old_key, self.storage.stored_objects)
        self.assertIn(new_key, self.storage.stored_objects)

    def test_admin_can_delete_linked_file(self):
        self._register(self.client, "alice")
        key = self._submit(self.client, "q1", "a.py")["submission"]["file_key"]

        admin = TestClient(self.app)
        admin_user = self._register(admin, "admin")
        self.db.set_admin(admin_user["id"], True)
        response = admin.post("/api/delete-file", json={"file_key": key})
        self.assertEqual(response.json()["success"][0]["field"], "Delete File")
        self.assertNotIn(key, self.storage.stored_objects)

    def test_update_points_is_admin_only(self):
        alice = self._register(self.client, "alice")
        self._submit(self.client, "q1")

        response = self.client.post(
            "/api/update-points",
            json={"rows": [{"file_key_fragment": "solution", "points": 50}]},
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.db.find_submission(alice["id"], "q1").points, 0)

        anonymous = TestClient(self.app)
        response = anonymous.post(
            "/api/update-points",
            json={"rows": [{"file_key_fragment": "solution", "points": 50}]},
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.client.get("/api/users").status_code, 403)

    def test_points_flow_into_leaderboard(self):
        admin = TestClient(self.app)
        admin_user = self._register(admin, "admin")
        self.db.set_admin(admin_user["id"], True)

        keys = {}
        for name in ("anna", "bert", "carl", "dave"):
            client = TestClient(self.app)
            self._register(client, name)
            keys[name] = self._submit(client, "q1")["submission"]["file_key"]

        scores = {"anna": 90, "bert": 80, "carl": 80, "dave": 70}
        rows = [
            {"file_key_fragment": keys[name].split("/")[1][:36], "points": points}
            for name, points in scores.items()
        ]
        response = admin.post("/api/update-points", json={"rows": rows})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["field"], "Update Scores Success")

        board = self.client.get("/api/top-scores", params={"limit": 4}).json()
        self.assertEqual(
            [(row["username"], row["points"], row["rank"]) for row in board],
            [("anna", 90, 1), ("bert", 80, 2), ("carl", 80, 2), ("dave", 70, 4)],
        )

        top_two = self.client.get("/api/top-scores", params={"limit": 2}).json()
        self.assertEqual(len(top_two), 2)

        self.assertEqual(len(admin.get("/api/users").json()), 5)

    def test_update_points_without_matches(self):
        admin = self._register(self.client, "admin")
        self.db.set_admin(admin["id"], True)
        response = self.client.post(
            "/api/update-points",
            json={"rows": [{"file_key_fragment": "nothing", "points": 1}]},
        )
        self.assertEqual(response.json()["field"], "Update Scores Fail")


if __name__ == "__main__":
    unittest.main()
