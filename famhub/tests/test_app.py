import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from famhub import dependencies
from famhub.app import create_app
from famhub.config import Settings, get_settings
from famhub.dependencies import (
    get_relational_client,
    get_tabular_client,
    get_upload_storage,
)
from famhub.relational import QUESTIONS_TABLE, USERS_TABLE, InMemoryRelationalClient
from famhub.storage import LocalUploadStorage
from famhub.tabular import InMemoryTabularClient, TabularRecord

PROFILE = {
    "id": "0b9c7a1e",
    "first_name": "James",
    "last_name": "Smith",
    "email": "james.smith@family.com",
    "role": "Older Brother",
    "persona": "Children",
    "status": "Active",
}


class BackendApiTests(unittest.TestCase):
    def setUp(self):
        self.app = create_app()
        self.settings = Settings.model_construct(
            airtable_api_key="key",
            airtable_base_id="app",
            airtable_table_name="Family",
            supabase_url="https://project.supabase.co",
            supabase_anon_key=None,
            supabase_service_role_key="service",
        )
        self.db = InMemoryRelationalClient()
        self.tabular = InMemoryTabularClient(
            {
                "Family": [TabularRecord(f"rec{i}", {"n": i}) for i in range(5)],
                "User": [TabularRecord("recU1", {"Email": "john@family.com"})],
                "Users": [
                    TabularRecord(
                        "recU1",
                        {
                            "Email": "john@family.com",
                            "first_name": "John",
                            "last_name": "Smith",
                            "role": "Father",
                            "persona": "Parent",
                        },
                    )
                ],
                "Questions_user": [
                    TabularRecord("recQ1", {"questions": "first", "Timestamp": "2024-01-01T00:00:00Z"}),
                    TabularRecord("recQ2", {"questions": "second", "Timestamp": "2024-03-01T00:00:00Z"}),
                ],
                "Memories": [
                    TabularRecord(
                        "recM1",
                        {"title": "Trip", "content": "Lake", "user_id": "u1", "Timestamp": "2024-01-01T00:00:00Z"},
                    ),
                    TabularRecord("recM2", {"title": "Draft"}),
                ],
            }
        )
        self.public_root = tempfile.mkdtemp()
        self.app.dependency_overrides[get_settings] = lambda: self.settings
        self.app.dependency_overrides[get_relational_client] = lambda: self.db
        self.app.dependency_overrides[get_tabular_client] = lambda: self.tabular
        self.app.dependency_overrides[get_upload_storage] = lambda: LocalUploadStorage(
            self.public_root
        )
        self.client = TestClient(self.app)

    def tearDown(self):
        shutil.rmtree(self.public_root, ignore_errors=True)

    def _seed_question(self, like_count=0):
        self.db.insert(
            USERS_TABLE,
            {"id": "user-1", "first_name": "John", "last_name": "Smith", "email": "john@family.com"},
        )
        self.db.insert(
            QUESTIONS_TABLE,
            {"id": "q-1", "user_id": "user-1", "question": "Camping?", "like_count": like_count},
        )

    # Listings

    def test_records_uses_configured_table_and_caps_rows(self):
        response = self.client.get("/api/records")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(len(payload["records"]), 3)
        self.assertEqual(set(payload["records"][0]), {"id", "fields"})

    def test_users_listing(self):
        response = self.client.get("/api/users")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["users"][0]["id"], "recU1")

    def test_connection_test_reports_sample(self):
        payload = self.client.get("/api/connection-test").json()
        self.assertEqual(payload["recordCount"], 1)
        self.assertEqual(payload["sampleRecord"]["id"], "recU1")

    def test_questions_sorted_newest_first(self):
        response = self.client.get("/api/questions")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([r["id"] for r in response.json()["records"]], ["recQ2", "recQ1"])

    def test_empty_table_is_success(self):
        self.tabular.tables["Questions_user"].clear()
        response = self.client.get("/api/questions")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True, "records": []})

    def test_listing_failure_is_500_with_details(self):
        del self.tabular.tables["Family"]
        response = self.client.get("/api/records")
        self.assertEqual(response.status_code, 500)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["error"], "adapter_error")
        self.assertIn("details", payload)

    def test_unconfigured_tabular_store_is_503(self):
        self.app.dependency_overrides[get_tabular_client] = lambda: None
        for path in ("/api/records", "/api/users", "/api/connection-test", "/api/questions", "/api/memories"):
            response = self.client.get(path)
            self.assertEqual(response.status_code, 503, path)
            payload = response.json()
            self.assertFalse(payload["success"])
            self.assertEqual(payload["message"], "Airtable is not configured")

    def test_unconfigured_environment_never_builds_airtable_client(self):
        del self.app.dependency_overrides[get_tabular_client]
        unconfigured = Settings.model_construct(airtable_api_key=None, airtable_base_id=None)
        dependencies.reset_clients()
        try:
            with patch("famhub.dependencies.get_settings", return_value=unconfigured), patch(
                "famhub.dependencies.AirtableClient"
            ) as airtable:
                response = self.client.get("/api/questions")
            self.assertEqual(response.status_code, 503)
            airtable.assert_not_called()
        finally:
            dependencies.reset_clients()

    def test_in_memory_backends_serve_every_tabular_route(self):
        del self.app.dependency_overrides[get_tabular_client]
        in_memory = Settings.model_construct(
            use_in_memory_backends=True, airtable_table_name="Family"
        )
        dependencies.reset_clients()
        try:
            with patch("famhub.dependencies.get_settings", return_value=in_memory):
                for path in ("/api/records", "/api/users", "/api/questions", "/api/memories"):
                    response = self.client.get(path)
                    self.assertEqual(response.status_code, 200, path)
                    self.assertTrue(response.json()["success"], path)
                created = self.client.post(
                    "/api/questions", json={"user_id": "u1", "question": "Dinner?"}
                )
                listed = self.client.get("/api/questions").json()["records"]
                missing = self.client.get("/api/users/nobody@family.com")
        finally:
            dependencies.reset_clients()
        self.assertEqual(created.status_code, 200)
        self.assertEqual([r["fields"]["questions"] for r in listed], ["Dinner?"])
        self.assertEqual(missing.status_code, 404)

    def test_unreachable_database_answers_with_envelope(self):
        del self.app.dependency_overrides[get_relational_client]
        root = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, root, True)
        unreachable = Settings.model_construct(
            database_url="sqlite+pysqlite:///" + os.path.join(root, "missing", "famhub.db")
        )
        client = TestClient(self.app, raise_server_exceptions=False)
        dependencies.reset_clients()
        try:
            with patch("famhub.dependencies.get_settings", return_value=unreachable):
                responses = [
                    client.post("/api/profile", json=PROFILE),
                    client.post("/api/questions/q-1/like"),
                ]
        finally:
            dependencies.reset_clients()
        for response in responses:
            self.assertEqual(response.status_code, 500)
            payload = response.json()
            self.assertFalse(payload["success"])
            self.assertEqual(payload["error"], "adapter_error")

    # Questions and likes

    def test_create_question(self):
        response = self.client.post(
            "/api/questions",
            json={"user_id": "recU1", "question": "Weekend plans?", "mediaType": "image"},
        )
        self.assertEqual(response.status_code, 200)
        fields = response.json()["question"]["fields"]
        self.assertEqual(fields["questions"], "Weekend plans?")
        self.assertEqual(fields["like_count"], 0)
        self.assertEqual(fields["comment_count"], 0)
        self.assertIn("Timestamp", fields)
        self.assertNotIn("file_url", fields)

    def test_like_increments_and_embeds_author(self):
        self._seed_question(like_count=2)
        response = self.client.post("/api/questions/q-1/like")
        self.assertEqual(response.status_code, 200)
        record = response.json()["record"]
        self.assertEqual(record["like_count"], 3)
        self.assertEqual(
            record["user"], {"id": "user-1", "first_name": "John", "last_name": "Smith"}
        )

    def test_like_with_atomic_flag(self):
        self._seed_question()
        self.settings.atomic_like_increment = True
        response = self.client.post("/api/questions/q-1/like")
        self.assertEqual(response.json()["record"]["like_count"], 1)

    def test_like_unknown_question_is_500(self):
        response = self.client.post("/api/questions/missing/like")
        self.assertEqual(response.status_code, 500)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["error"], "not_found")
        self.assertTrue(payload["message"])
        self.assertEqual(self.db.tables[QUESTIONS_TABLE], {})

    # Memories and users

    def test_memories_drop_incomplete_records(self):
        response = self.client.get("/api/memories")
        self.assertEqual([r["id"] for r in response.json()["records"]], ["recM1"])

    def test_create_memory_requires_fields(self):
        response = self.client.post("/api/memories", json={"title": "Only a title"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Missing required fields")

    def test_create_memory(self):
        response = self.client.post(
            "/api/memories", json={"title": "Picnic", "content": "Park", "user_id": "u1"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["record"]["fields"]["title"], "Picnic")

    def test_user_lookup_by_email(self):
        response = self.client.get("/api/users/john@family.com")
        self.assertEqual(response.status_code, 200)
        user = response.json()["user"]
        self.assertEqual(user["first_name"], "John")
        self.assertEqual(user["email"], "john@family.com")

    def test_user_lookup_missing_is_404(self):
        response = self.client.get("/api/users/nobody@family.com")
        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.json()["success"])

    # Profiles

    def test_create_profile_persists_every_field(self):
        mixed_case = {**PROFILE, "id": "5d2e8f40", "email": "James@Family.COM"}
        for profile in (PROFILE, mixed_case):
            response = self.client.post("/api/profile", json=profile)
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.json(), {"success": True})

            stored = self.db.fetch_single(USERS_TABLE, {"id": profile["id"]})
            for key, value in profile.items():
                self.assertEqual(stored[key], value)

    def test_create_profile_invalid_email_is_400(self):
        response = self.client.post("/api/profile", json={**PROFILE, "email": "not-an-address"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "validation_error")
        self.assertEqual(self.db.tables[USERS_TABLE], {})

    def test_create_profile_missing_field_is_400(self):
        body = {k: v for k, v in PROFILE.items() if k != "email"}
        response = self.client.post("/api/profile", json=body)
        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["error"], "validation_error")

    def test_create_profile_duplicate_is_500(self):
        self.client.post("/api/profile", json=PROFILE)
        response = self.client.post("/api/profile", json=PROFILE)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["details"]["code"], "23505")

    # Uploads

    def test_upload_writes_timestamped_file(self):
        response = self.client.post(
            "/api/upload",
            files={"file": ("photo.png", b"\x89PNG", "image/png")},
            data={"folderPath": "albums/2024"},
        )
        self.assertEqual(response.status_code, 200)
        url = response.json()["url"]
        self.assertRegex(url, r"^/uploads/albums/2024/\d{13}\.png$")
        path = os.path.join(self.public_root, *url.lstrip("/").split("/"))
        self.assertTrue(os.path.exists(path))

    def test_upload_without_file_is_400(self):
        response = self.client.post("/api/upload", data={"folderPath": "albums"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "No file provided")

    def test_upload_without_folder_is_400(self):
        response = self.client.post(
            "/api/upload", files={"file": ("photo.png", b"x", "image/png")}
        )
        self.assertEqual(response.status_code, 400)

    # Diagnostics

    def test_env_check(self):
        response = self.client.get("/api/env-check")
        self.assertEqual(
            response.json(),
            {"hasSupabaseUrl": True, "hasSupabaseKey": False, "hasServiceRoleKey": True},
        )


if __name__ == "__main__":
    unittest.main()
