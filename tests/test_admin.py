import asyncio
import unittest
import uuid
from pathlib import Path

from sqlalchemy import update

from fileshelf.core.config import settings
from fileshelf.db.session import async_session_factory
from fileshelf.models.file import FileRecord
from fileshelf.models.user import User
from fileshelf.services import files as file_service
from fileshelf.services import ledger
from tests.base import FileShelfTestCase, run_with_session


class AdminAccessTests(FileShelfTestCase):
    def test_regular_users_are_forbidden(self):
        headers = self.auth_headers(self.register()["token"])

        for method, path in (
            ("get", "/api/admin/users"),
            ("get", "/api/admin/files"),
            ("get", "/api/admin/stats"),
            ("post", "/api/admin/reconcile"),
        ):
            response = getattr(self.client, method)(path, headers=headers)
            self.assertEqual(response.status_code, 403, path)
            self.assertEqual(response.json()["message"], "Not authorized as an admin")

    def test_anonymous_requests_are_unauthorized(self):
        self.assertEqual(self.client.get("/api/admin/users").status_code, 401)

    def test_legacy_mount_point(self):
        response = self.client.get("/api/users/stats", headers=self.admin_headers())
        self.assertEqual(response.status_code, 200, response.text)


class AdminUserManagementTests(FileShelfTestCase):
    def setUp(self):
        super().setUp()
        self.alice = self.register()
        self.bob = self.register(email="bob@example.com", name="Bob")
        self.admin = self.admin_headers()

    def test_list_and_filter_users(self):
        everyone = self.client.get("/api/admin/users", headers=self.admin).json()
        self.assertEqual(everyone["total"], 3)

        admins = self.client.get("/api/admin/users", headers=self.admin, params={"role": "admin"}).json()
        self.assertEqual([user["email"] for user in admins["users"]], ["admin@example.com"])

        found = self.client.get("/api/admin/users", headers=self.admin, params={"search": "BOB"}).json()
        self.assertEqual(found["total"], 1)
        self.assertEqual(found["users"][0]["id"], self.bob["user"]["id"])

    def test_deactivated_user_cannot_log_in(self):
        response = self.client.put(
            f"/api/admin/users/{self.alice['user']['id']}",
            headers=self.admin,
            json={"isActive": False},
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertFalse(response.json()["user"]["isActive"])

        login = self.client.post("/api/auth/login", json={"email": "alice@example.com", "password": "secret1"})
        self.assertEqual(login.status_code, 401)
        self.assertEqual(login.json()["message"], "Account is deactivated")

        stale = self.client.get("/api/auth/me", headers=self.auth_headers(self.alice["token"]))
        self.assertEqual(stale.status_code, 403)

    def test_storage_limit_is_enforced_on_upload(self):
        self.client.put(
            f"/api/admin/users/{self.alice['user']['id']}",
            headers=self.admin,
            json={"storageLimit": 100},
        )
        headers = self.auth_headers(self.alice["token"])

        self.assertEqual(self.upload(headers, content=b"x" * 60).status_code, 201)
        rejected = self.upload(headers, content=b"x" * 60)

        self.assertEqual(rejected.status_code, 403)
        self.assertEqual(rejected.json()["message"], "Storage limit exceeded")
        self.assertEqual(self.stats(headers)["storageUsed"], 60)
        owner_dir = Path(settings.upload_root) / self.alice["user"]["id"]
        self.assertEqual(len(list(owner_dir.iterdir())), 1)

    def test_admin_cannot_lock_themselves_out(self):
        me = self.client.get("/api/auth/me", headers=self.admin).json()["user"]

        deactivate = self.client.put(f"/api/admin/users/{me['id']}", headers=self.admin, json={"isActive": False})
        demote = self.client.put(f"/api/admin/users/{me['id']}", headers=self.admin, json={"role": "user"})
        remove = self.client.delete(f"/api/admin/users/{me['id']}", headers=self.admin)

        self.assertEqual(deactivate.status_code, 400)
        self.assertEqual(demote.status_code, 400)
        self.assertEqual(remove.status_code, 400)

    def test_delete_user_removes_their_files(self):
        headers = self.auth_headers(self.alice["token"])
        self.uploaded_id(headers)
        self.uploaded_id(headers, name="second.txt")
        owner_dir = Path(settings.upload_root) / self.alice["user"]["id"]
        self.assertTrue(owner_dir.exists())

        response = self.client.delete(f"/api/admin/users/{self.alice['user']['id']}", headers=self.admin)

        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["message"], "User and 2 files deleted successfully")
        self.assertFalse(owner_dir.exists())
        files = self.client.get("/api/admin/files", headers=self.admin).json()
        self.assertEqual(files["total"], 0)
        users = self.client.get("/api/admin/users", headers=self.admin).json()
        self.assertNotIn(self.alice["user"]["id"], [user["id"] for user in users["users"]])

    def test_unknown_user_is_not_found(self):
        response = self.client.delete(
            "/api/admin/users/00000000-0000-0000-0000-000000000000", headers=self.admin
        )
        self.assertEqual(response.status_code, 404)


class AdminFileManagementTests(FileShelfTestCase):
    def setUp(self):
        super().setUp()
        self.alice = self.register()
        self.headers = self.auth_headers(self.alice["token"])
        self.admin = self.admin_headers()

    def test_list_all_files_with_owner(self):
        self.uploaded_id(self.headers, content=b"x" * 40)
        bob = self.auth_headers(self.register(email="bob@example.com", name="Bob")["token"])
        self.uploaded_id(bob, name="bob.txt", content=b"x" * 2)

        listing = self.client.get("/api/admin/files", headers=self.admin).json()
        self.assertEqual(listing["total"], 2)
        self.assertEqual(listing["stats"], {"totalFiles": 2, "totalStorage": 42})

        by_owner = self.client.get("/api/admin/files", headers=self.admin, params={"search": "bob@"}).json()
        self.assertEqual(by_owner["total"], 1)
        self.assertEqual(by_owner["files"][0]["owner"]["email"], "bob@example.com")

    def test_admin_can_read_any_file(self):
        file_id = self.uploaded_id(self.headers)

        response = self.client.get(f"/api/files/{file_id}", headers=self.admin)

        self.assertEqual(response.status_code, 200)

    def test_hard_delete_active_file_releases_ledger(self):
        file_id = self.uploaded_id(self.headers, content=b"x" * 128)

        response = self.client.delete(f"/api/admin/files/{file_id}", headers=self.admin)

        self.assertEqual(response.status_code, 200, response.text)
        stats = self.stats(self.headers)
        self.assertEqual(stats["storageUsed"], 0)
        self.assertEqual(stats["totalFiles"], 0)
        owner_dir = Path(settings.upload_root) / self.alice["user"]["id"]
        self.assertEqual(list(owner_dir.iterdir()), [])
        self.assertEqual(self.client.delete(f"/api/admin/files/{file_id}", headers=self.admin).status_code, 404)

    def test_hard_delete_of_trashed_file_does_not_decrement_twice(self):
        trashed = self.uploaded_id(self.headers, content=b"x" * 128)
        self.uploaded_id(self.headers, content=b"y" * 16)
        self.client.delete(f"/api/files/{trashed}", headers=self.headers)

        response = self.client.delete(f"/api/admin/files/{trashed}", headers=self.admin)

        self.assertEqual(response.status_code, 200, response.text)
        stats = self.stats(self.headers)
        self.assertEqual(stats["storageUsed"], 16)
        self.assertEqual(stats["totalFiles"], 1)

    def test_hard_delete_after_owner_trashes_the_loaded_file(self):
        file_id = uuid.UUID(self.uploaded_id(self.headers, content=b"x" * 100))
        owner_id = uuid.UUID(self.alice["user"]["id"])

        async def _interleaved():
            async with async_session_factory() as admin_db, async_session_factory() as owner_db:
                loaded_by_admin = await admin_db.get(FileRecord, file_id)
                loaded_by_owner = await owner_db.get(FileRecord, file_id)
                await file_service.soft_delete_file(owner_db, loaded_by_owner)
                await file_service.hard_delete_file(admin_db, loaded_by_admin)
                return await ledger.read(owner_db, owner_id)

        balance = asyncio.run(_interleaved())

        self.assertEqual(balance, ledger.LedgerBalance(storage_used=0, file_count=0))
        self.assertEqual(self.client.get("/api/admin/files", headers=self.admin).json()["total"], 0)

    def test_system_stats(self):
        self.uploaded_id(self.headers, content=b"x" * 10)
        self.uploaded_id(self.headers, name="pic.png", content=b"x" * 20, mime="image/png")

        stats = self.client.get("/api/admin/stats", headers=self.admin).json()["stats"]

        self.assertEqual(stats["users"]["total"], 2)
        self.assertEqual(stats["users"]["newToday"], 2)
        self.assertEqual(stats["files"]["total"], 2)
        self.assertEqual(stats["files"]["uploadedToday"], 2)
        self.assertEqual(stats["files"]["totalStorage"], 30)
        self.assertEqual(stats["topUsers"][0]["email"], "alice@example.com")
        self.assertEqual(stats["topUsers"][0]["formattedStorage"], "30 Bytes")

    def test_reconcile_repairs_drifted_ledger(self):
        self.uploaded_id(self.headers, content=b"x" * 70)

        async def _corrupt(db):
            await db.execute(update(User).where(User.email == "alice@example.com").values(storage_used=5, file_count=9))
            await db.commit()

        run_with_session(_corrupt)

        response = self.client.post("/api/admin/reconcile", headers=self.admin)

        self.assertEqual(response.status_code, 200, response.text)
        drifts = response.json()["drifts"]
        self.assertEqual(len(drifts), 1)
        self.assertEqual(drifts[0]["recordedFileCount"], 9)
        self.assertEqual(drifts[0]["storageUsed"], 70)
        stats = self.stats(self.headers)
        self.assertEqual(stats["storageUsed"], 70)
        self.assertEqual(stats["totalFiles"], 1)

        again = self.client.post("/api/admin/reconcile", headers=self.admin).json()
        self.assertEqual(again["drifts"], [])


if __name__ == "__main__":
    unittest.main()
