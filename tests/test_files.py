import unittest
import uuid
from pathlib import Path

from fileshelf.core.config import settings
from tests.base import FileShelfTestCase


class UploadTests(FileShelfTestCase):
    def setUp(self):
        super().setUp()
        self.body = self.register()
        self.headers = self.auth_headers(self.body["token"])

    def test_upload_updates_ledger_and_listing(self):
        payload = b"x" * 1024
        response = self.upload(self.headers, content=payload)

        self.assertEqual(response.status_code, 201, response.text)
        file_info = response.json()["file"]
        self.assertEqual(file_info["name"], "notes.txt")
        self.assertEqual(file_info["size"], 1024)
        self.assertEqual(file_info["url"], f"/api/files/download/{file_info['id']}")

        listing = self.client.get("/api/files", headers=self.headers).json()
        self.assertEqual(listing["count"], 1)
        self.assertEqual(listing["stats"]["storageUsed"], 1024)
        self.assertEqual(listing["stats"]["totalFiles"], 1)
        self.assertEqual(listing["files"][0]["formattedSize"], "1 KB")

    def test_payload_is_stored_under_owner_directory(self):
        file_id = self.uploaded_id(self.headers, name="report.pdf", content=b"%PDF-1.4", mime="application/pdf")

        owner_dir = Path(settings.upload_root) / self.body["user"]["id"]
        stored = list(owner_dir.iterdir())
        self.assertEqual(len(stored), 1)
        self.assertEqual(stored[0].suffix, ".pdf")
        uuid.UUID(stored[0].stem)

        detail = self.client.get(f"/api/files/{file_id}", headers=self.headers).json()["file"]
        self.assertEqual(detail["filename"], stored[0].name)

    def test_user_supplied_path_is_not_used_for_storage(self):
        self.uploaded_id(self.headers, name="../../escape.txt")

        owner_dir = Path(settings.upload_root) / self.body["user"]["id"]
        self.assertEqual(len(list(owner_dir.iterdir())), 1)
        self.assertFalse((Path(settings.upload_root).parent / "escape.txt").exists())

    def test_disallowed_type_is_rejected_without_side_effects(self):
        response = self.upload(self.headers, name="archive.zip", content=b"PK", mime="application/zip")

        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()["success"])
        listing = self.client.get("/api/files", headers=self.headers).json()
        self.assertEqual(listing["total"], 0)
        self.assertEqual(self.stats(self.headers)["storageUsed"], 0)
        owner_dir = Path(settings.upload_root) / self.body["user"]["id"]
        self.assertFalse(owner_dir.exists() and any(owner_dir.iterdir()))

    def test_oversized_payload_is_rejected(self):
        content = b"x" * (settings.max_upload_size + 1)

        response = self.upload(self.headers, content=content)

        self.assertEqual(response.status_code, 413)
        self.assertEqual(self.stats(self.headers)["totalFiles"], 0)

    def test_batch_upload_adjusts_ledger_once_for_all_files(self):
        response = self.client.post(
            "/api/files/upload-multiple",
            headers=self.headers,
            files=[
                ("files", ("a.txt", b"a" * 10, "text/plain")),
                ("files", ("b.png", b"b" * 20, "image/png")),
            ],
        )

        self.assertEqual(response.status_code, 201, response.text)
        body = response.json()
        self.assertEqual(len(body["files"]), 2)
        self.assertEqual(body["totalSize"], 30)
        stats = self.stats(self.headers)
        self.assertEqual(stats["totalFiles"], 2)
        self.assertEqual(stats["storageUsed"], 30)

    def test_batch_with_one_bad_type_stores_nothing(self):
        response = self.client.post(
            "/api/files/upload-multiple",
            headers=self.headers,
            files=[
                ("files", ("a.txt", b"a" * 10, "text/plain")),
                ("files", ("b.exe", b"MZ", "application/x-msdownload")),
            ],
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.stats(self.headers)["totalFiles"], 0)
        owner_dir = Path(settings.upload_root) / self.body["user"]["id"]
        self.assertFalse(owner_dir.exists() and any(owner_dir.iterdir()))

    def test_upload_requires_authentication(self):
        response = self.client.post("/api/files/upload", files={"file": ("a.txt", b"a", "text/plain")})
        self.assertEqual(response.status_code, 401)


class RegistryQueryTests(FileShelfTestCase):
    def setUp(self):
        super().setUp()
        self.headers = self.auth_headers(self.register()["token"])

    def test_search_matches_name_description_and_tags(self):
        first = self.uploaded_id(self.headers, name="Quarterly.txt")
        second = self.uploaded_id(self.headers, name="other.txt")
        third = self.uploaded_id(self.headers, name="third.txt")
        self.client.put(f"/api/files/{second}", headers=self.headers, json={"description": "QUARTERLY numbers"})
        self.client.put(f"/api/files/{third}", headers=self.headers, json={"tags": "finance, quarterly"})
        self.uploaded_id(self.headers, name="unrelated.txt")

        listing = self.client.get("/api/files", headers=self.headers, params={"search": "quarterly"}).json()

        self.assertEqual(listing["total"], 3)
        self.assertEqual({item["id"] for item in listing["files"]}, {first, second, third})

    def test_search_matches_tag_values_not_their_encoding(self):
        tagged = self.uploaded_id(self.headers, name="menu.txt")
        self.uploaded_id(self.headers, name="plain.txt")
        self.client.put(f"/api/files/{tagged}", headers=self.headers, json={"tags": "café, x"})

        def total(term):
            return self.client.get("/api/files", headers=self.headers, params={"search": term}).json()["total"]

        self.assertEqual(total("["), 0)
        self.assertEqual(total('"'), 0)
        self.assertEqual(total("café"), 1)
        self.assertEqual(total("CAFÉ"), 1)

    def test_pagination_and_sorting(self):
        for size in (30, 10, 20):
            self.uploaded_id(self.headers, name=f"f{size}.txt", content=b"x" * size)

        page_one = self.client.get(
            "/api/files", headers=self.headers, params={"sort": "size", "limit": 2, "page": 1}
        ).json()
        page_two = self.client.get(
            "/api/files", headers=self.headers, params={"sort": "size", "limit": 2, "page": 2}
        ).json()

        self.assertEqual([item["size"] for item in page_one["files"]], [10, 20])
        self.assertEqual([item["size"] for item in page_two["files"]], [30])
        self.assertEqual(page_one["pages"], 2)
        self.assertEqual(page_two["currentPage"], 2)

        descending = self.client.get("/api/files", headers=self.headers, params={"sort": "-fileSize"}).json()
        self.assertEqual([item["size"] for item in descending["files"]], [30, 20, 10])

    def test_unknown_sort_field_is_a_validation_error(self):
        response = self.client.get("/api/files", headers=self.headers, params={"sort": "filePath"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"][0]["field"], "sort")

    def test_update_normalises_tags(self):
        file_id = self.uploaded_id(self.headers)

        response = self.client.put(
            f"/api/files/{file_id}",
            headers=self.headers,
            json={"description": "meeting notes", "tags": " work ,, notes ,todo ", "isPublic": True},
        )

        self.assertEqual(response.status_code, 200, response.text)
        detail = response.json()["file"]
        self.assertEqual(detail["tags"], ["work", "notes", "todo"])
        self.assertEqual(detail["description"], "meeting notes")
        self.assertTrue(detail["isPublic"])

    def test_stats_breakdown(self):
        self.uploaded_id(self.headers, name="a.txt", content=b"a" * 5)
        self.uploaded_id(self.headers, name="b.txt", content=b"b" * 7)
        self.uploaded_id(self.headers, name="c.png", content=b"c" * 100, mime="image/png")

        body = self.client.get("/api/files/stats", headers=self.headers).json()

        self.assertEqual(body["stats"]["totalFiles"], 3)
        self.assertEqual(body["stats"]["storageUsed"], 112)
        self.assertEqual(body["stats"]["formattedStorageUsed"], "112 Bytes")
        self.assertEqual(body["fileTypes"][0], {"type": "text/plain", "count": 2, "totalSize": 12})
        self.assertEqual(len(body["recentFiles"]), 3)


class DownloadTests(FileShelfTestCase):
    def setUp(self):
        super().setUp()
        self.body = self.register()
        self.headers = self.auth_headers(self.body["token"])

    def test_round_trip_and_download_counter(self):
        payload = b"%PDF-1.4 binary \x00\x01\x02"
        file_id = self.uploaded_id(self.headers, name="doc.pdf", content=payload, mime="application/pdf")

        for expected_count in (1, 2):
            response = self.client.get(f"/api/files/download/{file_id}", headers=self.headers)
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.content, payload)
            self.assertEqual(response.headers["content-type"], "application/pdf")
            self.assertEqual(response.headers["content-length"], str(len(payload)))
            self.assertTrue(response.headers["content-disposition"].startswith("attachment;"))
            detail = self.client.get(f"/api/files/{file_id}", headers=self.headers).json()["file"]
            self.assertEqual(detail["downloadCount"], expected_count)

    def test_missing_payload_is_not_found(self):
        body = self.upload(self.headers).json()
        file_id = body["file"]["id"]
        detail = self.client.get(f"/api/files/{file_id}", headers=self.headers).json()["file"]
        owner_dir = Path(settings.upload_root) / self.body["user"]["id"]
        (owner_dir / detail["filename"]).unlink()

        response = self.client.get(f"/api/files/download/{file_id}", headers=self.headers)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["message"], "File not found on server")
        # the catalog entry is left alone
        self.assertEqual(self.client.get(f"/api/files/{file_id}", headers=self.headers).status_code, 200)


class OwnershipIsolationTests(FileShelfTestCase):
    def test_foreign_files_look_absent(self):
        alice = self.auth_headers(self.register()["token"])
        bob = self.auth_headers(self.register(email="bob@example.com", name="Bob")["token"])
        file_id = self.uploaded_id(alice)

        self.assertEqual(self.client.get(f"/api/files/{file_id}", headers=bob).status_code, 404)
        self.assertEqual(self.client.get(f"/api/files/download/{file_id}", headers=bob).status_code, 404)
        self.assertEqual(
            self.client.put(f"/api/files/{file_id}", headers=bob, json={"description": "mine"}).status_code,
            404,
        )
        self.assertEqual(self.client.delete(f"/api/files/{file_id}", headers=bob).status_code, 404)
        self.assertEqual(self.client.get("/api/files", headers=bob).json()["total"], 0)
        self.assertEqual(self.stats(alice)["totalFiles"], 1)


if __name__ == "__main__":
    unittest.main()
