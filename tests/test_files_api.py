"""Tests for the file endpoints used by the web client."""

import pytest
from fastapi.testclient import TestClient

from tests.helpers import GIB, auth_headers, create_user, set_storage_used, storage_used, stored_as


@pytest.fixture
def headers(client: TestClient, user) -> dict[str, str]:
    return auth_headers(client, user.email)


def upload(client: TestClient, headers, name: str = "report.txt", content: bytes = b"hello world", **data):
    return client.post("/files", files={"file": (name, content, "text/plain")}, data=data, headers=headers)


class TestUpload:
    def test_upload_into_folder_path(self, client: TestClient, db_session, storage, user, headers):
        response = upload(client, headers, file_path="Docs/2024")

        assert response.status_code == 201
        data = response.json()
        assert data["file_name"] == "report.txt"
        assert data["file_size"] == 11
        assert data["file_path"] == "/Docs/2024"
        assert data["folder_id"] is not None
        [key] = stored_as(storage, f"{user.id}/Docs/2024", "report.txt")
        assert storage.objects[key][0] == b"hello world"
        assert storage_used(db_session, user.id) == 11

    def test_upload_to_root(self, client: TestClient, storage, user, headers):
        data = upload(client, headers).json()
        assert data["file_path"] == "/"
        assert data["folder_id"] is None
        assert len(stored_as(storage, str(user.id), "report.txt")) == 1

    def test_file_name_override(self, client: TestClient, headers):
        data = upload(client, headers, file_name="renamed.txt").json()
        assert data["file_name"] == "renamed.txt"

    def test_over_quota_never_reaches_storage(self, client: TestClient, db_session, storage, user, headers):
        set_storage_used(db_session, user, 2 * GIB)

        response = upload(client, headers)

        assert response.status_code == 413
        assert response.json()["detail"] == "Storage quota exceeded"
        assert storage.objects == {}
        assert "upload_file" not in storage.calls

    def test_remote_failure(self, client: TestClient, db_session, storage, user, headers):
        storage.fail.add("upload_file")

        response = upload(client, headers)

        assert response.status_code == 502
        assert client.get("/files", headers=headers).json() == []
        assert storage_used(db_session, user.id) == 0

    def test_requires_auth(self, client: TestClient):
        assert upload(client, {}).status_code == 401


class TestReadAccess:
    def test_list_and_filter_by_folder(self, client: TestClient, headers):
        in_folder = upload(client, headers, name="a.txt", file_path="Docs").json()
        upload(client, headers, name="b.txt")

        assert len(client.get("/files", headers=headers).json()) == 2
        filtered = client.get("/files", params={"folder_id": in_folder["folder_id"]}, headers=headers).json()
        assert [file["file_name"] for file in filtered] == ["a.txt"]

    def test_search(self, client: TestClient, headers):
        upload(client, headers, name="Quarterly-Report.txt")
        upload(client, headers, name="notes.txt")

        results = client.get("/files/search", params={"q": "report"}, headers=headers).json()

        assert [file["file_name"] for file in results] == ["Quarterly-Report.txt"]

    def test_get_file(self, client: TestClient, headers):
        file_id = upload(client, headers).json()["id"]
        assert client.get(f"/files/{file_id}", headers=headers).json()["id"] == file_id

    def test_foreign_file_is_not_found(self, client: TestClient, db_session, headers):
        file_id = upload(client, headers).json()["id"]
        create_user(db_session, "intruder@example.com")
        intruder = auth_headers(client, "intruder@example.com")

        for response in (
            client.get(f"/files/{file_id}", headers=intruder),
            client.get(f"/files/{file_id}/download", headers=intruder),
            client.delete(f"/files/{file_id}", headers=intruder),
        ):
            assert response.status_code == 404
            assert response.json()["detail"] == "File not found"

    def test_download_streams_content(self, client: TestClient, headers):
        file_id = upload(client, headers, content=b"streamed bytes").json()["id"]

        response = client.get(f"/files/{file_id}/download", headers=headers)

        assert response.status_code == 200
        assert response.content == b"streamed bytes"
        assert "report.txt" in response.headers["content-disposition"]

    def test_download_url(self, client: TestClient, storage, user, headers):
        file_id = upload(client, headers).json()["id"]

        data = client.get(f"/files/{file_id}/url", headers=headers).json()

        [key] = stored_as(storage, str(user.id), "report.txt")
        assert data == {"url": f"https://fake/{key}?signed=1", "expires_in": 3600}


class TestMutations:
    def test_replace_adjusts_usage(self, client: TestClient, db_session, storage, user, headers):
        file_id = upload(client, headers, content=b"12345").json()["id"]

        response = client.put(f"/files/{file_id}", files={"file": ("report.txt", b"123", "text/plain")}, headers=headers)

        assert response.status_code == 200
        assert response.json()["file_size"] == 3
        assert storage_used(db_session, user.id) == 3
        assert [body for body, _ in storage.objects.values()] == [b"123"]

    def test_move(self, client: TestClient, storage, user, headers):
        file_id = upload(client, headers).json()["id"]

        response = client.patch(f"/files/{file_id}/move", json={"new_path": "Archive/2023"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["file_path"] == "/Archive/2023"
        assert len(storage.objects) == 1
        assert stored_as(storage, f"{user.id}/Archive/2023", "report.txt") == list(storage.objects)

    def test_move_requires_a_target(self, client: TestClient, headers):
        file_id = upload(client, headers).json()["id"]
        assert client.patch(f"/files/{file_id}/move", json={}, headers=headers).status_code == 422

    def test_delete(self, client: TestClient, db_session, storage, user, headers):
        file_id = upload(client, headers).json()["id"]

        assert client.delete(f"/files/{file_id}", headers=headers).status_code == 204
        assert client.get(f"/files/{file_id}", headers=headers).status_code == 404
        assert storage.objects == {}
        assert storage_used(db_session, user.id) == 0

    def test_delete_remote_failure_keeps_file(self, client: TestClient, storage, headers):
        file_id = upload(client, headers).json()["id"]
        storage.fail.add("delete_file")

        assert client.delete(f"/files/{file_id}", headers=headers).status_code == 502
        assert client.get(f"/files/{file_id}", headers=headers).status_code == 200
