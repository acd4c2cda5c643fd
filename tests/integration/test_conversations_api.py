"""Integration tests for /api/v1/conversations."""

from fastapi.testclient import TestClient

from tests.fakes import FlakyRecordStore


def start_conversation(client: TestClient, headers: dict[str, str]) -> str:
    response = client.post("/api/v1/conversations", headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["id"]


class TestConversations:
    """Conversation endpoints."""

    def test_create_returns_empty_conversation(
        self, client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        response = client.post("/api/v1/conversations", headers=auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["message_count"] == 0
        assert data["created_at"] == data["updated_at"]

    def test_requires_auth(self, client: TestClient) -> None:
        assert client.post("/api/v1/conversations").status_code == 401

    def test_get_unknown_is_404(self, client: TestClient, auth_headers: dict[str, str]) -> None:
        response = client.get("/api/v1/conversations/nope", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_list(self, client: TestClient, auth_headers: dict[str, str]) -> None:
        ids = [start_conversation(client, auth_headers) for _ in range(3)]

        data = client.get("/api/v1/conversations?limit=2", headers=auth_headers).json()

        assert data["total"] == 3
        assert len(data["conversations"]) == 2
        assert {c["id"] for c in data["conversations"]} <= set(ids)


class TestMessages:
    """Message endpoints."""

    def test_append_and_list_in_order(self, client: TestClient, auth_headers: dict[str, str]) -> None:
        conversation_id = start_conversation(client, auth_headers)

        for role, content in [("user", "hi"), ("assistant", "hello"), ("user", "bye")]:
            response = client.post(
                f"/api/v1/conversations/{conversation_id}/messages",
                json={"role": role, "content": content},
                headers=auth_headers,
            )
            assert response.status_code == 201

        messages = client.get(
            f"/api/v1/conversations/{conversation_id}/messages", headers=auth_headers
        ).json()
        conversation = client.get(
            f"/api/v1/conversations/{conversation_id}", headers=auth_headers
        ).json()

        assert messages["total"] == 3
        assert [m["content"] for m in messages["messages"]] == ["hi", "hello", "bye"]
        assert conversation["message_count"] == 3

    def test_retry_with_same_id_is_idempotent(
        self, client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        conversation_id = start_conversation(client, auth_headers)
        body = {"id": "client-msg-1", "role": "user", "content": "hi"}

        first = client.post(
            f"/api/v1/conversations/{conversation_id}/messages", json=body, headers=auth_headers
        )
        second = client.post(
            f"/api/v1/conversations/{conversation_id}/messages", json=body, headers=auth_headers
        )

        assert first.json()["id"] == second.json()["id"] == "client-msg-1"
        conversation = client.get(
            f"/api/v1/conversations/{conversation_id}", headers=auth_headers
        ).json()
        assert conversation["message_count"] == 1

    def test_id_reused_across_conversations_is_400(
        self, client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        first = start_conversation(client, auth_headers)
        second = start_conversation(client, auth_headers)
        client.post(
            f"/api/v1/conversations/{first}/messages",
            json={"id": "m-1", "role": "user", "content": "only for the first"},
            headers=auth_headers,
        )

        response = client.post(
            f"/api/v1/conversations/{second}/messages",
            json={"id": "m-1", "role": "user", "content": "hello"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        assert "only for the first" not in response.text
        conversation = client.get(f"/api/v1/conversations/{second}", headers=auth_headers).json()
        assert conversation["message_count"] == 0

    def test_id_longer_than_column_is_400(
        self, client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        conversation_id = start_conversation(client, auth_headers)

        response = client.post(
            f"/api/v1/conversations/{conversation_id}/messages",
            json={"id": "x" * 37, "role": "user", "content": "hi"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_invalid_role_is_400(self, client: TestClient, auth_headers: dict[str, str]) -> None:
        conversation_id = start_conversation(client, auth_headers)

        response = client.post(
            f"/api/v1/conversations/{conversation_id}/messages",
            json={"role": "system", "content": "hi"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_blank_content_is_400(self, client: TestClient, auth_headers: dict[str, str]) -> None:
        conversation_id = start_conversation(client, auth_headers)

        response = client.post(
            f"/api/v1/conversations/{conversation_id}/messages",
            json={"role": "user", "content": "   "},
            headers=auth_headers,
        )

        assert response.status_code == 400

    def test_append_to_unknown_conversation_is_404(
        self, client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        response = client.post(
            "/api/v1/conversations/nope/messages",
            json={"role": "user", "content": "hi"},
            headers=auth_headers,
        )

        assert response.status_code == 404

    def test_list_messages_of_unknown_conversation_is_404(
        self, client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        response = client.get("/api/v1/conversations/nope/messages", headers=auth_headers)

        assert response.status_code == 404

    def test_store_failure_is_500_persistence_error(
        self, client: TestClient, auth_headers: dict[str, str], records: FlakyRecordStore
    ) -> None:
        conversation_id = start_conversation(client, auth_headers)
        records.fail_append_roles = {"user"}

        response = client.post(
            f"/api/v1/conversations/{conversation_id}/messages",
            json={"role": "user", "content": "hi"},
            headers=auth_headers,
        )

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "PERSISTENCE_ERROR"
