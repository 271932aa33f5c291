from leadview.routers import contacts as contacts_router


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "active"
    assert response.json()["contact_fields"] > 0
    assert set(response.json()["snapshot_cache"]) == {"hits", "misses"}

def test_contact_fields(client):
    response = client.get("/api/v1/contacts/fields")
    assert response.status_code == 200
    fields = {field["key"]: field for field in response.json()}
    assert fields["stage"]["type"] == "select"
    assert fields["last_activity"]["type"] == "date-bucket"
    assert fields["epv"]["sort_kind"] == "number"
    assert {"name": "is_empty", "description": "Is empty"} in fields["company"]["operators"]

def test_query_contacts(client, contacts_file):
    response = client.post(
        "/api/v1/contacts/query",
        json={
            "file_path": contacts_file,
            "filters": [
                {"id": "f1", "field": "company", "operator": "contains", "value": "inc"},
                {"id": "f2", "field": "company", "operator": "contains", "value": "llc", "conjunction": "or"},
            ],
            "sorts": [{"fieldKey": "epv", "direction": "asc"}],
            "page": 1,
            "page_size": 1,
        }
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total_count"] == 2
    assert data["total_pages"] == 2
    assert [item["id"] for item in data["items"]] == [2]
    assert data["unmatched_fields"] == []

def test_query_contacts_with_groups_and_search(client, contacts_file):
    response = client.post(
        "/api/v1/contacts/query",
        json={
            "file_path": contacts_file,
            "text_query": "a",
            "groups": [{"id": "g"}],
            "filters": [
                {"id": "f1", "field": "stage", "operator": "is", "value": "new", "groupId": "g"},
                {"id": "f2", "field": "stage", "operator": "is", "value": "engaged", "groupId": "g"},
            ],
        }
    )
    assert response.status_code == 200
    assert [item["id"] for item in response.json()["items"]] == [1, 3]

def test_query_reports_unknown_fields(client, contacts_file):
    response = client.post(
        "/api/v1/contacts/query",
        json={
            "file_path": contacts_file,
            "filters": [{"id": "f1", "field": "nickname", "operator": "contains", "value": "x"}],
        }
    )
    assert response.status_code == 200
    assert response.json()["total_count"] == 0
    assert response.json()["unmatched_fields"] == ["nickname"]

def test_query_missing_file(client, tmp_path):
    response = client.post(
        "/api/v1/contacts/query",
        json={"file_path": str(tmp_path / "missing.jsonl")}
    )
    assert response.status_code == 400
    assert "File not found" in response.json()["detail"]

def test_query_rejects_out_of_range_page_size(client, contacts_file):
    response = client.post(
        "/api/v1/contacts/query",
        json={"file_path": contacts_file, "page_size": 0}
    )
    assert response.status_code == 422

def test_refresh_reloads_snapshot(client, contacts_file):
    first = client.post("/api/v1/contacts/query", json={"file_path": contacts_file})
    assert first.json()["total_count"] == 3

    response = client.post("/api/v1/contacts/refresh", json={"file_path": contacts_file})
    assert response.status_code == 200
    assert response.json() == {"invalidated": 1}
    assert contacts_router.snapshot_service.invalidate(contacts_file) == 0

def test_query_rejects_and_groups(client, contacts_file):
    response = client.post(
        "/api/v1/contacts/query",
        json={"file_path": contacts_file, "groups": [{"id": "g", "combinator": "and"}]}
    )
    assert response.status_code == 422
