from uuid import uuid4


class TestOrganizationsRouter:
    def test_create_and_get(self, client):
        response = client.post("/organizations/", json={
            "name": "Kaveri Foods", "gstin": "27aapfu0939f1zv", "state": "Maharashtra"
        })
        assert response.status_code == 201
        org = response.json()
        assert org["gstin"] == "27AAPFU0939F1ZV"

        fetched = client.get(f"/organizations/{org['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["state"] == "Maharashtra"

    def test_duplicate_gstin_rejected(self, client):
        payload = {"name": "A", "gstin": "27AAPFU0939F1ZV"}
        assert client.post("/organizations/", json=payload).status_code == 201
        assert client.post("/organizations/", json={**payload, "name": "B"}).status_code == 400

    def test_unknown_organization(self, client):
        assert client.get(f"/organizations/{uuid4()}").status_code == 404
