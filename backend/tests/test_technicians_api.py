"""
API Integration Tests — Technicians and their restocks.
"""

import pytest
from httpx import AsyncClient


async def _stock(client: AsyncClient, product_id: str) -> int:
    resp = await client.get(f"/api/v1/products/{product_id}")
    return resp.json()["stock_current"]


@pytest.mark.asyncio
class TestTechnicianCrud:
    async def test_list(self, client: AsyncClient, seeded_db):
        resp = await client.get("/api/v1/technicians/")
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 1
        assert data[0]["last_name"] == "Martin"
        assert data[0]["inventory_count"] == 0
        assert data[0]["last_restock_at"] is None

    async def test_create_lowercases_email(self, client: AsyncClient, seeded_db):
        resp = await client.post(
            "/api/v1/technicians/",
            json={"first_name": "Paul", "last_name": "Durand", "email": "Paul.Durand@Peintures-Test.fr"},
        )
        assert resp.status_code == 201
        assert resp.json()["email"] == "paul.durand@peintures-test.fr"

    async def test_duplicate_email(self, client: AsyncClient, seeded_db):
        resp = await client.post(
            "/api/v1/technicians/",
            json={"first_name": "Julie", "last_name": "Bis", "email": "julie.martin@peintures-test.fr"},
        )
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Un technicien avec cet email existe déjà"

    async def test_update_to_taken_email(self, client: AsyncClient, seeded_db):
        created = await client.post(
            "/api/v1/technicians/",
            json={"first_name": "Paul", "last_name": "Durand", "email": "paul@peintures-test.fr"},
        )
        technician_id = created.json()["technician_id"]
        resp = await client.patch(
            f"/api/v1/technicians/{technician_id}",
            json={"email": "JULIE.MARTIN@peintures-test.fr"},
        )
        assert resp.status_code == 409

    async def test_update(self, client: AsyncClient, seeded_db):
        technician_id = str(seeded_db["technician"].technician_id)
        resp = await client.patch(f"/api/v1/technicians/{technician_id}", json={"city": "Villeurbanne"})
        assert resp.status_code == 200
        assert resp.json()["city"] == "Villeurbanne"

    async def test_null_names_are_ignored_and_city_cleared(self, client: AsyncClient, seeded_db):
        technician_id = str(seeded_db["technician"].technician_id)
        resp = await client.patch(
            f"/api/v1/technicians/{technician_id}",
            json={"first_name": None, "last_name": None, "city": None},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert (data["first_name"], data["last_name"]) == ("Julie", "Martin")
        assert data["city"] is None

    async def test_archive_hides_from_list(self, client: AsyncClient, seeded_db):
        technician_id = str(seeded_db["technician"].technician_id)
        resp = await client.post(f"/api/v1/technicians/{technician_id}/archive")
        assert resp.json()["archived_at"] is not None

        assert (await client.get("/api/v1/technicians/")).json() == []
        archived = (await client.get("/api/v1/technicians/", params={"include_archived": True})).json()
        assert len(archived) == 1

        resp = await client.post(f"/api/v1/technicians/{technician_id}/unarchive")
        assert resp.json()["archived_at"] is None

    async def test_delete(self, client: AsyncClient, seeded_db):
        technician_id = str(seeded_db["technician"].technician_id)
        assert (await client.delete(f"/api/v1/technicians/{technician_id}")).status_code == 204
        resp = await client.get(f"/api/v1/technicians/{technician_id}")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Technicien non trouvé"


@pytest.mark.asyncio
class TestRestock:
    async def test_restock_replaces_inventory(self, client: AsyncClient, seeded_db):
        technician_id = str(seeded_db["technician"].technician_id)
        blanc = str(seeded_db["products"]["blanc"].product_id)
        facade = str(seeded_db["products"]["facade"].product_id)
        diluant = str(seeded_db["products"]["diluant"].product_id)

        first = await client.post(
            f"/api/v1/technicians/{technician_id}/restock",
            json={"items": [{"product_id": blanc, "quantity": 10}, {"product_id": facade, "quantity": 2}]},
        )
        assert first.status_code == 200
        assert first.json() == {"success": True, "items_count": 2, "previous_items_count": 0}
        assert await _stock(client, blanc) == 30
        assert await _stock(client, facade) == 3

        detail = (await client.get(f"/api/v1/technicians/{technician_id}")).json()
        assert detail["inventory_count"] == 12
        assert detail["last_restock_at"] is not None

        second = await client.post(
            f"/api/v1/technicians/{technician_id}/restock",
            json={"items": [{"product_id": diluant, "quantity": 5}]},
        )
        assert second.json() == {"success": True, "items_count": 1, "previous_items_count": 2}

        detail = (await client.get(f"/api/v1/technicians/{technician_id}")).json()
        assert [(line["product_name"], line["quantity"]) for line in detail["inventory"]] == [("Diluant 1L", 5)]

        history = (await client.get(f"/api/v1/technicians/{technician_id}/history")).json()
        assert len(history) == 2
        totals = sorted(h["snapshot"]["total_items"] for h in history)
        assert totals == [0, 12]
        full = next(h for h in history if h["snapshot"]["total_items"] == 12)
        assert {item["product_sku"] for item in full["snapshot"]["items"]} == {"BLAN-000001", "FACA-000002"}

        movements = (await client.get(f"/api/v1/technicians/{technician_id}/movements")).json()
        assert len(movements) == 3
        assert all(m["movement_type"] == "exit_technician" for m in movements)

    async def test_duplicate_lines_are_merged(self, client: AsyncClient, seeded_db):
        technician_id = str(seeded_db["technician"].technician_id)
        blanc = str(seeded_db["products"]["blanc"].product_id)
        resp = await client.post(
            f"/api/v1/technicians/{technician_id}/restock",
            json={"items": [{"product_id": blanc, "quantity": 4}, {"product_id": blanc, "quantity": 6}]},
        )
        assert resp.json()["items_count"] == 1
        assert await _stock(client, blanc) == 30

    async def test_insufficient_stock_rolls_back_everything(self, client: AsyncClient, seeded_db):
        technician_id = str(seeded_db["technician"].technician_id)
        blanc = str(seeded_db["products"]["blanc"].product_id)
        rouleau = str(seeded_db["products"]["rouleau"].product_id)

        resp = await client.post(
            f"/api/v1/technicians/{technician_id}/restock",
            json={"items": [{"product_id": blanc, "quantity": 5}, {"product_id": rouleau, "quantity": 1}]},
        )
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Stock insuffisant pour un ou plusieurs produits"

        assert await _stock(client, blanc) == 40
        assert (await client.get(f"/api/v1/technicians/{technician_id}/history")).json() == []

    async def test_add_to_inventory_keeps_existing_lines(self, client: AsyncClient, seeded_db):
        technician_id = str(seeded_db["technician"].technician_id)
        blanc = str(seeded_db["products"]["blanc"].product_id)
        diluant = str(seeded_db["products"]["diluant"].product_id)

        await client.post(
            f"/api/v1/technicians/{technician_id}/inventory",
            json={"items": [{"product_id": blanc, "quantity": 5}]},
        )
        resp = await client.post(
            f"/api/v1/technicians/{technician_id}/inventory",
            json={"items": [{"product_id": blanc, "quantity": 5}, {"product_id": diluant, "quantity": 2}]},
        )
        assert resp.json() == {"success": True, "items_count": 2, "previous_items_count": 1}

        detail = (await client.get(f"/api/v1/technicians/{technician_id}")).json()
        assert [(line["product_name"], line["quantity"]) for line in detail["inventory"]] == [
            ("Blanc mat 10L", 10),
            ("Diluant 1L", 2),
        ]
        assert await _stock(client, blanc) == 30

    async def test_validation(self, client: AsyncClient, seeded_db):
        technician_id = str(seeded_db["technician"].technician_id)
        blanc = str(seeded_db["products"]["blanc"].product_id)

        empty = await client.post(f"/api/v1/technicians/{technician_id}/restock", json={"items": []})
        assert empty.status_code == 422
        zero = await client.post(
            f"/api/v1/technicians/{technician_id}/restock",
            json={"items": [{"product_id": blanc, "quantity": 0}]},
        )
        assert zero.status_code == 422

    async def test_unknown_technician(self, client: AsyncClient, seeded_db):
        blanc = str(seeded_db["products"]["blanc"].product_id)
        resp = await client.post(
            "/api/v1/technicians/00000000-0000-0000-0000-000000000099/restock",
            json={"items": [{"product_id": blanc, "quantity": 1}]},
        )
        assert resp.status_code == 404

    async def test_stats(self, client: AsyncClient, seeded_db):
        technician_id = str(seeded_db["technician"].technician_id)
        blanc = str(seeded_db["products"]["blanc"].product_id)

        before = (await client.get("/api/v1/technicians/stats")).json()
        assert before == {"total_technicians": 1, "empty_inventory": 1, "total_items": 0, "recent_restocks": 0}

        await client.post(
            f"/api/v1/technicians/{technician_id}/restock",
            json={"items": [{"product_id": blanc, "quantity": 7}]},
        )
        after = (await client.get("/api/v1/technicians/stats")).json()
        assert after == {"total_technicians": 1, "empty_inventory": 0, "total_items": 7, "recent_restocks": 1}
