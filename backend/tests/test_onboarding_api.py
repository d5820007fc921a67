"""
API Integration Tests — Onboarding wizard from a brand new account.
"""

import pytest
from httpx import AsyncClient

from db import session as db_session


async def _post(client: AsyncClient, path: str, state: dict) -> dict:
    resp = await client.post(f"/api/v1/onboarding{path}", json=state)
    assert resp.status_code == 200
    return resp.json()


async def _with_organization(client: AsyncClient) -> dict:
    state = await _post(client, "/start", {})
    state = await _post(client, "/next", state)
    state["data"]["organization"] = {"name": "Peintures Dupont", "sectors": ["peinture", "batiment"]}
    return await _post(client, "/organization", state)


@pytest.mark.asyncio
class TestNavigation:
    async def test_start(self, new_user_client: AsyncClient):
        state = await _post(new_user_client, "/start", {})
        assert state["current_step"] == 0
        assert state["step_key"] == "welcome"
        assert state["progress"] == 0

    async def test_next_prev_skip(self, new_user_client: AsyncClient):
        state = await _post(new_user_client, "/next", {"current_step": 3})
        assert state["step_key"] == "first-technician"
        state = await _post(new_user_client, "/skip", state)
        assert state["step_key"] == "stock-tutorial"
        assert state["completed_steps"] == ["first-technician"]
        state = await _post(new_user_client, "/prev", state)
        assert state["current_step"] == 4

    async def test_remove_category(self, new_user_client: AsyncClient):
        state = {"data": {"categories": [{"name": "A"}, {"name": "B"}]}}
        resp = await new_user_client.post(
            "/api/v1/onboarding/categories/remove", json={"state": state, "index": 0}
        )
        assert [c["name"] for c in resp.json()["data"]["categories"]] == ["B"]


@pytest.mark.asyncio
class TestSaveSteps:
    async def test_full_flow(self, new_user_client: AsyncClient):
        state = await _with_organization(new_user_client)
        assert state["error"] is None
        assert state["current_step"] == 2
        assert state["data"]["created_organization_id"] is not None
        assert state["completed_steps"] == ["organization"]

        organizations = (await new_user_client.get("/api/v1/organizations/")).json()
        assert organizations[0]["slug"] == "peintures-dupont"
        assert organizations[0]["role"] == "owner"

        state["data"]["categories"] = [{"name": "Intérieur"}, {"name": "Outillage"}]
        state = await _post(new_user_client, "/categories", state)
        assert state["current_step"] == 3
        category_ids = state["data"]["created_category_ids"]
        assert len(category_ids) == 2 and all(category_ids)
        assert state["data"]["categories"][0]["id"] == category_ids[0]

        state["data"]["products"] = [
            {"name": "Blanc mat 10L", "category_id": category_ids[0], "stock_initial": 20, "price": 49.9},
            {"name": "Rouleau", "category_id": category_ids[1]},
        ]
        state = await _post(new_user_client, "/products", state)
        assert state["current_step"] == 4
        assert all(state["data"]["created_product_ids"])

        products = (await new_user_client.get("/api/v1/products/")).json()
        blanc = next(p for p in products["items"] if p["name"] == "Blanc mat 10L")
        assert (blanc["stock_current"], blanc["stock_min"], blanc["stock_max"]) == (20, 5, 100)
        rouleau = next(p for p in products["items"] if p["name"] == "Rouleau")
        assert rouleau["price"] is None

        log = (await new_user_client.get("/api/v1/movements/")).json()
        assert log["total"] == 1
        assert log["items"][0]["notes"] == "Stock initial"
        assert log["items"][0]["quantity"] == 20

        state["data"]["technician"] = {"first_name": "Julie", "last_name": "Martin", "email": "", "city": "Lyon"}
        state = await _post(new_user_client, "/technician", state)
        assert state["current_step"] == 5
        assert state["data"]["created_technician_id"] is not None
        assert state["completed_steps"] == ["organization", "categories", "products", "first-technician"]

    async def test_saves_are_scoped_to_the_new_organization(self, new_user_client: AsyncClient, monkeypatch):
        state = await _with_organization(new_user_client)
        organization_id = state["data"]["created_organization_id"]

        applied = []
        monkeypatch.setattr(db_session, "_apply_tenant", lambda connection, oid: applied.append(oid))

        state["data"]["categories"] = [{"name": "Intérieur"}, {"name": "Outillage"}]
        state = await _post(new_user_client, "/categories", state)
        assert state["error"] is None
        # One scope per transaction: the running one, then after each category commit
        assert len(applied) >= 3
        assert set(applied) == {organization_id}

        applied.clear()
        state["data"]["technician"] = {"first_name": "Julie", "last_name": "Martin"}
        state = await _post(new_user_client, "/technician", state)
        assert state["error"] is None
        assert applied and set(applied) == {organization_id}

    async def test_organization_requires_name_and_sector(self, new_user_client: AsyncClient):
        state = {"current_step": 1, "data": {"organization": {"name": "Peintures", "sectors": []}}}
        state = await _post(new_user_client, "/organization", state)
        assert state["error"] == "Veuillez remplir tous les champs"
        assert state["current_step"] == 1

    async def test_categories_need_an_organization(self, new_user_client: AsyncClient):
        state = {"current_step": 2, "data": {"categories": [{"name": "Intérieur"}]}}
        state = await _post(new_user_client, "/categories", state)
        assert state["error"] == "Organisation non trouvée"

    async def test_empty_categories(self, new_user_client: AsyncClient):
        state = await _with_organization(new_user_client)
        state = await _post(new_user_client, "/categories", state)
        assert state["error"] == "Ajoutez au moins une catégorie"
        assert state["current_step"] == 2

    async def test_technician_needs_a_name(self, new_user_client: AsyncClient):
        state = await _with_organization(new_user_client)
        state["current_step"] = 4
        state["data"]["technician"] = {"first_name": " ", "last_name": "Martin"}
        state = await _post(new_user_client, "/technician", state)
        assert state["error"] == "Veuillez entrer le nom du technicien"
        assert state["current_step"] == 4

    async def test_failed_product_keeps_earlier_ids_and_resumes(self, new_user_client: AsyncClient):
        state = await _with_organization(new_user_client)
        state["current_step"] = 3
        state["data"]["products"] = [
            {"name": "Blanc", "sku": "DUP-1"},
            {"name": "Blanc bis", "sku": "DUP-1"},
        ]
        state = await _post(new_user_client, "/products", state)
        assert state["error"] == "Un produit avec ce SKU existe déjà"
        assert state["current_step"] == 3
        first_id = state["data"]["created_product_ids"][0]
        assert first_id is not None

        state["data"]["products"][1]["sku"] = "DUP-2"
        state = await _post(new_user_client, "/products", state)
        assert state["error"] is None
        assert state["current_step"] == 4
        assert state["data"]["created_product_ids"][0] == first_id

        products = (await new_user_client.get("/api/v1/products/")).json()
        assert products["total"] == 2
