import uuid

import pytest
from httpx import AsyncClient

from focusdesk.api.deps import get_stores
from focusdesk.exceptions import StorageUnavailableError
from focusdesk.main import app
from focusdesk.repositories import Stores
from focusdesk.repositories.memory import MemoryDatabase
from focusdesk.schemas.layout import StoredLayout
from focusdesk.services.layout_service import RESTORE_NOTICE


async def create_focus(client: AsyncClient, headers: dict[str, str], **payload) -> dict:
    payload.setdefault("assigned_roles", ["user", "admin"])
    response = await client.post("/api/v1/focuses", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestFocusCrud:
    @pytest.mark.asyncio
    async def test_admin_creates_focus(self, client: AsyncClient, admin_headers, admin_user):
        data = await create_focus(
            client, admin_headers, name="Revenue", description="Daily revenue", assigned_roles=["admin", "user"]
        )
        assert data["name"] == "Revenue"
        assert data["assigned_roles"] == ["user", "admin"]
        assert data["created_by"] == admin_user.internal_user_id
        assert data["has_layout"] is False
        assert data["is_favorite"] is False

    @pytest.mark.asyncio
    async def test_user_cannot_create(self, client: AsyncClient, user_headers):
        response = await client.post(
            "/api/v1/focuses", json={"name": "Mine", "assigned_roles": ["user"]}, headers=user_headers
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Not permitted to create focuses"

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, client: AsyncClient, admin_headers):
        response = await client.post("/api/v1/focuses", json={"name": "   "}, headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["errors"] == [{"field": "name", "message": "must not be empty"}]

    @pytest.mark.asyncio
    async def test_unknown_role_rejected(self, client: AsyncClient, admin_headers):
        response = await client.post(
            "/api/v1/focuses", json={"name": "Odd", "assigned_roles": ["owner"]}, headers=admin_headers
        )
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "assigned_roles"

    @pytest.mark.asyncio
    async def test_invalid_initial_layout_rejected(self, client: AsyncClient, admin_headers):
        response = await client.post(
            "/api/v1/focuses",
            json={"name": "Broken", "layout_data": {"panelDocument": "oops"}},
            headers=admin_headers,
        )
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"].startswith("layout_data")

    @pytest.mark.asyncio
    async def test_get_update_delete(self, client: AsyncClient, admin_headers):
        focus = await create_focus(client, admin_headers, name="Revenue")
        url = f"/api/v1/focuses/{focus['id']}"

        response = await client.patch(url, json={"name": "Revenue v2"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["name"] == "Revenue v2"
        assert response.json()["assigned_roles"] == ["user", "admin"]

        response = await client.get(url, headers=admin_headers)
        assert response.json()["name"] == "Revenue v2"

        response = await client.delete(url, headers=admin_headers)
        assert response.status_code == 204

        response = await client.get(url, headers=admin_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_user_cannot_update_or_delete(self, client: AsyncClient, admin_headers, user_headers):
        focus = await create_focus(client, admin_headers, name="Revenue")
        url = f"/api/v1/focuses/{focus['id']}"

        assert (await client.patch(url, json={"name": "Mine"}, headers=user_headers)).status_code == 403
        assert (await client.delete(url, headers=user_headers)).status_code == 403
        assert (await client.get(url, headers=user_headers)).json()["name"] == "Revenue"

    @pytest.mark.asyncio
    async def test_invisible_focus_is_not_found(self, client: AsyncClient, admin_headers, user_headers):
        focus = await create_focus(client, admin_headers, name="Set-up", assigned_roles=["admin"])
        response = await client.get(f"/api/v1/focuses/{focus['id']}", headers=user_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_share(self, client: AsyncClient, admin_headers):
        focus = await create_focus(client, admin_headers, name="Revenue", type="user")
        response = await client.post(
            f"/api/v1/focuses/{focus['id']}/share", json={"shared": True}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["type"] == "shared"


class TestFocusListing:
    @pytest.mark.asyncio
    async def test_seeded_focuses_are_role_scoped(
        self, client: AsyncClient, admin_headers, user_headers
    ):
        response = await client.post("/api/v1/focuses/seed", headers=admin_headers)
        assert response.status_code == 201
        assert len(response.json()) == 4

        # Seeding twice creates nothing new
        again = await client.post("/api/v1/focuses/seed", headers=admin_headers)
        assert again.json() == []

        as_user = await client.get("/api/v1/focuses", headers=user_headers)
        assert [f["name"] for f in as_user.json()] == ["Performance Dashboard"]

        as_admin = await client.get("/api/v1/focuses", headers=admin_headers)
        assert [f["name"] for f in as_admin.json()] == [
            "Performance Dashboard",
            "Exception Management",
            "Inventory Management",
            "Set-up",
        ]

    @pytest.mark.asyncio
    async def test_favorites_listed_after_default(self, client: AsyncClient, admin_headers, user_headers):
        await create_focus(client, admin_headers, name="Alpha")
        zulu = await create_focus(client, admin_headers, name="Zulu")

        response = await client.post(f"/api/v1/focuses/{zulu['id']}/favorite", headers=user_headers)
        assert response.json() == {"focus_id": zulu["id"], "is_favorite": True}

        listed = (await client.get("/api/v1/focuses", headers=user_headers)).json()
        assert [f["name"] for f in listed] == ["Zulu", "Alpha"]
        assert listed[0]["is_favorite"] is True

    @pytest.mark.asyncio
    async def test_type_filter(self, client: AsyncClient, admin_headers):
        await create_focus(client, admin_headers, name="Standard")
        template = await create_focus(client, admin_headers, name="Template", type="template")

        response = await client.get("/api/v1/focuses", params={"type": "template"}, headers=admin_headers)
        assert [f["id"] for f in response.json()] == [template["id"]]

        response = await client.get("/api/v1/focuses", params={"type": "bogus"}, headers=admin_headers)
        assert response.status_code == 422


class TestSelection:
    @pytest.mark.asyncio
    async def test_select_returns_layout(self, client: AsyncClient, admin_headers, user_headers, sample_snapshot):
        focus = await create_focus(client, admin_headers, name="Revenue", layout_data=sample_snapshot)

        response = await client.post(f"/api/v1/focuses/{focus['id']}/select", headers=user_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["focus"]["id"] == focus["id"]
        assert data["layout"]["state"] == "valid"
        assert data["layout"]["restored"] is True
        assert data["layout"]["notice"] is None
        assert data["layout"]["layout"]["sidebar"] == {"collapsed": True, "width": 320}

        current = await client.get("/api/v1/workspace/current", headers=user_headers)
        assert current.json()["focus"]["id"] == focus["id"]

    @pytest.mark.asyncio
    async def test_select_corrupt_layout_gets_default_and_notice(
        self, client: AsyncClient, admin_headers, user_headers, memory_db: MemoryDatabase
    ):
        focus = await create_focus(client, admin_headers, name="Revenue")
        focus_id = uuid.UUID(focus["id"])
        memory_db.focuses[focus_id] = memory_db.focuses[focus_id].model_copy(
            update={"layout_data": {"version": 6, "panelDocument": {"panels": {}}}, "layout_revision": 2}
        )

        response = await client.post(f"/api/v1/focuses/{focus['id']}/select", headers=user_headers)

        layout = response.json()["layout"]
        assert layout["state"] == "corrupt"
        assert layout["restored"] is False
        assert layout["notice"] == RESTORE_NOTICE
        assert list(layout["layout"]["panelDocument"]["panels"]) == ["welcome"]

    @pytest.mark.asyncio
    async def test_clear_current(self, client: AsyncClient, admin_headers, user_headers):
        focus = await create_focus(client, admin_headers, name="Revenue")
        await client.post(f"/api/v1/focuses/{focus['id']}/select", headers=user_headers)

        response = await client.delete("/api/v1/workspace/current", headers=user_headers)
        assert response.status_code == 204
        current = await client.get("/api/v1/workspace/current", headers=user_headers)
        assert current.json() == {"focus": None}

    @pytest.mark.asyncio
    async def test_deleting_current_focus_redirects_to_default(
        self, client: AsyncClient, admin_headers, user_headers
    ):
        home = await create_focus(client, admin_headers, name="Home", is_default=True)
        doomed = await create_focus(client, admin_headers, name="Doomed")
        await client.post(f"/api/v1/focuses/{doomed['id']}/select", headers=user_headers)

        await client.delete(f"/api/v1/focuses/{doomed['id']}", headers=admin_headers)

        current = await client.get("/api/v1/workspace/current", headers=user_headers)
        assert current.json()["focus"]["id"] == home["id"]


class TestFocusLayouts:
    @pytest.mark.asyncio
    async def test_admin_saves_focus_layout(self, client: AsyncClient, admin_headers, sample_snapshot):
        focus = await create_focus(client, admin_headers, name="Revenue")
        url = f"/api/v1/focuses/{focus['id']}/layout"

        first = await client.put(url, json=sample_snapshot, headers=admin_headers)
        second = await client.put(url, json=sample_snapshot, headers=admin_headers)

        assert first.status_code == 200
        assert first.json() == {"revision": 1, "version": 6}
        assert second.json()["revision"] == 2

    @pytest.mark.asyncio
    async def test_user_cannot_save_focus_layout(
        self, client: AsyncClient, admin_headers, user_headers, sample_snapshot
    ):
        focus = await create_focus(client, admin_headers, name="Revenue")
        response = await client.put(
            f"/api/v1/focuses/{focus['id']}/layout", json=sample_snapshot, headers=user_headers
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_invalid_layout_rejected(self, client: AsyncClient, admin_headers, sample_snapshot):
        focus = await create_focus(client, admin_headers, name="Revenue")
        sample_snapshot["appearance"]["fontSize"] = "large"

        response = await client.put(
            f"/api/v1/focuses/{focus['id']}/layout", json=sample_snapshot, headers=admin_headers
        )

        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "layout.appearance.fontSize"

    @pytest.mark.asyncio
    async def test_personal_override(self, client: AsyncClient, admin_headers, user_headers, sample_snapshot):
        focus = await create_focus(client, admin_headers, name="Revenue")
        url = f"/api/v1/focuses/{focus['id']}/layout/override"

        sample_snapshot["sidebar"]["width"] = 410
        response = await client.put(url, json=sample_snapshot, headers=user_headers)
        assert response.status_code == 200

        selected = await client.post(f"/api/v1/focuses/{focus['id']}/select", headers=user_headers)
        assert selected.json()["layout"]["layout"]["sidebar"]["width"] == 410

        assert (await client.delete(url, headers=user_headers)).status_code == 204
        selected = await client.post(f"/api/v1/focuses/{focus['id']}/select", headers=user_headers)
        assert selected.json()["layout"]["state"] == "absent"


class TestLocalLayout:
    @pytest.mark.asyncio
    async def test_round_trip(self, client: AsyncClient, user_headers, sample_snapshot):
        empty = await client.get("/api/v1/workspace/layout", headers=user_headers)
        assert empty.json()["state"] == "absent"
        assert empty.json()["restored"] is False

        saved = await client.put("/api/v1/workspace/layout", json=sample_snapshot, headers=user_headers)
        assert saved.json() == {"revision": 1, "version": 6}

        loaded = (await client.get("/api/v1/workspace/layout", headers=user_headers)).json()
        assert loaded["state"] == "valid"
        assert loaded["revision"] == 1
        assert loaded["layout"] == {**sample_snapshot, "version": 6}

        assert (await client.delete("/api/v1/workspace/layout", headers=user_headers)).status_code == 204
        reset = (await client.get("/api/v1/workspace/layout", headers=user_headers)).json()
        assert reset["state"] == "absent"
        assert reset["revision"] == 2
        assert reset["layout"]["sidebar"]["width"] == 280

    @pytest.mark.asyncio
    async def test_stale_version_reports_notice(
        self, client: AsyncClient, user_headers, regular_user, memory_db: MemoryDatabase, sample_snapshot
    ):
        memory_db.local_layouts[regular_user.internal_user_id] = StoredLayout({**sample_snapshot, "version": 5}, 4)

        loaded = (await client.get("/api/v1/workspace/layout", headers=user_headers)).json()

        assert loaded["state"] == "version_mismatch"
        assert loaded["notice"] == RESTORE_NOTICE
        assert loaded["revision"] == 4

    @pytest.mark.asyncio
    async def test_non_object_body_rejected(self, client: AsyncClient, user_headers):
        response = await client.put("/api/v1/workspace/layout", json=["not", "a", "layout"], headers=user_headers)
        assert response.status_code == 422


class TestStorageOutage:
    @pytest.mark.asyncio
    async def test_unavailable_storage_is_retryable_503(self, client: AsyncClient, stores: Stores):
        class DownUsers:
            async def get_by_external_id(self, external_id):
                raise StorageUnavailableError("connection refused")

        async def broken_stores() -> Stores:
            return Stores(
                users=DownUsers(), focuses=stores.focuses, preferences=stores.preferences, layouts=stores.layouts
            )

        app.dependency_overrides[get_stores] = broken_stores
        response = await client.post(
            "/api/v1/auth/sync", json={"external_id": "ext-1", "email": "one@example.com"}
        )

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert response.json()["retryable"] is True
