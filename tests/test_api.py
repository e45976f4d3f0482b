"""
API tests using FastAPI's TestClient against temporary storage.
"""

import json
from types import SimpleNamespace

import pytest

from conftest import ADMIN, OTHER_COMPANY, VIEWER, make_pdf
from planfinder.api.main import api_instance
from planfinder.indexing.database import StaleVersionError


def upload(client, filename="32.5_3LDK_-_-_50_WIC.pdf", data=None, headers=ADMIN, content=None):
    return client.post(
        "/api/plans/upload",
        files={"file": (filename, content if content is not None else make_pdf(), "application/pdf")},
        data=data or {},
        headers=headers,
    )


@pytest.fixture
def uploaded(client):
    response = upload(client)
    assert response.status_code == 200, response.text
    return response.json()["plan"]


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["components"]["llm"] == "disabled"


class TestUpload:

    def test_metadata_from_filename(self, uploaded):
        assert uploaded["title"] == "32.5坪 3LDK"
        assert uploaded["totalArea"] == 32.5
        assert uploaded["floors"] == "-"
        assert uploaded["siteArea"] == 50
        assert uploaded["features"] == ["WIC"]
        assert uploaded["companyId"] == "acme"
        assert uploaded["originalFilename"] == "32.5_3LDK_-_-_50_WIC.pdf"
        assert uploaded["pdfPath"].startswith("plan-pdfs/")
        assert uploaded["thumbnailPath"].startswith("plan-pdfs/thumbnails/")
        assert api_instance.file_store.exists(uploaded["pdfPath"])
        assert api_instance.file_store.exists(uploaded["thumbnailPath"])

    def test_metadata_from_form(self, client):
        response = upload(client, filename="plan.pdf", data={
            "layout": "4LDK",
            "floors": "平屋",
            "totalArea": "30",
            "direction": "東",
            "siteArea": "60",
            "features": json.dumps(["ロフト", " "], ensure_ascii=False),
        })

        assert response.status_code == 200, response.text
        plan = response.json()["plan"]
        assert plan["title"] == "30坪 4LDK 平屋 東道路"
        assert plan["features"] == ["ロフト"]

    def test_unparseable_filename(self, client):
        response = upload(client, filename="x_y.pdf")

        assert response.status_code == 400
        assert api_instance.database_manager.count_plans("acme") == 0

    def test_layout_outside_closed_set(self, client):
        assert upload(client, filename="30_7LDK_-_-_50.pdf").status_code == 400
        assert upload(client, filename="plan.pdf", data={"layout": "7LDK"}).status_code == 400

    def test_features_must_be_json_list(self, client):
        response = upload(client, filename="plan.pdf", data={"layout": "3LDK", "features": "WIC"})
        assert response.status_code == 400

    def test_only_pdf_files(self, client):
        assert upload(client, filename="plan.txt").status_code == 400

    def test_thumbnail_failure_does_not_block_upload(self, client):
        response = upload(client, content=b"not really a pdf")

        assert response.status_code == 200
        assert response.json()["plan"]["thumbnailPath"] is None

    def test_viewer_cannot_upload(self, client):
        assert upload(client, headers=VIEWER).status_code == 403

    def test_company_header_is_required(self, client):
        assert upload(client, headers={}).status_code == 401


class TestSearch:

    @pytest.fixture
    def catalog(self, client):
        rows = [
            ("a.pdf", "2LDK", "平屋", 28, "北", 45, ["和室"], ADMIN),
            ("b.pdf", "3LDK", "2階建て", 32.5, "南", 50, ["吹き抜け", "WIC"], ADMIN),
            ("c.pdf", "4LDK", "2階建て", 38, "南東", 65, ["ロフト"], ADMIN),
            ("d.pdf", "3LDK", "平屋", 30, "西", 40, [], OTHER_COMPANY),
        ]
        for filename, layout, floors, total_area, direction, site_area, features, headers in rows:
            response = upload(client, filename=filename, headers=headers, data={
                "layout": layout,
                "floors": floors,
                "totalArea": str(total_area),
                "direction": direction,
                "siteArea": str(site_area),
                "features": json.dumps(features, ensure_ascii=False),
            })
            assert response.status_code == 200, response.text

    def test_lists_only_own_company_newest_first(self, client, catalog):
        body = client.get("/api/plans", headers=VIEWER).json()

        assert body["count"] == 3
        assert [p["layout"] for p in body["plans"]] == ["4LDK", "3LDK", "2LDK"]

    def test_filters(self, client, catalog):
        def layouts(params):
            plans = client.get("/api/plans", params=params, headers=VIEWER).json()["plans"]
            return [p["layout"] for p in plans]

        assert layouts({"layout": "3LDK"}) == ["3LDK"]
        assert layouts({"floors": "2階建て", "minArea": "33"}) == ["4LDK"]
        assert layouts({"minSiteArea": "45", "maxSiteArea": "50"}) == ["3LDK", "2LDK"]
        assert layouts({"features": "吹き抜け,WIC"}) == ["3LDK"]
        assert layouts({"layout": "-", "direction": "-"}) == ["4LDK", "3LDK", "2LDK"]
        assert layouts({"favoriteOnly": "true"}) == []

    def test_lookup_by_id(self, client, uploaded):
        body = client.get("/api/plans", params={"id": uploaded["id"]}, headers=VIEWER).json()
        assert [p["id"] for p in body["plans"]] == [uploaded["id"]]

    def test_count(self, client, catalog):
        assert client.get("/api/plans/count", headers=VIEWER).json()["count"] == 3
        assert client.get("/api/plans/count", headers=OTHER_COMPANY).json()["count"] == 1


class TestEdit:

    def test_update_regenerates_title(self, client, uploaded):
        response = client.patch(f"/api/plans/{uploaded['id']}", headers=ADMIN,
                                json={"floors": "2階建て", "direction": "南", "version": 1})

        assert response.status_code == 200, response.text
        plan = response.json()["plan"]
        assert plan["title"] == "32.5坪 3LDK 2階建て 南道路"
        assert plan["version"] == 2

    def test_stale_version_conflicts(self, client, uploaded):
        url = f"/api/plans/{uploaded['id']}"
        client.patch(url, headers=ADMIN, json={"layout": "4LDK", "version": 1})

        response = client.patch(url, headers=ADMIN, json={"layout": "5LDK", "version": 1})

        assert response.status_code == 409

    def test_invalid_values(self, client, uploaded):
        url = f"/api/plans/{uploaded['id']}"
        assert client.patch(url, headers=ADMIN, json={"layout": "7LDK"}).status_code == 400
        assert client.patch(url, headers=ADMIN, json={"totalArea": -1}).status_code == 422

    def test_access_rules(self, client, uploaded):
        url = f"/api/plans/{uploaded['id']}"
        assert client.patch(url, headers=VIEWER, json={"layout": "4LDK"}).status_code == 403
        assert client.patch(url, headers=OTHER_COMPANY, json={"layout": "4LDK"}).status_code == 403
        assert client.patch("/api/plans/missing", headers=ADMIN, json={}).status_code == 404

    def test_toggle_favorite(self, client, uploaded):
        url = f"/api/plans/{uploaded['id']}/favorite"
        assert client.post(url, headers=VIEWER).json()["plan"]["favorite"] is True

        favorites = client.get("/api/plans", params={"favoriteOnly": "true"}, headers=VIEWER).json()
        assert favorites["count"] == 1

    def test_concurrent_favorite_toggle_conflicts(self, client, uploaded, monkeypatch):
        def toggle(plan_id):
            raise StaleVersionError(plan_id, 1, 2)

        monkeypatch.setattr(api_instance.database_manager, "toggle_favorite", toggle)

        response = client.post(f"/api/plans/{uploaded['id']}/favorite", headers=ADMIN)

        assert response.status_code == 409

    def test_delete_removes_files(self, client, uploaded):
        response = client.delete(f"/api/plans/{uploaded['id']}", headers=ADMIN)

        assert response.status_code == 200
        assert not api_instance.file_store.exists(uploaded["pdfPath"])
        assert not api_instance.file_store.exists(uploaded["thumbnailPath"])
        assert client.get("/api/plans/count", headers=ADMIN).json()["count"] == 0

    def test_other_company_cannot_delete(self, client, uploaded):
        assert client.delete(f"/api/plans/{uploaded['id']}", headers=OTHER_COMPANY).status_code == 403


class TestAttachments:

    def test_drawing_lifecycle(self, client, uploaded):
        url = f"/api/plans/{uploaded['id']}/drawings"
        response = client.post(url, headers=ADMIN, data={"type": "立面図"},
                               files={"file": ("elevation.pdf", make_pdf(), "application/pdf")})

        assert response.status_code == 200, response.text
        drawing = response.json()["plan"]["drawings"][0]
        assert drawing["type"] == "立面図"
        assert api_instance.file_store.exists(drawing["filePath"])

        assert client.delete(f"{url}/{drawing['id']}", headers=ADMIN).status_code == 200
        assert not api_instance.file_store.exists(drawing["filePath"])
        assert client.delete(f"{url}/{drawing['id']}", headers=ADMIN).status_code == 404

    def test_unknown_drawing_type(self, client, uploaded):
        response = client.post(f"/api/plans/{uploaded['id']}/drawings", headers=ADMIN,
                               data={"type": "配線図"},
                               files={"file": ("x.pdf", make_pdf(), "application/pdf")})
        assert response.status_code == 400

    def test_photo_lifecycle(self, client, uploaded):
        url = f"/api/plans/{uploaded['id']}/photos"
        response = client.post(url, headers=ADMIN,
                               files={"file": ("front view.jpg", b"\xff\xd8\xff", "image/jpeg")})

        assert response.status_code == 200, response.text
        photo = response.json()["plan"]["photos"][0]
        assert photo["originalFilename"] == "front view.jpg"
        assert "front_view.jpg" in photo["filePath"]

        assert client.delete(f"{url}/{photo['id']}", headers=ADMIN).status_code == 200


class TestFilenames:

    def test_parse_batch(self, client):
        response = client.post("/api/filenames/parse", json={
            "filenames": ["28坪_2LDK_平屋_北_45坪.pdf", "x_y", "10坪_3LDK_平屋_上_10坪.pdf"],
        })

        body = response.json()
        assert body["valid"] == 1
        assert body["invalid"] == 2
        assert body["results"][0]["data"]["title"] == "28坪 2LDK 平屋 北道路"
        assert body["results"][1]["error"]["kind"] == "InvalidFormat"
        assert body["results"][2]["error"]["kind"] == "InvalidDirection"

    def test_generate(self, client):
        response = client.post("/api/filenames/generate", json={
            "totalArea": 32.5, "layout": "3LDK", "floors": "2階建て", "direction": "南",
            "siteArea": 50, "features": ["吹き抜け", "WIC"],
        })

        assert response.json() == {
            "filename": "32.5坪_3LDK_2階建て_南_50坪_吹き抜け-WIC.pdf",
            "title": "32.5坪 3LDK 2階建て 南道路",
        }


class TestAnalysis:

    def test_decode(self, client):
        reply = '```json\n{"layout": "3LDK", "floors": "平屋", "totalArea": 28, "features": ["和室"]}\n```'
        response = client.post("/api/analyze-plan/decode", json={"reply": reply})

        assert response.status_code == 200
        body = response.json()
        assert body["analysis"]["layout"] == "3LDK"
        assert body["analysis"]["totalArea"] == 28
        assert body["analysis"]["direction"] == "-"
        assert body["suggestedFilename"] == "28坪_3LDK_平屋_-_0坪_和室.pdf"

    def test_decode_failure(self, client):
        response = client.post("/api/analyze-plan/decode", json={"reply": "sorry"})
        assert response.status_code == 422

    def test_analysis_needs_llm(self, client):
        response = client.post("/api/analyze-plan", headers=ADMIN,
                               files={"file": ("plan.pdf", make_pdf(), "application/pdf")})
        assert response.status_code == 503

    def test_analysis_with_model(self, client, monkeypatch):
        async def analyze_pdf(data):
            return '{"layout": "4LDK", "direction": "北西"}'

        monkeypatch.setattr(api_instance, "llm_client", SimpleNamespace(analyze_pdf=analyze_pdf))

        response = client.post("/api/analyze-plan", headers=ADMIN,
                               files={"file": ("plan.pdf", make_pdf(), "application/pdf")})

        assert response.status_code == 200
        assert response.json()["analysis"]["direction"] == "北西"


class TestAssistant:

    def test_needs_llm(self, client):
        response = client.post("/api/ai-assistant", headers=VIEWER, json={"message": "平屋"})
        assert response.status_code == 503

    def test_suggests_plans_from_catalog(self, client, uploaded, monkeypatch):
        seen = {}

        async def complete(system, messages):
            seen["system"] = system
            seen["messages"] = messages
            return f"プランID: {uploaded['id']} をおすすめします"

        monkeypatch.setattr(api_instance, "llm_client", SimpleNamespace(complete=complete))

        response = client.post("/api/ai-assistant", headers=VIEWER, json={
            "message": "3LDKはありますか",
            "conversationHistory": [{"role": "user", "content": "こんにちは"}],
        })

        assert response.status_code == 200, response.text
        assert response.json()["suggestedPlans"] == [uploaded["id"]]
        assert uploaded["id"] in seen["system"]
        assert len(seen["messages"]) == 2

    def test_blank_message(self, client, monkeypatch):
        async def complete(system, messages):
            return ""

        monkeypatch.setattr(api_instance, "llm_client", SimpleNamespace(complete=complete))
        response = client.post("/api/ai-assistant", headers=VIEWER, json={"message": "   "})
        assert response.status_code == 400
