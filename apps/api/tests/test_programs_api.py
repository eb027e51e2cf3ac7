import pytest
from sqlalchemy import func, select

from conftest import ADMIN_ID, EDITOR_ID, OTHER_EDITOR_ID, VIEWER_ID, auth_header
from models.search_log import SearchLog
from services import programs as programs_service
from services.search import wait_for_pending_search_logs


ADMIN = auth_header(ADMIN_ID, "admin")
EDITOR = auth_header(EDITOR_ID, "editor")
OTHER_EDITOR = auth_header(OTHER_EDITOR_ID, "editor")
VIEWER = auth_header(VIEWER_ID, "viewer")


async def _create(client, headers=ADMIN, **overrides):
    body = {
        "title": "Saving basics",
        "description": "How to start an emergency fund",
        "categoryId": 1,
        "languageId": 1,
        "status": "published",
    }
    body.update(overrides)
    response = await client.post("/programs", json=body, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["data"]


@pytest.mark.asyncio
async def test_create_then_list_with_denormalized_references(catalog_client):
    created = await _create(catalog_client, headers=EDITOR, title="Budgeting 101", status="draft")

    assert created["id"] == 1
    assert created["status"] == "draft"
    assert created["category"] == {"id": 1, "name": "Finance"}
    assert created["language"]["code"] == "en"
    assert created["createdBy"] == {"id": EDITOR_ID, "username": "editor"}

    elevated = await catalog_client.get("/programs", headers=EDITOR)
    assert elevated.status_code == 200
    payload = elevated.json()
    assert payload["success"] is True
    assert [item["title"] for item in payload["data"]] == ["Budgeting 101"]
    assert payload["pagination"]["total"] == 1

    public = await catalog_client.get("/programs")
    assert public.json()["data"] == []
    assert public.json()["pagination"]["total"] == 0


@pytest.mark.asyncio
async def test_list_is_served_from_cache_until_a_write_invalidates_it(catalog_client):
    await _create(catalog_client, title="First")

    first = await catalog_client.get("/programs?categoryId=1")
    second = await catalog_client.get("/programs?categoryId=1")
    assert first.json()["source"] == "store"
    assert second.json()["source"] == "cache"
    assert first.json()["data"] == second.json()["data"]

    await _create(catalog_client, title="Second")

    third = await catalog_client.get("/programs?categoryId=1")
    assert third.json()["source"] == "store"
    assert [item["title"] for item in third.json()["data"]] == ["Second", "First"]


@pytest.mark.asyncio
async def test_detail_of_draft_is_hidden_from_viewers_even_when_cached(catalog_client):
    draft = await _create(catalog_client, status="draft")

    admin_view = await catalog_client.get(f"/programs/{draft['id']}", headers=ADMIN)
    assert admin_view.status_code == 200
    assert admin_view.json()["source"] == "store"

    viewer_view = await catalog_client.get(f"/programs/{draft['id']}", headers=VIEWER)
    assert viewer_view.status_code == 404
    assert viewer_view.json() == {"success": False, "message": "Program not found", "data": None}

    anonymous_view = await catalog_client.get(f"/programs/{draft['id']}")
    assert anonymous_view.status_code == 404

    cached_admin_view = await catalog_client.get(f"/programs/{draft['id']}", headers=ADMIN)
    assert cached_admin_view.json()["source"] == "cache"


@pytest.mark.asyncio
async def test_page_past_the_end_is_empty_with_consistent_total(catalog_client):
    for index in range(5):
        await _create(catalog_client, title=f"Episode {index}")

    response = await catalog_client.get("/programs?page=1000&limit=10")

    assert response.status_code == 200
    payload = response.json()
    assert payload["data"] == []
    assert payload["pagination"]["total"] == 5
    assert payload["pagination"]["hasNext"] is False
    assert payload["pagination"]["hasPrev"] is True


@pytest.mark.asyncio
async def test_sorting_and_paging_walk_every_record_once(catalog_client):
    for index in range(5):
        await _create(catalog_client, title=f"Episode {index}", duration=10 + index)

    titles = []
    for page in (1, 2, 3):
        response = await catalog_client.get(f"/programs?sortBy=duration&sortOrder=ASC&limit=2&page={page}")
        titles.extend(item["title"] for item in response.json()["data"])

    assert titles == [f"Episode {index}" for index in range(5)]


@pytest.mark.asyncio
async def test_invalid_filter_is_bad_request(catalog_client):
    response = await catalog_client.get("/programs?status=deleted")

    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_editor_can_only_mutate_own_programs(catalog_client):
    program = await _create(catalog_client, headers=EDITOR, status="draft")

    denied = await catalog_client.patch(
        f"/programs/{program['id']}", json={"title": "Hijacked"}, headers=OTHER_EDITOR
    )
    assert denied.status_code == 403

    own = await catalog_client.patch(f"/programs/{program['id']}", json={"title": "Renamed"}, headers=EDITOR)
    assert own.status_code == 200
    assert own.json()["data"]["title"] == "Renamed"

    admin = await catalog_client.patch(f"/programs/{program['id']}", json={"status": "published"}, headers=ADMIN)
    assert admin.status_code == 200
    assert admin.json()["data"]["status"] == "published"

    viewer = await catalog_client.delete(f"/programs/{program['id']}", headers=VIEWER)
    assert viewer.status_code == 403


@pytest.mark.asyncio
async def test_viewers_and_anonymous_callers_cannot_create(catalog_client):
    body = {"title": "Nope", "description": "Nope", "categoryId": 1, "languageId": 1}

    assert (await catalog_client.post("/programs", json=body, headers=VIEWER)).status_code == 403
    assert (await catalog_client.post("/programs", json=body)).status_code == 401


@pytest.mark.asyncio
async def test_create_rejects_unknown_references(catalog_client):
    response = await catalog_client.post(
        "/programs",
        json={"title": "Orphan", "description": "No category", "categoryId": 42, "languageId": 1},
        headers=ADMIN,
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Category not found"


@pytest.mark.asyncio
async def test_update_invalidates_cached_detail(catalog_client):
    program = await _create(catalog_client)
    await catalog_client.get(f"/programs/{program['id']}")
    cached = await catalog_client.get(f"/programs/{program['id']}")
    assert cached.json()["source"] == "cache"

    await catalog_client.patch(f"/programs/{program['id']}", json={"categoryId": 2}, headers=ADMIN)

    fresh = await catalog_client.get(f"/programs/{program['id']}")
    assert fresh.json()["source"] == "store"
    assert fresh.json()["data"]["category"] == {"id": 2, "name": "Science"}


@pytest.mark.asyncio
async def test_any_status_transition_is_allowed(catalog_client):
    program = await _create(catalog_client, status="archived")

    for status in ("draft", "published", "archived", "published"):
        response = await catalog_client.patch(
            f"/programs/{program['id']}", json={"status": status}, headers=ADMIN
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == status


@pytest.mark.asyncio
async def test_counters_in_payload_are_ignored(catalog_client):
    created = await _create(catalog_client, viewCount=999, likeCount=7)

    assert created["viewCount"] == 0
    assert created["likeCount"] == 0


@pytest.mark.asyncio
async def test_increment_view_adds_exactly_one_per_call(catalog_client):
    program = await _create(catalog_client)

    for expected in range(1, 6):
        response = await catalog_client.post(f"/programs/{program['id']}/increment-view")
        assert response.status_code == 200
        assert response.json()["data"] == {"id": program["id"], "viewCount": expected}

    liked = await catalog_client.post(f"/programs/{program['id']}/like")
    assert liked.json()["data"]["likeCount"] == 1

    missing = await catalog_client.post("/programs/999/increment-view")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_delete_removes_program(catalog_client):
    program = await _create(catalog_client)
    await catalog_client.get(f"/programs/{program['id']}")

    deleted = await catalog_client.delete(f"/programs/{program['id']}", headers=ADMIN)
    assert deleted.status_code == 200
    assert deleted.json() == {"success": True, "message": "Program deleted successfully", "data": None}

    assert (await catalog_client.get(f"/programs/{program['id']}")).status_code == 404
    assert (await catalog_client.delete(f"/programs/{program['id']}", headers=ADMIN)).status_code == 404


@pytest.mark.asyncio
async def test_search_is_case_insensitive_over_published_programs(catalog_client):
    await _create(catalog_client, title="Personal Finance Basics")
    await _create(catalog_client, title="Weekly roundup", description="All about FINANCE news")
    await _create(catalog_client, title="finance for kids")
    await _create(catalog_client, title="Finance drafts", status="draft")
    await _create(catalog_client, title="Cooking", description="Pasta")

    for term in ("finance", "FINANCE", "Finance"):
        response = await catalog_client.get("/programs/search", params={"search": term})
        assert response.status_code == 200
        payload = response.json()
        assert payload["pagination"]["total"] == 3
        assert len(payload["data"]) == 3
        assert all(item["status"] == "published" for item in payload["data"])


@pytest.mark.asyncio
async def test_search_writes_a_log_row(catalog_client, catalog_db):
    _, session_maker = catalog_db

    response = await catalog_client.get(
        "/programs/search",
        params={"search": "budget"},
        headers={**VIEWER, "X-Forwarded-For": "203.0.113.9"},
    )
    assert response.status_code == 200
    await wait_for_pending_search_logs()

    async with session_maker() as session:
        rows = (await session.execute(select(SearchLog))).scalars().all()
        total = (await session.execute(select(func.count()).select_from(SearchLog))).scalar()

    assert total == 1
    assert rows[0].search_term == "budget"
    assert rows[0].user_id == VIEWER_ID
    # the forwarded header comes from an untrusted peer and is ignored
    assert rows[0].ip_address == "127.0.0.1"


@pytest.mark.asyncio
async def test_update_and_delete_invalidate_cached_lists_and_search(catalog_client):
    program = await _create(catalog_client, title="Market finance")
    await catalog_client.get("/programs")
    await catalog_client.get("/programs/search", params={"search": "finance"})
    assert (await catalog_client.get("/programs")).json()["source"] == "cache"

    await catalog_client.patch(f"/programs/{program['id']}", json={"title": "Market finance weekly"}, headers=ADMIN)

    listed = await catalog_client.get("/programs")
    assert listed.json()["source"] == "store"
    assert listed.json()["data"][0]["title"] == "Market finance weekly"
    searched = await catalog_client.get("/programs/search", params={"search": "finance"})
    assert searched.json()["source"] == "store"
    assert searched.json()["data"][0]["title"] == "Market finance weekly"

    await catalog_client.delete(f"/programs/{program['id']}", headers=ADMIN)

    listed = await catalog_client.get("/programs")
    assert listed.json()["source"] == "store"
    assert listed.json()["data"] == []
    searched = await catalog_client.get("/programs/search", params={"search": "finance"})
    assert searched.json()["source"] == "store"
    assert searched.json()["pagination"]["total"] == 0


@pytest.mark.asyncio
async def test_search_results_are_newest_first(catalog_client):
    created = [await _create(catalog_client, title=f"Finance part {index}") for index in range(4)]

    response = await catalog_client.get("/programs/search", params={"search": "finance"})

    ids = [item["id"] for item in response.json()["data"]]
    assert ids == [program["id"] for program in reversed(created)]
    stamps = [item["createdAt"] for item in response.json()["data"]]
    assert stamps == sorted(stamps, reverse=True)


@pytest.mark.asyncio
async def test_search_matches_the_term_as_typed(catalog_client):
    await _create(catalog_client, title="Personal Finance Basics")
    await _create(catalog_client, title="finance for kids")

    padded = await catalog_client.get("/programs/search", params={"search": " finance"})
    bare = await catalog_client.get("/programs/search", params={"search": "finance"})

    assert [item["title"] for item in padded.json()["data"]] == ["Personal Finance Basics"]
    assert bare.json()["pagination"]["total"] == 2


@pytest.mark.asyncio
async def test_admin_draft_filter_includes_newly_allocated_program(catalog_client):
    await _create(catalog_client, title="Already live")
    draft = await _create(catalog_client, headers=EDITOR, title="Work in progress", status="draft")

    response = await catalog_client.get("/programs", params={"status": "draft"}, headers=ADMIN)

    assert response.status_code == 200
    assert [item["id"] for item in response.json()["data"]] == [draft["id"]]
    assert draft["id"] == 2

    hidden = await catalog_client.get("/programs", params={"status": "draft"}, headers=VIEWER)
    assert hidden.json()["data"] == []


@pytest.mark.asyncio
async def test_counters_on_hidden_drafts_look_missing(catalog_client):
    draft = await _create(catalog_client, status="draft")

    anonymous = await catalog_client.post(f"/programs/{draft['id']}/increment-view")
    assert anonymous.status_code == 404
    assert anonymous.json()["message"] == "Program not found"
    viewer = await catalog_client.post(f"/programs/{draft['id']}/like", headers=VIEWER)
    assert viewer.status_code == 404

    admin = await catalog_client.post(f"/programs/{draft['id']}/increment-view", headers=ADMIN)
    assert admin.json()["data"]["viewCount"] == 1


@pytest.mark.asyncio
async def test_pages_with_failed_lookups_are_not_cached(catalog_client, monkeypatch):
    await _create(catalog_client)

    async def degraded_assembly(records, db):
        return [
            {"id": record.id, "status": record.status, "unresolved": {"category": "lookup_failed"}}
            for record in records
        ]

    monkeypatch.setattr(programs_service, "assemble_programs", degraded_assembly)

    first = await catalog_client.get("/programs")
    second = await catalog_client.get("/programs")
    detail = await catalog_client.get("/programs/1")
    detail_again = await catalog_client.get("/programs/1")

    assert first.json()["source"] == "store"
    assert second.json()["source"] == "store"
    assert detail_again.json()["source"] == "store"
    assert detail.json()["data"]["unresolved"] == {"category": "lookup_failed"}
