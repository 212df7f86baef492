import pytest

from fakes import detail_response, seasons_response
from matchday.domain.models import User
from matchday.sync import keys
from matchday.sync.navigation import StaticSignals
from matchday.views.account import LOGIN_ROUTE
from matchday.views.admin import ADMIN_ROUTE, AdminListContent, AdminManageContent, AdminUsersContent

NAVIGATE = StaticSignals(primary="navigate")
RELOAD = StaticSignals(primary="reload")


def sign_in(app, *, admin=True):
    app.session.sign_in("token-1", User(name="Ada", is_admin=admin))


def seed_seasons(app):
    app.cache.put(keys.SEASONS, seasons_response("S1", "S2", current="S1"))
    app.cache.set(keys.SELECTED_SEASON, "S1")


def admin_matches_response(*rows, season_id="S1"):
    return {
        "ok": True,
        "matches": [
            {"matchId": f"m-{code}", "publicCode": code, "seasonId": season_id, "status": status}
            for code, status in rows
        ],
    }


def manage_response(code, players=()):
    data = detail_response(code, players=players)
    data["match"]["matchId"] = f"m-{code}"
    return data


def codes(content):
    return [m.public_code for m in content.matches]


@pytest.mark.asyncio
async def test_only_admins_reach_the_admin_page(make_app, source) -> None:
    async with make_app() as app:
        seed_seasons(app)
        await app.start(ADMIN_ROUTE, NAVIGATE)
        assert app.router.active_route == LOGIN_ROUTE

        sign_in(app, admin=False)
        await app.navigate(ADMIN_ROUTE)
        assert app.router.active_route == LOGIN_ROUTE

        assert ADMIN_ROUTE not in app.surface.containers
        assert source.count("admin_list_matches") == 0


@pytest.mark.asyncio
async def test_first_visit_fetches_the_season_list_once(make_app, source) -> None:
    source.respond("admin_list_matches", admin_matches_response(("A", "OPEN"), ("B", "CLOSED"), ("C", "open")))

    async with make_app() as app:
        seed_seasons(app)
        sign_in(app)
        await app.start(ADMIN_ROUTE, NAVIGATE)
        container = app.surface.containers[ADMIN_ROUTE]

        assert isinstance(container.content, AdminListContent)
        assert container.content.matches == []

        await app.idle()
        assert codes(container.content) == ["A", "C"]

        await app.navigate("#/admin?view=past")
        await app.idle()

        assert container.content.view == "past"
        assert codes(container.content) == ["B"]
        assert source.count("admin_list_matches") == 1
        assert source.calls[0][2] == {"seasonId": "S1"}


@pytest.mark.asyncio
async def test_reload_of_the_admin_list_refetches(make_app, source) -> None:
    source.respond("admin_list_matches", admin_matches_response(("NEW", "OPEN")))

    async with make_app() as app:
        seed_seasons(app)
        sign_in(app)
        app.cache.put(keys.admin_matches("S1"), admin_matches_response(("OLD", "OPEN")))
        await app.start("#/admin?view=open", RELOAD)
        container = app.surface.containers[ADMIN_ROUTE]

        assert codes(container.content) == ["OLD"]

        await app.idle()
        assert codes(container.content) == ["NEW"]
        assert source.count("admin_list_matches") == 1


@pytest.mark.asyncio
async def test_reload_of_a_managed_match_leaves_the_list_alone(make_app, source) -> None:
    source.respond("public_match", manage_response("A", players=("Ann", "Ben")))

    async with make_app() as app:
        seed_seasons(app)
        sign_in(app)
        app.cache.put(keys.admin_matches("S1"), admin_matches_response(("A", "OPEN")))
        app.cache.put(keys.admin_manage("A"), manage_response("A", players=("Ann",)))
        app.cache.put(keys.PLAYERS, {"players": ["Ann", "Ben"]})
        await app.start("#/admin?view=manage&code=A&prev=past", RELOAD)
        container = app.surface.containers[ADMIN_ROUTE]

        assert isinstance(container.content, AdminManageContent)
        assert container.content.prev_view == "past"
        assert container.content.players == ["Ann", "Ben"]

        await app.idle()
        assert [r.player_name for r in container.content.availability] == ["Ann", "Ben"]
        assert source.count("public_match") == 1

        await app.navigate(ADMIN_ROUTE)
        await app.idle()

        assert codes(container.content) == ["A"]
        assert source.count("admin_list_matches") == 0
        assert source.count("players") == 0


@pytest.mark.asyncio
async def test_uncached_match_is_fetched_with_the_player_list(make_app, source) -> None:
    source.respond("public_match", manage_response("A", players=("Ann",)))
    source.respond("players", {"ok": True, "players": [{"name": "Ben"}, {"name": "Ann"}, {"name": "Ben"}]})

    async with make_app() as app:
        seed_seasons(app)
        sign_in(app)
        await app.start("#/admin?view=manage&code=A", NAVIGATE)
        container = app.surface.containers[ADMIN_ROUTE]

        assert container.content.code == "A"
        assert container.content.players == ["Ann", "Ben"]
        assert source.count("public_match") == 1
        assert source.count("players") == 1

        source.respond("players", {"ok": True, "players": [{"name": "Cat"}]})
        refreshed = await app.admin_page.refresh_players()

        assert refreshed.is_success()
        assert container.content.players == ["Cat"]


@pytest.mark.asyncio
async def test_manage_failure_shows_error(make_app, source) -> None:
    source.respond("public_match", {"ok": False, "error": "Match not found"})

    async with make_app() as app:
        seed_seasons(app)
        sign_in(app)
        await app.start("#/admin?view=manage&code=ZZZ", NAVIGATE)
        container = app.surface.containers[ADMIN_ROUTE]

        assert container.status == "error"
        assert container.error == "Match not found"
        assert app.cache.get(keys.admin_manage("ZZZ")) is None


@pytest.mark.asyncio
async def test_set_availability_for_reloads_the_managed_match(make_app, source) -> None:
    source.respond("admin_set_availability_for", {"ok": True, "effectiveAvailability": "YES"})
    source.respond("public_match", manage_response("A", players=("Ann", "Cat")))

    async with make_app() as app:
        seed_seasons(app)
        sign_in(app)
        app.cache.put(keys.admin_manage("A"), manage_response("A", players=("Ann",)))
        app.cache.put(keys.match_detail("A"), detail_response("A", players=("Ann",)))
        await app.start("#/admin?view=manage&code=A", NAVIGATE)
        container = app.surface.containers[ADMIN_ROUTE]

        missing = await app.admin_page.set_availability_for("A", "  ", "YES")
        assert missing.is_failure()
        assert source.count("admin_set_availability_for") == 0

        result = await app.admin_page.set_availability_for("A", " Cat ", "yes")

        assert result.is_success()
        params = next(p for _kind, op, p in source.calls if op == "admin_set_availability_for")
        assert params == {"matchId": "m-A", "playerName": "Cat", "availability": "YES", "note": ""}
        assert [r.player_name for r in container.content.availability] == ["Ann", "Cat"]
        assert app.cache.get(keys.match_detail("A")) is None


@pytest.mark.asyncio
async def test_create_and_delete_update_the_cached_list(make_app, source) -> None:
    source.respond("admin_create_match", {"ok": True, "matchId": "m-NEW", "publicCode": "NEW", "seasonId": "S1"})
    source.respond("admin_delete_match", {"ok": True})

    async with make_app() as app:
        seed_seasons(app)
        sign_in(app)
        app.cache.put(keys.admin_matches("S1"), admin_matches_response(("A", "OPEN"), ("B", "CLOSED")))
        app.cache.put(keys.match_detail("NEW"), detail_response("NEW"))
        await app.start(ADMIN_ROUTE, NAVIGATE)
        container = app.surface.containers[ADMIN_ROUTE]

        no_date = await app.admin_page.create_match("")
        assert no_date.is_failure()
        assert source.count("admin_create_match") == 0

        created = await app.admin_page.create_match("2024-06-01", match_type="INTERNAL")

        assert created.value.public_code == "NEW"
        assert codes(container.content) == ["NEW", "A"]
        params = next(p for _kind, op, p in source.calls if op == "admin_create_match")
        assert params == {"title": "Weekly Match", "date": "2024-06-01", "time": "19:00", "type": "INTERNAL", "seasonId": "S1"}
        assert app.cache.get(keys.match_detail("NEW")) is None

        assert (await app.admin_page.delete_match("m-A")).is_success()
        assert codes(container.content) == ["NEW"]

        source.respond("admin_delete_match", {"ok": False, "error": "Ratings locked"})
        assert (await app.admin_page.delete_match("m-NEW")).is_failure()
        assert codes(container.content) == ["NEW"]
        assert source.count("admin_list_matches") == 0


@pytest.mark.asyncio
async def test_admin_season_switch_never_fetches(make_app, source) -> None:
    async with make_app() as app:
        seed_seasons(app)
        sign_in(app)
        app.cache.put(keys.admin_matches("S1"), admin_matches_response(("A", "OPEN")))
        app.cache.put(keys.admin_matches("S2"), admin_matches_response(("X", "OPEN"), season_id="S2"))
        await app.start(ADMIN_ROUTE, NAVIGATE)
        container = app.surface.containers[ADMIN_ROUTE]

        app.admin_page.select_season("S2")
        await app.idle()

        assert container.content.season_id == "S2"
        assert codes(container.content) == ["X"]
        assert app.cache.get(keys.SELECTED_SEASON) == "S2"
        assert source.count("admin_list_matches") == 0


@pytest.mark.asyncio
async def test_users_are_cached_until_the_admin_page_is_reloaded(make_app, source) -> None:
    source.respond("admin_users", {"ok": True, "users": [{"name": "Ada", "isAdmin": True}, {"name": "Ben"}]})

    async with make_app() as app:
        seed_seasons(app)
        sign_in(app)
        await app.start("#/admin?view=users", NAVIGATE)
        container = app.surface.containers[ADMIN_ROUTE]

        assert isinstance(container.content, AdminUsersContent)
        assert [u.name for u in container.content.users] == ["Ada", "Ben"]
        assert container.content.users[0].is_admin

        await app.navigate("#/admin?view=past")
        await app.navigate("#/admin?view=users")
        await app.idle()
        assert source.count("admin_users") == 1

    source.respond("admin_users", {"ok": True, "users": [{"name": "Ada", "isAdmin": True}]})

    async with make_app() as app:
        await app.start("#/admin?view=users", RELOAD)

        assert [u.name for u in app.surface.containers[ADMIN_ROUTE].content.users] == ["Ada"]
        assert source.count("admin_users") == 2
