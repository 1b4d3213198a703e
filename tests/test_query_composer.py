"""
Tests: visibility-scoped reads.

Categories:
    1. Monotonicity: private ⊆ team ⊆ organization ⊆ public for any caller
    2. Organization scenario: two teams of one organization plus an outsider
    3. Private rows are returned to their owner only
    4. Callers without a team or organization fall back to narrower scopes
"""

from datetime import datetime, timedelta, timezone

import pytest

from governance.core.scope import ScopeContext
from governance.models import db
from governance.models.evidence import Evidence
from governance.services.evidence_service import EvidenceFilter, search_evidence
from governance.services.query_composer import ScopedQueryComposer, paginate

LEVELS = ("private", "team", "organization", "public")
T0 = datetime(2026, 5, 1, tzinfo=timezone.utc)


def _row(user_id, team_id, visibility="team", minutes=0):
    row = Evidence(
        user_id=user_id,
        team_id=team_id,
        task_category="web",
        evidence_type="passed",
        evidence_data={},
        visibility=visibility,
        created_at=T0 + timedelta(minutes=minutes),
    )
    db.session.add(row)
    return row


def _visible_ids(ctx, level):
    page = search_evidence(ctx, EvidenceFilter(visibility=level))
    return {e.id for e in page.items}


@pytest.fixture()
def org_world(make_team, make_user):
    """Teams A and B in organization "acme", team C in "globex"."""
    team_a = make_team(name="A", organization="acme")
    team_b = make_team(name="B", organization="acme")
    team_c = make_team(name="C", organization="globex")
    alice = make_user(team_a)
    alan = make_user(team_a)
    bob = make_user(team_b)
    carl = make_user(team_c)

    rows = {
        "alice_team": _row(alice.id, team_a.id, minutes=1),
        "alice_private": _row(alice.id, team_a.id, "private", minutes=2),
        "alan_team": _row(alan.id, team_a.id, minutes=3),
        "bob_team": _row(bob.id, team_b.id, minutes=4),
        "bob_private": _row(bob.id, team_b.id, "private", minutes=5),
        "carl_team": _row(carl.id, team_c.id, minutes=6),
        "legacy": _row(None, None, "public", minutes=7),
    }
    db.session.commit()
    return {"alice": alice, "alan": alan, "bob": bob, "carl": carl, "rows": rows}


class TestOrganizationScenario:
    def test_levels_for_alice(self, org_world):
        ctx = ScopeContext.for_user(org_world["alice"])
        r = {k: v.id for k, v in org_world["rows"].items()}

        assert _visible_ids(ctx, "private") == {r["alice_team"], r["alice_private"]}
        assert _visible_ids(ctx, "team") == {r["alice_team"], r["alice_private"], r["alan_team"]}
        assert _visible_ids(ctx, "organization") == {
            r["alice_team"], r["alice_private"], r["alan_team"], r["bob_team"],
        }
        assert _visible_ids(ctx, "public") == {
            r["alice_team"], r["alice_private"], r["alan_team"],
            r["bob_team"], r["carl_team"], r["legacy"],
        }

    def test_private_rows_never_leak_to_teammates(self, org_world):
        ctx = ScopeContext.for_user(org_world["alan"])
        private_id = org_world["rows"]["alice_private"].id
        for level in LEVELS:
            assert private_id not in _visible_ids(ctx, level)

    def test_outsider_sees_only_own_org_at_organization_level(self, org_world):
        ctx = ScopeContext.for_user(org_world["carl"])
        assert _visible_ids(ctx, "organization") == {org_world["rows"]["carl_team"].id}

    def test_unknown_level_behaves_as_team(self, org_world):
        ctx = ScopeContext.for_user(org_world["alice"])
        assert _visible_ids(ctx, "everyone") == _visible_ids(ctx, "team")


@pytest.mark.parametrize("who", ["alice", "alan", "bob", "carl"])
def test_visibility_is_monotonic(org_world, who):
    ctx = ScopeContext.for_user(org_world[who])
    sets = [_visible_ids(ctx, level) for level in LEVELS]
    for narrower, wider in zip(sets, sets[1:]):
        assert narrower <= wider


def test_filters_only_narrow(org_world):
    ctx = ScopeContext.for_user(org_world["alice"])
    unfiltered = _visible_ids(ctx, "organization")
    page = search_evidence(ctx, EvidenceFilter(visibility="organization", user_id=org_world["bob"].id))
    assert {e.id for e in page.items} <= unfiltered
    assert {e.id for e in page.items} == {org_world["rows"]["bob_team"].id}


def test_team_without_organization_falls_back_to_team(make_team, make_user):
    solo = make_team(name="Solo", organization=None)
    user = make_user(solo)
    own = _row(user.id, solo.id)
    _row(None, None)
    db.session.commit()

    assert _visible_ids(ScopeContext.for_user(user), "organization") == {own.id}


def test_teamless_caller_sees_only_own_teamless_rows(make_user, make_team):
    loner = make_user()
    other = make_user(make_team())
    own = _row(loner.id, None)
    _row(other.id, other.team_id)
    _row(None, None)
    db.session.commit()

    ctx = ScopeContext.for_user(loner)
    for level in ("private", "team", "organization"):
        assert _visible_ids(ctx, level) == {own.id}


def test_paginate_counts_under_same_filters(org_world):
    composer = ScopedQueryComposer(
        Evidence,
        user_column=Evidence.user_id,
        team_column=Evidence.team_id,
        visibility_column=Evidence.visibility,
    )
    ctx = ScopeContext.for_user(org_world["alice"])
    stmt = composer.compose(ctx, "public")
    page = paginate(stmt, [Evidence.created_at.desc(), Evidence.id.asc()], limit=2, offset=0)
    assert page.total == 6
    assert [e.id for e in page.items] == [
        org_world["rows"]["legacy"].id, org_world["rows"]["carl_team"].id,
    ]
    assert composer.get_one(ctx, org_world["rows"]["bob_private"].id, "public") is None
