"""Tests for teams, users and ScopeContext loading."""

import pytest

from governance.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from governance.core.scope import Role
from governance.models import db
from governance.services import identity_service
from governance.services.jwt_service import decode_access_token


def test_create_team_requires_name():
    with pytest.raises(ValidationError):
        identity_service.create_team({"name": "  "})


def test_create_user_normalises_email_and_defaults_role(make_team):
    team = make_team()
    user = identity_service.create_user({
        "username": "ada", "email": "Ada@ACME.io", "team_id": team.id,
    })
    assert user.email == "Ada@acme.io"
    assert user.role == "developer"
    assert user.to_dict()["team_name"] == team.name


def test_create_user_rejects_invalid_email():
    with pytest.raises(ValidationError) as exc:
        identity_service.create_user({"username": "bob", "email": "not-an-email"})
    assert "email" in exc.value.details


def test_create_user_duplicate_username_conflicts(make_user):
    make_user(username="carol")
    with pytest.raises(ConflictError) as exc:
        identity_service.create_user({"username": "carol", "email": "other@acme.io"})
    assert exc.value.field == "username"


def test_create_user_unknown_team_not_found():
    with pytest.raises(NotFoundError):
        identity_service.create_user({"username": "dan", "email": "dan@acme.io", "team_id": 999})


def test_load_scope_context_reads_team_and_role_from_row(make_team, make_user):
    team = make_team()
    user = make_user(team, role="lead")
    ctx = identity_service.load_scope_context(str(user.id))
    assert (ctx.user_id, ctx.team_id, ctx.role) == (user.id, team.id, Role.LEAD)


def test_load_scope_context_unrecognised_stored_role(make_user):
    user = make_user()
    user.role = "superuser"
    db.session.commit()
    with pytest.raises(AuthorizationError):
        identity_service.load_scope_context(user.id)


@pytest.mark.parametrize("subject", ["abc", None, "404"])
def test_load_scope_context_unknown_subject(subject):
    with pytest.raises(NotFoundError):
        identity_service.load_scope_context(subject)


class TestChangeRole:
    def test_admin_changes_role_within_team(self, make_team, make_user, ctx_for):
        team = make_team()
        admin = make_user(team, role="admin")
        dev = make_user(team)
        updated = identity_service.change_role(ctx_for(admin), dev.id, "lead")
        assert updated.role == "lead"

    def test_non_admin_refused(self, make_team, make_user, ctx_for):
        team = make_team()
        lead = make_user(team, role="lead")
        dev = make_user(team)
        with pytest.raises(AuthorizationError):
            identity_service.change_role(ctx_for(lead), dev.id, "admin")

    def test_other_team_user_not_found(self, make_team, make_user, ctx_for):
        admin = make_user(make_team(), role="admin")
        stranger = make_user(make_team())
        with pytest.raises(NotFoundError):
            identity_service.change_role(ctx_for(admin), stranger.id, "lead")


def test_record_login_stamps_last_login(make_user):
    user = make_user()
    assert user.last_login is None
    assert identity_service.record_login(user.id).last_login is not None


def test_issue_token_command_stamps_last_login(app, make_user):
    user = make_user(username="hookbot")
    result = app.test_cli_runner().invoke(args=["issue-token", "hookbot"])

    assert result.exit_code == 0
    payload = decode_access_token(result.output.strip())
    assert payload["sub"] == str(user.id)
    assert identity_service.get_user_by_username("hookbot").last_login is not None


def test_issue_token_command_unknown_user(app):
    result = app.test_cli_runner().invoke(args=["issue-token", "ghost"])
    assert result.exit_code != 0
    assert "Unknown user ghost" in result.output
