"""Tests for ticket and chat access policies."""
from types import SimpleNamespace

import pytest

from helpdesk.core import policies
from helpdesk.db.enums import Role
from helpdesk.db.models import Ticket

from factories import make_ticket

REQUESTER_ID = 1
OTHER_REQUESTER_ID = 2
TECH_ID = 10
OTHER_TECH_ID = 11
ADMIN_ID = 20


def actor(user_id: int, role: Role):
    return SimpleNamespace(user_id=user_id, role=role)


def ticket(requester_id: int = REQUESTER_ID, assignee_id: int | None = None):
    return SimpleNamespace(requester_id=requester_id, assignee_id=assignee_id)


def message(author_id: int, is_internal: bool = False):
    return SimpleNamespace(author_id=author_id, is_internal=is_internal)


REQUESTER = actor(REQUESTER_ID, Role.REQUESTER)
OTHER_REQUESTER = actor(OTHER_REQUESTER_ID, Role.REQUESTER)
TECH = actor(TECH_ID, Role.TECHNICIAN)
OTHER_TECH = actor(OTHER_TECH_ID, Role.TECHNICIAN)
ADMIN = actor(ADMIN_ID, Role.ADMIN)


# =============================================================================
# can_view_ticket
# =============================================================================

@pytest.mark.parametrize(
    "who, assignee_id, expected",
    [
        (ADMIN, None, True),
        (ADMIN, OTHER_TECH_ID, True),
        (TECH, None, True),
        (TECH, TECH_ID, True),
        (TECH, OTHER_TECH_ID, False),
        (REQUESTER, None, True),
        (REQUESTER, OTHER_TECH_ID, True),
        (OTHER_REQUESTER, None, False),
        (OTHER_REQUESTER, OTHER_REQUESTER_ID, True),
    ],
)
def test_can_view_ticket(who, assignee_id, expected):
    assert policies.can_view_ticket(who, ticket(assignee_id=assignee_id)) is expected


def test_unknown_role_sees_nothing():
    stranger = actor(99, "guest")
    assert policies.can_view_ticket(stranger, ticket()) is False


# =============================================================================
# can_edit_ticket
# =============================================================================

def test_staff_may_edit_any_field():
    fields = ["name", "status", "assignee_id", "internal_notes"]
    assert policies.can_edit_ticket(TECH, ticket(assignee_id=TECH_ID), fields)
    assert policies.can_edit_ticket(ADMIN, ticket(), fields)


def test_requester_may_edit_own_non_staff_fields():
    assert policies.can_edit_ticket(REQUESTER, ticket(), ["name", "description", "priority"])


@pytest.mark.parametrize("field", ["status", "assignee_id", "internal_notes"])
def test_requester_may_not_edit_staff_fields(field):
    assert policies.can_edit_ticket(REQUESTER, ticket(), ["name", field]) is False


def test_requester_may_not_edit_someone_elses_ticket():
    assert policies.can_edit_ticket(OTHER_REQUESTER, ticket(), ["name"]) is False


def test_empty_patch_is_allowed_for_owner():
    assert policies.can_edit_ticket(REQUESTER, ticket(), []) is True


# =============================================================================
# can_delete_ticket
# =============================================================================

@pytest.mark.parametrize(
    "who, expected",
    [(ADMIN, True), (TECH, False), (REQUESTER, False)],
)
def test_only_admin_deletes(who, expected):
    assert policies.can_delete_ticket(who) is expected


# =============================================================================
# Messages
# =============================================================================

def test_internal_message_hidden_from_requester():
    t = ticket(assignee_id=TECH_ID)
    internal = message(TECH_ID, is_internal=True)
    public = message(TECH_ID)

    assert policies.can_view_message(REQUESTER, t, internal) is False
    assert policies.can_view_message(REQUESTER, t, public) is True
    assert policies.can_view_message(TECH, t, internal) is True
    assert policies.can_view_message(ADMIN, t, internal) is True


def test_message_visibility_requires_ticket_visibility():
    t = ticket(assignee_id=OTHER_TECH_ID)
    assert policies.can_view_message(TECH, t, message(OTHER_TECH_ID)) is False


def test_requester_posts_are_always_public():
    assert policies.can_post_message(REQUESTER, ticket(), True) == (True, False)


def test_staff_may_post_internal():
    t = ticket(assignee_id=TECH_ID)
    assert policies.can_post_message(TECH, t, True) == (True, True)
    assert policies.can_post_message(TECH, t, False) == (True, False)


def test_post_requires_ticket_visibility():
    assert policies.can_post_message(OTHER_REQUESTER, ticket(), False) == (False, False)
    assert policies.can_post_message(TECH, ticket(assignee_id=OTHER_TECH_ID), True) == (False, False)


@pytest.mark.parametrize(
    "who, expected",
    [
        (REQUESTER, True),  # author
        (ADMIN, True),
        (TECH, True),  # assigned technician
        (OTHER_TECH, False),
        (OTHER_REQUESTER, False),
    ],
)
def test_edit_or_delete_message(who, expected):
    t = ticket(assignee_id=TECH_ID)
    m = message(REQUESTER_ID)
    assert policies.can_edit_or_delete_message(who, m, t) is expected


# =============================================================================
# Listing scope
# =============================================================================

def test_scope_filter_matches_listing_rules(db, requester, other_requester, technician, other_technician, admin):
    mine = make_ticket(db, requester, name="mine")
    theirs = make_ticket(db, other_requester, name="theirs", assignee=other_technician)
    assigned_to_tech = make_ticket(db, other_requester, name="tech", assignee=technician)

    def visible(user):
        who = actor(user.id, user.role)
        return {t.id for t in db.query(Ticket).filter(policies.ticket_scope_filter(who, Ticket))}

    assert visible(admin) == {mine.id, theirs.id, assigned_to_tech.id}
    assert visible(technician) == {mine.id, assigned_to_tech.id}
    assert visible(requester) == {mine.id}
    assert visible(other_requester) == {theirs.id, assigned_to_tech.id}
