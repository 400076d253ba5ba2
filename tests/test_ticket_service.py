"""Tests for the ticket lifecycle service."""
import pydantic
import pytest

from helpdesk.core.deps import session_for
from helpdesk.core.errors import AuthorizationError, NotFoundError, ValidationError
from helpdesk.db.enums import Department, TicketPriority, TicketStatus
from helpdesk.db.models import ChatMessage, Ticket
from helpdesk.schemas.ticketing import TicketCreate, TicketUpdate
from helpdesk.services import realtime_events, ticket_service
from helpdesk.services.realtime_events import Audience, EventBatch
from helpdesk.utils.pagination import PaginationParams

from factories import make_ticket


def _create_payload(**overrides) -> TicketCreate:
    values = {
        "name": "Monitor flickers",
        "floor": 2,
        "office": "204",
        "department": Department.FINANCE,
        "description": "The second monitor flickers every few seconds.",
    }
    values.update(overrides)
    return TicketCreate(**values)


def _update(db, user, ticket_id, events=None, **fields):
    return ticket_service.update_ticket(
        db,
        actor=session_for(user),
        ticket_id=ticket_id,
        patch=TicketUpdate(**fields),
        events=events if events is not None else EventBatch(),
    )


# =============================================================================
# Create
# =============================================================================

def test_create_ticket_starts_new_and_unassigned(db, requester, events):
    ticket = ticket_service.create_ticket(
        db, actor=session_for(requester), data=_create_payload(), events=events
    )

    assert ticket.status == TicketStatus.NEW
    assert ticket.priority == TicketPriority.MEDIUM
    assert ticket.assignee_id is None
    assert ticket.requester_id == requester.id
    assert ticket.closed_at is None


def test_create_ticket_emits_broadcast_and_outbound_job(db, requester, events):
    ticket = ticket_service.create_ticket(
        db, actor=session_for(requester), data=_create_payload(), events=events
    )

    created = events.of_type(realtime_events.TICKET_CREATED)
    assert len(created) == 1
    assert created[0].audience == Audience.BROADCAST
    assert created[0].data["id"] == ticket.id
    assert created[0].data["internal_notes"] is None

    assert [job.kind for job in events.outbound] == [realtime_events.OUTBOUND_TICKET_CREATED]
    assert events.outbound[0].payload["requester"]["username"] == requester.username


def test_create_rejects_unknown_vocabulary():
    with pytest.raises(pydantic.ValidationError):
        _create_payload(department="Marketing")
    with pytest.raises(pydantic.ValidationError):
        _create_payload(priority="Critical")


def test_create_rejects_short_description():
    with pytest.raises(pydantic.ValidationError):
        _create_payload(description="short")


# =============================================================================
# Read
# =============================================================================

def test_get_ticket_missing_is_not_found(db, admin):
    with pytest.raises(NotFoundError):
        ticket_service.get_ticket(db, actor=session_for(admin), ticket_id=999)


def test_get_ticket_checks_visibility(db, requester, technician, other_technician, other_requester):
    ticket = make_ticket(db, requester, assignee=other_technician)

    with pytest.raises(AuthorizationError):
        ticket_service.get_ticket(db, actor=session_for(technician), ticket_id=ticket.id)
    with pytest.raises(AuthorizationError):
        ticket_service.get_ticket(db, actor=session_for(other_requester), ticket_id=ticket.id)

    found = ticket_service.get_ticket(db, actor=session_for(requester), ticket_id=ticket.id)
    assert found.id == ticket.id


def test_internal_notes_hidden_from_requester(db, requester, technician):
    ticket = make_ticket(db, requester, internal_notes="Replace fuser unit")

    as_requester = ticket_service.to_ticket_read(ticket, session_for(requester))
    as_staff = ticket_service.to_ticket_read(ticket, session_for(technician))

    assert as_requester.internal_notes is None
    assert as_staff.internal_notes == "Replace fuser unit"
    assert ticket_service.ticket_payload(ticket)["internal_notes"] is None


def test_detail_hides_internal_messages_from_requester(db, requester, technician):
    ticket = make_ticket(db, requester, assignee=technician)
    db.add_all(
        [
            ChatMessage(ticket_id=ticket.id, author_id=requester.id, body="Any news?"),
            ChatMessage(ticket_id=ticket.id, author_id=technician.id, body="Ordered part", is_internal=True),
        ]
    )
    db.commit()

    requester_view = ticket_service.get_ticket_detail(
        db, actor=session_for(requester), ticket_id=ticket.id
    )
    staff_view = ticket_service.get_ticket_detail(
        db, actor=session_for(technician), ticket_id=ticket.id
    )

    assert [m.message for m in requester_view.messages] == ["Any news?"]
    assert [m.message for m in staff_view.messages] == ["Any news?", "Ordered part"]


# =============================================================================
# Update
# =============================================================================

def test_requester_cannot_change_status(db, requester):
    ticket = make_ticket(db, requester)
    with pytest.raises(AuthorizationError):
        _update(db, requester, ticket.id, status=TicketStatus.CLOSED)


def test_requester_can_edit_own_description(db, requester):
    ticket = make_ticket(db, requester)
    updated = _update(db, requester, ticket.id, description="Still jamming after restart.")
    assert updated.description == "Still jamming after restart."


def test_requester_id_cannot_be_patched():
    with pytest.raises(pydantic.ValidationError):
        TicketUpdate.model_validate({"requester_id": 5})


def test_patch_rejects_null_for_required_fields():
    with pytest.raises(pydantic.ValidationError):
        TicketUpdate.model_validate({"status": None})


def test_closed_at_is_stamped_once(db, requester, technician):
    ticket = make_ticket(db, requester, assignee=technician)

    resolved = _update(db, technician, ticket.id, status=TicketStatus.RESOLVED)
    first_closed_at = resolved.closed_at
    assert first_closed_at is not None

    closed = _update(db, technician, ticket.id, status=TicketStatus.CLOSED)
    assert closed.closed_at == first_closed_at

    reopened = _update(db, technician, ticket.id, status=TicketStatus.IN_PROGRESS)
    assert reopened.closed_at == first_closed_at


def test_noop_patch_changes_nothing(db, requester, technician):
    ticket = make_ticket(db, requester, assignee=technician)
    before = ticket.updated_at
    events = EventBatch()

    result = _update(db, technician, ticket.id, events=events, name=ticket.name, status=ticket.status)

    assert result.updated_at == before
    assert events.is_empty


def test_update_emits_ticket_updated(db, requester, technician, events):
    ticket = make_ticket(db, requester, assignee=technician)
    _update(db, technician, ticket.id, events=events, priority=TicketPriority.HIGH)

    updated = events.of_type(realtime_events.TICKET_UPDATED)
    assert len(updated) == 1
    assert updated[0].data["priority"] == TicketPriority.HIGH.value
    assert events.of_type(realtime_events.TICKET_ASSIGNED) == []
    assert events.outbound == []


def test_assignment_notifies_assignee(db, requester, technician, admin, events):
    ticket = make_ticket(db, requester)
    _update(db, admin, ticket.id, events=events, assignee_id=technician.id)

    assigned = events.of_type(realtime_events.TICKET_ASSIGNED)
    assert len(assigned) == 1
    assert assigned[0].audience == Audience.USER
    assert assigned[0].user_id == technician.id
    assert assigned[0].data["assigned_by"] == admin.username
    assert [job.kind for job in events.outbound] == [realtime_events.OUTBOUND_TICKET_ASSIGNED]


def test_unassign_does_not_notify(db, requester, technician, events):
    ticket = make_ticket(db, requester, assignee=technician)
    updated = _update(db, technician, ticket.id, events=events, assignee_id=None)

    assert updated.assignee_id is None
    assert events.of_type(realtime_events.TICKET_ASSIGNED) == []
    assert len(events.of_type(realtime_events.TICKET_UPDATED)) == 1
    # Unassigned tickets stay visible to every technician
    assert events.access == []


def test_reassignment_revokes_previous_technician_channel(db, requester, technician, other_technician, admin, events):
    ticket = make_ticket(db, requester, assignee=technician)
    _update(db, admin, ticket.id, events=events, assignee_id=other_technician.id)

    assert events.access == [realtime_events.ticket_access_revoked(technician.id, ticket.id)]


def test_reassignment_away_from_admin_keeps_access(db, requester, technician, admin, events):
    ticket = make_ticket(db, requester, assignee=admin)
    _update(db, admin, ticket.id, events=events, assignee_id=technician.id)

    assert events.access == []


def test_assignee_must_exist(db, requester, admin):
    ticket = make_ticket(db, requester)
    with pytest.raises(ValidationError):
        _update(db, admin, ticket.id, assignee_id=4242)


# =============================================================================
# Delete
# =============================================================================

def test_only_admin_can_delete(db, requester, technician):
    ticket = make_ticket(db, requester, assignee=technician)
    for user in (requester, technician):
        with pytest.raises(AuthorizationError):
            ticket_service.delete_ticket(
                db, actor=session_for(user), ticket_id=ticket.id, events=EventBatch()
            )


def test_delete_missing_ticket_is_not_found_for_anyone(db, requester):
    with pytest.raises(NotFoundError):
        ticket_service.delete_ticket(
            db, actor=session_for(requester), ticket_id=999, events=EventBatch()
        )


def test_delete_removes_messages(db, requester, admin, events):
    ticket = make_ticket(db, requester)
    db.add(ChatMessage(ticket_id=ticket.id, author_id=requester.id, body="Hello"))
    db.commit()
    ticket_id = ticket.id

    ticket_service.delete_ticket(db, actor=session_for(admin), ticket_id=ticket_id, events=events)

    assert db.get(Ticket, ticket_id) is None
    assert db.query(ChatMessage).filter(ChatMessage.ticket_id == ticket_id).count() == 0
    deleted = events.of_type(realtime_events.TICKET_DELETED)
    assert [e.data for e in deleted] == [{"id": ticket_id}]


# =============================================================================
# List
# =============================================================================

def _list(db, user, page=1, limit=10, **filters):
    return ticket_service.list_tickets(
        db,
        actor=session_for(user),
        filters=ticket_service.TicketFilters(**filters),
        pagination=PaginationParams(page=page, limit=limit),
    )


def test_list_newest_first(db, requester):
    first = make_ticket(db, requester, name="first")
    second = make_ticket(db, requester, name="second")

    result = _list(db, requester)

    assert [t.id for t in result.items] == [second.id, first.id]
    assert result.pagination.total == 2
    assert result.pagination.total_pages == 1


def test_list_filters(db, requester, technician, admin):
    make_ticket(db, requester, name="VPN down", department=Department.IT)
    make_ticket(
        db,
        requester,
        name="Payroll export",
        department=Department.FINANCE,
        priority=TicketPriority.URGENT,
        assignee=technician,
    )

    assert [t.name for t in _list(db, admin, department=Department.FINANCE).items] == ["Payroll export"]
    assert [t.name for t in _list(db, admin, priority=TicketPriority.URGENT).items] == ["Payroll export"]
    assert [t.name for t in _list(db, admin, assigned_to="unassigned").items] == ["VPN down"]
    assert [t.name for t in _list(db, admin, assigned_to=str(technician.id)).items] == ["Payroll export"]
    assert _list(db, admin, status=TicketStatus.CLOSED).items == []


def test_list_search_is_case_insensitive(db, requester, admin):
    make_ticket(db, requester, name="Broken chair", office="B-12")
    make_ticket(db, requester, name="Printer jam", description="Paper stuck in tray two.")

    assert [t.name for t in _list(db, admin, search="CHAIR").items] == ["Broken chair"]
    assert [t.name for t in _list(db, admin, search="tray").items] == ["Printer jam"]
    assert [t.name for t in _list(db, admin, search="b-12").items] == ["Broken chair"]


def test_list_search_treats_wildcards_literally(db, requester, admin):
    make_ticket(db, requester, name="Printer jam")
    make_ticket(db, requester, name="Disk 100% full")
    make_ticket(db, requester, name="Rename user_home share")

    assert [t.name for t in _list(db, admin, search="%").items] == ["Disk 100% full"]
    assert [t.name for t in _list(db, admin, search="_").items] == ["Rename user_home share"]
    assert [t.name for t in _list(db, admin, search="0% f").items] == ["Disk 100% full"]


def test_list_invalid_assigned_to(db, admin):
    with pytest.raises(ValidationError):
        _list(db, admin, assigned_to="someone")


def test_list_pagination(db, requester):
    for i in range(5):
        make_ticket(db, requester, name=f"ticket {i}")

    page = _list(db, requester, page=2, limit=2)

    assert len(page.items) == 2
    assert page.pagination.total == 5
    assert page.pagination.total_pages == 3


def test_list_page_out_of_range(db, requester):
    make_ticket(db, requester)
    with pytest.raises(ValidationError):
        _list(db, requester, page=2, limit=10)


def test_empty_list_first_page_is_valid(db, requester):
    result = _list(db, requester)
    assert result.items == []
    assert result.pagination.total_pages == 0


# =============================================================================
# Scenarios
# =============================================================================

def test_create_then_get_returns_input_unchanged(db, requester):
    data = _create_payload(office="  Room 7 ", priority=TicketPriority.LOW)
    created = ticket_service.create_ticket(
        db, actor=session_for(requester), data=data, events=EventBatch()
    )

    fetched = ticket_service.get_ticket(db, actor=session_for(requester), ticket_id=created.id)

    for field in ("name", "floor", "office", "department", "description", "priority"):
        assert getattr(fetched, field) == getattr(data, field)
    assert fetched.status == TicketStatus.NEW
    assert fetched.assignee_id is None
    assert fetched.closed_at is None


def test_same_patch_twice_is_idempotent(db, requester, technician):
    ticket = make_ticket(db, requester, assignee=technician)
    first_events, second_events = EventBatch(), EventBatch()

    first = _update(db, technician, ticket.id, events=first_events, status=TicketStatus.CLOSED)
    state = (first.status, first.closed_at, first.updated_at)
    second = _update(db, technician, ticket.id, events=second_events, status=TicketStatus.CLOSED)

    assert (second.status, second.closed_at, second.updated_at) == state
    assert not first_events.is_empty
    assert second_events.is_empty


def test_resolve_then_assign_scenario(db, requester, technician, admin):
    ticket = ticket_service.create_ticket(
        db,
        actor=session_for(requester),
        data=_create_payload(office="301", department=Department.IT),
        events=EventBatch(),
    )
    assert ticket.status == TicketStatus.NEW
    assert ticket.priority == TicketPriority.MEDIUM

    resolve_events = EventBatch()
    resolved = _update(db, technician, ticket.id, events=resolve_events, status=TicketStatus.RESOLVED)
    assert resolved.closed_at is not None
    assert resolve_events.of_type(realtime_events.TICKET_ASSIGNED) == []
    assert resolve_events.outbound == []

    assign_events = EventBatch()
    _update(db, admin, ticket.id, events=assign_events, assignee_id=technician.id)
    assigned = assign_events.of_type(realtime_events.TICKET_ASSIGNED)
    assert [e.user_id for e in assigned] == [technician.id]
