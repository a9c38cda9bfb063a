from datetime import timedelta

import pytest

from conftest import ADMIN, AGENT_ACTOR, CUSTOMER, START
from ticketflow.audit.application import SYSTEM_ACTOR
from ticketflow.config import MessageRole, TicketStatus
from ticketflow.core.exceptions import (
    InactiveAgentException,
    InvalidTransitionException,
    NoCapacityException,
    ResourceNotFoundException,
    ValidationException,
)


async def open_ticket(engine, priority="medium", category="technical", subject="Launcher broken"):
    return await engine.lifecycle.create_ticket(
        subject=subject,
        description="The launcher shows a blank window",
        customer=CUSTOMER,
        priority=priority,
        category=category,
    )


@pytest.mark.asyncio
async def test_urgent_ticket_full_lifecycle(engine):
    agent = await engine.add_agent("Uma", ["technical"], email="uma@support.test")
    ticket = await open_ticket(engine, priority="urgent")

    assert ticket.assigned_agent_id == agent.id
    assert ticket.sla_due_at == START + timedelta(hours=8)
    assert (await engine.agent(agent.id)).current_load == 1

    replied_at = engine.clock.advance(hours=1)
    ticket = await engine.lifecycle.add_message(ticket.id, AGENT_ACTOR, "Please reinstall the driver")
    assert ticket.status == TicketStatus.IN_PROGRESS
    assert ticket.first_response_at == replied_at

    resolved_at = engine.clock.advance(hours=1)
    ticket = await engine.lifecycle.change_status(ticket.id, TicketStatus.RESOLVED, AGENT_ACTOR)
    assert ticket.resolved_at == resolved_at
    assert (await engine.agent(agent.id)).current_load == 0

    reopened_at = engine.clock.advance(hours=1)
    ticket = await engine.lifecycle.add_message(ticket.id, CUSTOMER, "Still broken after reinstalling")
    assert ticket.status == TicketStatus.OPEN
    assert ticket.resolved_at is None
    assert ticket.reopen_count == 1
    assert ticket.sla_due_at == reopened_at + timedelta(hours=8)
    assert (await engine.agent(agent.id)).current_load == 1

    stored = await engine.ticket(ticket.id)
    assert stored.sla_due_at == reopened_at + timedelta(hours=8)
    assert [m.role for m in stored.messages].count(MessageRole.AGENT) == 1


@pytest.mark.asyncio
async def test_create_without_agents_leaves_ticket_unassigned(engine):
    ticket = await open_ticket(engine)
    await engine.dispatcher.drain()

    assert ticket.assigned_agent_id is None
    assert len(ticket.messages) == 1
    assert engine.audit.actions() == ["ticket.created"]
    assert engine.notifier.names() == ["ticket.created"]
    assert engine.emails.kinds_to(CUSTOMER.email) == ["ticket_created"]


@pytest.mark.asyncio
async def test_create_with_assignment_notifies_agent(engine):
    await engine.add_agent("Uma", ["technical"], email="uma@support.test")

    await open_ticket(engine)
    await engine.dispatcher.drain()

    assert engine.audit.actions() == ["ticket.created", "ticket.assigned"]
    assert engine.emails.kinds_to("uma@support.test") == ["ticket_assigned"]


@pytest.mark.asyncio
async def test_create_respects_capacity(engine):
    agent = await engine.add_agent("Uma", ["technical"], max_load=1)

    first = await open_ticket(engine)
    second = await open_ticket(engine)

    assert first.assigned_agent_id == agent.id
    assert second.assigned_agent_id is None
    assert (await engine.agent(agent.id)).current_load == 1


@pytest.mark.asyncio
async def test_create_uses_defaults_and_classifier(engine):
    ticket = await engine.lifecycle.create_ticket(
        subject="Refund",
        description="I want my money back",
        customer=CUSTOMER,
    )

    assert ticket.priority == "medium"
    assert ticket.category == "billing"
    assert ticket.customer_email == CUSTOMER.email


@pytest.mark.asyncio
async def test_failed_create_persists_nothing(engine):
    with pytest.raises(ValidationException):
        await open_ticket(engine, priority="critical")

    tickets, total = await engine.lifecycle.list_tickets()
    assert tickets == []
    assert total == 0


@pytest.mark.asyncio
async def test_unknown_ticket_not_found(engine):
    with pytest.raises(ResourceNotFoundException):
        await engine.lifecycle.get_ticket("8a6e0804-2bd0-4672-b79d-d97027f9071a")
    with pytest.raises(ResourceNotFoundException):
        await engine.lifecycle.add_message("garbage", CUSTOMER, "hi")


@pytest.mark.asyncio
async def test_reply_to_closed_ticket_rejected(engine):
    ticket = await open_ticket(engine)
    await engine.lifecycle.change_status(ticket.id, TicketStatus.CLOSED, ADMIN)

    with pytest.raises(InvalidTransitionException):
        await engine.lifecycle.add_message(ticket.id, CUSTOMER, "Hello?")

    assert len((await engine.ticket(ticket.id)).messages) == 2


@pytest.mark.asyncio
async def test_system_actor_cannot_post_messages(engine):
    ticket = await open_ticket(engine)

    with pytest.raises(ValidationException):
        await engine.lifecycle.add_message(ticket.id, SYSTEM_ACTOR, "beep")


@pytest.mark.asyncio
async def test_customer_reopen_is_audited(engine):
    await engine.add_agent("Uma", ["technical"])
    ticket = await open_ticket(engine)
    await engine.lifecycle.change_status(ticket.id, TicketStatus.RESOLVED, AGENT_ACTOR)

    await engine.lifecycle.add_message(ticket.id, CUSTOMER, "It happened again")

    assert engine.audit.actions()[-2:] == ["ticket.message_added", "ticket.reopened"]


@pytest.mark.asyncio
async def test_agent_reply_emails_customer(engine):
    ticket = await open_ticket(engine)

    await engine.lifecycle.add_message(ticket.id, AGENT_ACTOR, "On it")
    await engine.dispatcher.drain()

    assert engine.emails.kinds_to(CUSTOMER.email) == ["ticket_created", "ticket_reply"]
    assert engine.notifier.names()[-1] == "ticket.replied"


@pytest.mark.asyncio
async def test_same_status_change_rejected(engine):
    ticket = await open_ticket(engine)

    with pytest.raises(InvalidTransitionException):
        await engine.lifecycle.change_status(ticket.id, TicketStatus.OPEN, ADMIN)


@pytest.mark.asyncio
async def test_resolving_unassigned_ticket_touches_no_counter(engine):
    bystander = await engine.add_agent("Billie", ["billing"])
    ticket = await open_ticket(engine)

    await engine.lifecycle.change_status(ticket.id, TicketStatus.RESOLVED, ADMIN)

    assert (await engine.agent(bystander.id)).current_load == 0


@pytest.mark.asyncio
async def test_closing_resolved_ticket_keeps_load_released(engine):
    agent = await engine.add_agent("Uma", ["technical"])
    ticket = await open_ticket(engine)
    await engine.lifecycle.change_status(ticket.id, TicketStatus.RESOLVED, ADMIN)

    ticket = await engine.lifecycle.change_status(ticket.id, TicketStatus.CLOSED, ADMIN)

    assert ticket.status == TicketStatus.CLOSED
    assert (await engine.agent(agent.id)).current_load == 0


@pytest.mark.asyncio
async def test_priority_change_recalculates_sla(engine):
    ticket = await open_ticket(engine, priority="low")
    changed_at = engine.clock.advance(hours=2)

    ticket = await engine.lifecycle.change_priority(ticket.id, "urgent", ADMIN)

    assert ticket.sla_due_at == changed_at + timedelta(hours=8)
    assert "ticket.sla_recalculated" in engine.audit.actions()
    event = engine.audit.events[-1]
    assert event.metadata["old_priority"] == "low"
    assert event.metadata["new_priority"] == "urgent"


@pytest.mark.asyncio
async def test_category_change_keeps_assignment(engine):
    agent = await engine.add_agent("Uma", ["technical"])
    ticket = await open_ticket(engine)

    ticket = await engine.lifecycle.change_category(ticket.id, "billing", ADMIN)

    assert ticket.category == "billing"
    assert ticket.assigned_agent_id == agent.id


@pytest.mark.asyncio
async def test_assign_unassigned_ticket(engine):
    ticket = await open_ticket(engine)
    agent = await engine.add_agent("Uma", ["technical"], email="uma@support.test")

    ticket = await engine.lifecycle.assign_ticket(ticket.id, agent.id, ADMIN)
    await engine.dispatcher.drain()

    assert ticket.assigned_agent_id == agent.id
    assert (await engine.agent(agent.id)).current_load == 1
    assert "ticket.assigned" in engine.audit.actions()
    assert engine.emails.kinds_to("uma@support.test") == ["ticket_assigned"]


@pytest.mark.asyncio
async def test_assign_moves_load_between_agents(engine):
    first = await engine.add_agent("Uma", ["technical"])
    ticket = await open_ticket(engine)
    second = await engine.add_agent("Vic", ["billing"])

    await engine.lifecycle.assign_ticket(ticket.id, second.id, ADMIN)

    assert (await engine.agent(first.id)).current_load == 0
    assert (await engine.agent(second.id)).current_load == 1
    assert engine.audit.actions()[-1] == "ticket.reassigned"


@pytest.mark.asyncio
async def test_assign_to_inactive_agent_rejected(engine):
    ticket = await open_ticket(engine)
    agent = await engine.add_agent("Uma", ["technical"])
    await engine.registry.update_agent(agent.id, is_active=False)
    await engine.registry.commit()

    with pytest.raises(InactiveAgentException):
        await engine.lifecycle.assign_ticket(ticket.id, agent.id, ADMIN)


@pytest.mark.asyncio
async def test_assign_to_full_agent_leaves_counters_untouched(engine):
    first = await engine.add_agent("Uma", ["technical"])
    ticket = await open_ticket(engine)
    full = await engine.add_agent("Vic", ["billing"], max_load=1)
    await open_ticket(engine, category="billing")

    with pytest.raises(NoCapacityException):
        await engine.lifecycle.assign_ticket(ticket.id, full.id, ADMIN)

    assert (await engine.agent(first.id)).current_load == 1
    assert (await engine.agent(full.id)).current_load == 1
    assert (await engine.ticket(ticket.id)).assigned_agent_id == first.id


@pytest.mark.asyncio
async def test_assign_terminal_ticket_rejected(engine):
    ticket = await open_ticket(engine)
    agent = await engine.add_agent("Uma", ["technical"])
    await engine.lifecycle.change_status(ticket.id, TicketStatus.CLOSED, ADMIN)

    with pytest.raises(InvalidTransitionException):
        await engine.lifecycle.assign_ticket(ticket.id, agent.id, ADMIN)
    assert (await engine.agent(agent.id)).current_load == 0


@pytest.mark.asyncio
async def test_assign_unknown_agent_not_found(engine):
    ticket = await open_ticket(engine)

    with pytest.raises(ResourceNotFoundException):
        await engine.lifecycle.assign_ticket(ticket.id, "6f1f4a55-0b0e-4a4c-9a57-000000000000", ADMIN)


class TestCompositeUpdate:
    @pytest.mark.asyncio
    async def test_agent_must_give_remark(self, engine):
        ticket = await open_ticket(engine)

        with pytest.raises(ValidationException):
            await engine.lifecycle.update_ticket(ticket.id, AGENT_ACTOR, priority="high")

    @pytest.mark.asyncio
    async def test_remark_length_limited(self, engine):
        ticket = await open_ticket(engine)

        with pytest.raises(ValidationException):
            await engine.lifecycle.update_ticket(ticket.id, ADMIN, priority="high", remark="x" * 501)

    @pytest.mark.asyncio
    async def test_update_without_changes_rejected(self, engine):
        ticket = await open_ticket(engine, priority="high")

        with pytest.raises(ValidationException):
            await engine.lifecycle.update_ticket(
                ticket.id, AGENT_ACTOR, priority="high", status="open", remark="nothing"
            )

    @pytest.mark.asyncio
    async def test_summary_note_lists_changes_and_remark(self, engine):
        ticket = await open_ticket(engine)

        ticket = await engine.lifecycle.update_ticket(
            ticket.id,
            AGENT_ACTOR,
            priority="high",
            category="billing",
            remark="customer clarified the issue",
        )

        note = ticket.messages[-1]
        assert note.role == MessageRole.SYSTEM
        assert note.content.startswith("Sam Support updated ticket: Category: technical → billing")
        assert "Priority: medium → high" in note.content
        assert note.content.endswith("Remark: customer clarified the issue")
        assert engine.audit.actions() == ["ticket.created", "ticket.updated", "ticket.sla_recalculated"]

    @pytest.mark.asyncio
    async def test_resolve_and_reassign_releases_both_agents(self, engine):
        first = await engine.add_agent("Uma", ["technical"])
        ticket = await open_ticket(engine)
        second = await engine.add_agent("Vic", ["billing"])

        ticket = await engine.lifecycle.update_ticket(
            ticket.id, ADMIN, status=TicketStatus.RESOLVED, assigned_agent_id=second.id
        )

        assert ticket.status == TicketStatus.RESOLVED
        assert ticket.assigned_agent_id == second.id
        assert (await engine.agent(first.id)).current_load == 0
        assert (await engine.agent(second.id)).current_load == 0

    @pytest.mark.asyncio
    async def test_reopen_and_reassign_lands_load_on_new_agent(self, engine):
        first = await engine.add_agent("Uma", ["technical"])
        ticket = await open_ticket(engine)
        await engine.lifecycle.change_status(ticket.id, TicketStatus.RESOLVED, ADMIN)
        second = await engine.add_agent("Vic", ["billing"])

        ticket = await engine.lifecycle.update_ticket(
            ticket.id, ADMIN, status=TicketStatus.OPEN, assigned_agent_id=second.id
        )

        assert ticket.status == TicketStatus.OPEN
        assert ticket.reopen_count == 1
        assert (await engine.agent(first.id)).current_load == 0
        assert (await engine.agent(second.id)).current_load == 1


@pytest.mark.asyncio
async def test_list_tickets_filters_and_pages(engine):
    await open_ticket(engine, priority="high", subject="First")
    engine.clock.advance(minutes=1)
    await open_ticket(engine, priority="low", subject="Second")
    engine.clock.advance(minutes=1)
    await open_ticket(engine, priority="high", subject="Third")

    high, total = await engine.lifecycle.list_tickets(priority="high")
    assert [t.subject for t in high] == ["Third", "First"]
    assert total == 2

    page, total = await engine.lifecycle.list_tickets(limit=1, offset=1)
    assert [t.subject for t in page] == ["Second"]
    assert total == 3


@pytest.mark.asyncio
async def test_workloads_match_open_tickets(engine):
    agent = await engine.add_agent("Uma", ["technical"])
    await open_ticket(engine)
    done = await open_ticket(engine)
    await engine.lifecycle.change_status(done.id, TicketStatus.RESOLVED, ADMIN)

    workloads = await engine.registry.get_workloads()

    assert len(workloads) == 1
    assert workloads[0].agent_id == agent.id
    assert workloads[0].current_load == 1
    assert workloads[0].open_tickets == 1
    assert workloads[0].is_consistent
