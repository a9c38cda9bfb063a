import pytest

from conftest import ADMIN, CUSTOMER
from ticketflow.agents.application import AgentManagementService
from ticketflow.config import MessageRole, TicketStatus
from ticketflow.core.exceptions import (
    InactiveAgentException,
    InvalidTransitionException,
    NoCapacityException,
    ResourceNotFoundException,
    ValidationException,
)


async def billing_ticket(engine, subject="Double charge"):
    return await engine.lifecycle.create_ticket(
        subject=subject,
        description="I was charged twice",
        customer=CUSTOMER,
        category="billing",
    )


@pytest.fixture
def management(engine):
    return AgentManagementService(engine.registry, engine.reconciler, engine.coordinator, engine.audit)


class TestMassReassignment:
    @pytest.mark.asyncio
    async def test_tickets_move_to_generalist_when_no_specialist_left(self, engine):
        leaving = await engine.add_agent("Avery", ["billing"], max_load=1)
        ticket = await billing_ticket(engine)
        generalist = await engine.add_agent("Blake", ["general"], max_load=5)

        result = await engine.coordinator.reassign_agent_tickets(leaving.id)

        assert [r.ticket_id for r in result.reassigned] == [ticket.id]
        assert result.reassigned[0].new_agent_name == "Blake"
        assert result.unassigned == []
        assert (await engine.agent(generalist.id)).current_load == 1
        assert (await engine.agent(leaving.id)).current_load == 0

        stored = await engine.ticket(ticket.id)
        assert stored.assigned_agent_id == generalist.id
        assert stored.messages[-1].content == (
            "Ticket reassigned to Blake due to previous agent deactivation"
        )

    @pytest.mark.asyncio
    async def test_other_specialist_preferred(self, engine):
        leaving = await engine.add_agent("Avery", ["billing"])
        ticket = await billing_ticket(engine)
        await engine.add_agent("Blake", ["general"])
        specialist = await engine.add_agent("Casey", ["billing"])

        await engine.coordinator.reassign_agent_tickets(leaving.id)

        assert (await engine.ticket(ticket.id)).assigned_agent_id == specialist.id

    @pytest.mark.asyncio
    async def test_tickets_left_unassigned_when_nobody_has_capacity(self, engine):
        leaving = await engine.add_agent("Avery", ["billing"])
        ticket = await billing_ticket(engine)

        result = await engine.coordinator.reassign_agent_tickets(leaving.id)

        assert result.unassigned == [ticket.id]
        stored = await engine.ticket(ticket.id)
        assert stored.assigned_agent_id is None
        assert stored.messages[-1].role == MessageRole.SYSTEM
        assert stored.messages[-1].content == (
            "Ticket marked as unassigned - previous agent deactivated and no available agents"
        )

    @pytest.mark.asyncio
    async def test_capacity_spreads_tickets(self, engine):
        leaving = await engine.add_agent("Avery", ["billing"])
        first = await billing_ticket(engine, "First")
        engine.clock.advance(minutes=1)
        second = await billing_ticket(engine, "Second")
        await engine.add_agent("Blake", ["general"], max_load=1)

        result = await engine.coordinator.reassign_agent_tickets(leaving.id)

        assert [r.ticket_id for r in result.reassigned] == [first.id]
        assert result.unassigned == [second.id]
        assert result.total == 2

    @pytest.mark.asyncio
    async def test_terminal_tickets_keep_their_agent(self, engine):
        leaving = await engine.add_agent("Avery", ["billing"])
        done = await billing_ticket(engine)
        await engine.lifecycle.change_status(done.id, TicketStatus.RESOLVED, ADMIN)

        result = await engine.coordinator.reassign_agent_tickets(leaving.id)

        assert result.total == 0
        assert (await engine.ticket(done.id)).assigned_agent_id == leaving.id

    @pytest.mark.asyncio
    async def test_reopen_after_owner_deactivated_routes_to_active_agent(self, engine):
        leaving = await engine.add_agent("Avery", ["billing"])
        done = await billing_ticket(engine)
        await engine.lifecycle.change_status(done.id, TicketStatus.RESOLVED, ADMIN)
        generalist = await engine.add_agent("Blake", ["general"])
        await engine.coordinator.deactivate_agent(leaving.id, ADMIN)

        reopened = await engine.lifecycle.add_message(done.id, CUSTOMER, "Still broken")

        assert reopened.status == TicketStatus.OPEN
        assert reopened.assigned_agent_id == generalist.id
        assert (await engine.agent(leaving.id)).current_load == 0
        assert (await engine.agent(generalist.id)).current_load == 1
        note = reopened.messages[-1]
        assert note.role == MessageRole.SYSTEM
        assert note.content == "Ticket reassigned to Blake on reopen, previous agent inactive"

    @pytest.mark.asyncio
    async def test_reopen_after_owner_deactivated_without_agents_unassigns(self, engine):
        leaving = await engine.add_agent("Avery", ["billing"])
        done = await billing_ticket(engine)
        await engine.lifecycle.change_status(done.id, TicketStatus.CLOSED, ADMIN)
        await engine.coordinator.deactivate_agent(leaving.id, ADMIN)

        reopened = await engine.lifecycle.change_status(done.id, TicketStatus.OPEN, ADMIN)

        stored = await engine.ticket(reopened.id)
        assert stored.status == TicketStatus.OPEN
        assert stored.assigned_agent_id is None
        assert (await engine.agent(leaving.id)).current_load == 0
        assert any(
            m.content.startswith("Ticket marked as unassigned on reopen") for m in stored.messages
        )

    @pytest.mark.asyncio
    async def test_unknown_agent_not_found(self, engine):
        with pytest.raises(ResourceNotFoundException):
            await engine.coordinator.reassign_agent_tickets("3c0c8f55-8f0c-4e43-a7a4-6a8c7a0d2e11")


class TestDeactivation:
    @pytest.mark.asyncio
    async def test_deactivation_redistributes_and_reports(self, engine):
        leaving = await engine.add_agent("Avery", ["billing"])
        moved = await billing_ticket(engine, "Moved")
        engine.clock.advance(minutes=1)
        await engine.add_agent("Blake", ["general"], max_load=1)
        stranded = await billing_ticket(engine, "Stranded")

        result = await engine.coordinator.deactivate_agent(leaving.id, ADMIN)
        await engine.dispatcher.drain()

        assert not (await engine.agent(leaving.id)).is_active
        assert [r.ticket_id for r in result.reassigned] == [moved.id]
        assert result.unassigned == [stranded.id]

        deactivation = [e for e in engine.audit.events if e.action == "agent.deactivated"]
        assert len(deactivation) == 1
        assert deactivation[0].severity == "warning"
        assert deactivation[0].metadata == {"reassigned": 1, "unassigned": 1}
        assert engine.audit.actions()[-2:] == ["ticket.reassigned", "ticket.unassigned"]

        name, payload = engine.notifier.events[-1]
        assert name == "agent.deactivated"
        assert payload == result.to_dict()

    @pytest.mark.asyncio
    async def test_deactivated_agent_gets_no_new_tickets(self, engine):
        leaving = await engine.add_agent("Avery", ["billing"])
        await engine.coordinator.deactivate_agent(leaving.id)

        ticket = await billing_ticket(engine)

        assert ticket.assigned_agent_id is None

    @pytest.mark.asyncio
    async def test_already_inactive_rejected(self, engine):
        agent = await engine.add_agent("Avery", ["billing"])
        await engine.coordinator.deactivate_agent(agent.id)

        with pytest.raises(InvalidTransitionException):
            await engine.coordinator.deactivate_agent(agent.id)


class TestManualReassign:
    @pytest.mark.asyncio
    async def test_moves_ticket_and_counters(self, engine):
        source = await engine.add_agent("Avery", ["billing"])
        ticket = await billing_ticket(engine)
        target = await engine.add_agent("Blake", ["general"], email="blake@support.test")

        ticket = await engine.coordinator.manual_reassign(ticket.id, source.id, target.id, ADMIN)
        await engine.dispatcher.drain()

        assert ticket.assigned_agent_id == target.id
        assert ticket.messages[-1].content == "Ticket manually reassigned from Avery to Blake"
        assert (await engine.agent(source.id)).current_load == 0
        assert (await engine.agent(target.id)).current_load == 1
        assert engine.audit.actions()[-1] == "ticket.reassigned"
        assert engine.notifier.names()[-1] == "ticket.reassigned"
        assert engine.emails.kinds_to("blake@support.test") == ["ticket_assigned"]

    @pytest.mark.asyncio
    async def test_source_must_own_ticket(self, engine):
        owner = await engine.add_agent("Avery", ["billing"])
        ticket = await billing_ticket(engine)
        other = await engine.add_agent("Blake", ["general"])
        target = await engine.add_agent("Casey", ["general"])

        with pytest.raises(InvalidTransitionException):
            await engine.coordinator.manual_reassign(ticket.id, other.id, target.id)

        assert (await engine.ticket(ticket.id)).assigned_agent_id == owner.id
        assert (await engine.agent(target.id)).current_load == 0

    @pytest.mark.asyncio
    async def test_same_agent_rejected(self, engine):
        owner = await engine.add_agent("Avery", ["billing"])
        ticket = await billing_ticket(engine)

        with pytest.raises(InvalidTransitionException):
            await engine.coordinator.manual_reassign(ticket.id, owner.id, owner.id)

    @pytest.mark.asyncio
    async def test_terminal_ticket_rejected(self, engine):
        owner = await engine.add_agent("Avery", ["billing"])
        ticket = await billing_ticket(engine)
        target = await engine.add_agent("Blake", ["general"])
        await engine.lifecycle.change_status(ticket.id, TicketStatus.CLOSED, ADMIN)

        with pytest.raises(InvalidTransitionException):
            await engine.coordinator.manual_reassign(ticket.id, owner.id, target.id)

    @pytest.mark.asyncio
    async def test_inactive_target_rejected(self, engine):
        owner = await engine.add_agent("Avery", ["billing"])
        ticket = await billing_ticket(engine)
        target = await engine.add_agent("Blake", ["general"])
        await engine.coordinator.deactivate_agent(target.id)

        with pytest.raises(InactiveAgentException):
            await engine.coordinator.manual_reassign(ticket.id, owner.id, target.id)

        assert (await engine.agent(owner.id)).current_load == 1

    @pytest.mark.asyncio
    async def test_full_target_rejected_without_side_effects(self, engine):
        owner = await engine.add_agent("Avery", ["billing"])
        ticket = await billing_ticket(engine)
        target = await engine.add_agent("Blake", ["general"], max_load=1)
        await engine.registry.increment_load(target.id)
        await engine.registry.commit()

        with pytest.raises(NoCapacityException):
            await engine.coordinator.manual_reassign(ticket.id, owner.id, target.id)

        assert (await engine.agent(owner.id)).current_load == 1
        assert (await engine.agent(target.id)).current_load == 1
        assert (await engine.ticket(ticket.id)).assigned_agent_id == owner.id

    @pytest.mark.asyncio
    async def test_unknown_ids_not_found(self, engine):
        owner = await engine.add_agent("Avery", ["billing"])
        ticket = await billing_ticket(engine)

        with pytest.raises(ResourceNotFoundException):
            await engine.coordinator.manual_reassign(ticket.id, owner.id, "not-an-agent")
        with pytest.raises(ResourceNotFoundException):
            await engine.coordinator.manual_reassign("not-a-ticket", owner.id, owner.id)


class TestAgentManagement:
    @pytest.mark.asyncio
    async def test_register_is_audited(self, engine, management):
        agent = await management.register_agent("Avery", categories=["billing"], actor=ADMIN)

        event = engine.audit.events[-1]
        assert event.action == "agent.created"
        assert event.target.id == agent.id
        assert event.metadata["categories"] == ["billing"]

    @pytest.mark.asyncio
    async def test_profile_update_records_before_and_after(self, engine, management):
        agent = await management.register_agent("Avery", categories=["billing"], max_load=3)

        updated, reassignment = await management.update_agent(agent.id, ADMIN, max_load=8)

        assert updated.max_load == 8
        assert reassignment is None
        event = engine.audit.events[-1]
        assert event.action == "agent.updated"
        assert event.metadata["before"]["max_load"] == 3
        assert event.metadata["after"]["max_load"] == 8

    @pytest.mark.asyncio
    async def test_deactivating_update_redistributes(self, engine, management):
        agent = await management.register_agent("Avery", categories=["billing"])
        ticket = await billing_ticket(engine)

        updated, reassignment = await management.update_agent(agent.id, ADMIN, is_active=False)

        assert not updated.is_active
        assert reassignment.unassigned == [ticket.id]
        assert "agent.updated" not in engine.audit.actions()
        assert "agent.deactivated" in engine.audit.actions()

    @pytest.mark.asyncio
    async def test_reactivation_is_a_plain_update(self, engine, management):
        agent = await management.register_agent("Avery", is_active=False)

        updated, reassignment = await management.update_agent(agent.id, ADMIN, is_active=True)

        assert updated.is_active
        assert reassignment is None

    @pytest.mark.asyncio
    async def test_empty_update_rejected(self, engine, management):
        agent = await management.register_agent("Avery")

        with pytest.raises(ValidationException):
            await management.update_agent(agent.id, ADMIN)

    @pytest.mark.asyncio
    async def test_reconcile_audits_corrections(self, engine, management):
        agent = await management.register_agent("Avery", categories=["billing"])
        await engine.agents.set_load(agent.id, 4)

        corrections = await management.reconcile_loads(ADMIN)

        assert [c.corrected_load for c in corrections] == [0]
        event = engine.audit.events[-1]
        assert event.action == "agent.loads_reconciled"
        assert event.severity == "warning"
