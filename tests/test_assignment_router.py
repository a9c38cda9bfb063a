import pytest

from conftest import CUSTOMER
from ticketflow.agents.application import AssignmentRouter, IClassifier
from ticketflow.config import DEFAULT_CATEGORY


class FixedClassifier(IClassifier):
    def __init__(self, category):
        self.category = category

    def classify(self, text):
        return self.category


@pytest.mark.asyncio
async def test_specialist_preferred_over_idle_generalist(engine):
    specialist = await engine.add_agent("Billie", ["billing"])
    await engine.add_agent("Gene", ["general"])
    await engine.agents.set_load(specialist.id, 5)

    chosen = await engine.router.find_available_agent("billing")

    assert chosen.id == specialist.id


@pytest.mark.asyncio
async def test_least_loaded_specialist_wins(engine):
    busy = await engine.add_agent("Busy", ["billing"])
    idle = await engine.add_agent("Idle", ["billing"])
    await engine.agents.set_load(busy.id, 3)
    await engine.agents.set_load(idle.id, 1)

    assert (await engine.router.find_available_agent("billing")).id == idle.id


@pytest.mark.asyncio
async def test_ties_broken_by_id(engine):
    first = await engine.add_agent("One", ["billing"])
    second = await engine.add_agent("Two", ["billing"])

    chosen = await engine.router.find_available_agent("billing")

    assert chosen.id == min(first.id, second.id)


@pytest.mark.asyncio
async def test_falls_back_to_generalist_when_specialists_full(engine):
    specialist = await engine.add_agent("Billie", ["billing"], max_load=1)
    generalist = await engine.add_agent("Gene", ["general"])
    await engine.registry.increment_load(specialist.id)

    assert (await engine.router.find_available_agent("billing")).id == generalist.id


@pytest.mark.asyncio
async def test_general_tickets_never_go_to_pure_specialists(engine):
    await engine.add_agent("Billie", ["billing"])

    assert await engine.router.find_available_agent("general") is None


@pytest.mark.asyncio
async def test_inactive_and_excluded_agents_skipped(engine):
    inactive = await engine.add_agent("Gone", ["billing"])
    excluded = await engine.add_agent("Leaving", ["billing"])
    await engine.registry.update_agent(inactive.id, is_active=False)

    assert await engine.router.find_available_agent("billing", exclude_agent_id=excluded.id) is None
    assert (await engine.router.find_available_agent("billing")).id == excluded.id


@pytest.mark.asyncio
async def test_acquire_claims_a_slot(engine):
    agent = await engine.add_agent("Billie", ["billing"], max_load=1)

    acquired = await engine.router.acquire_agent("billing")

    assert acquired.id == agent.id
    assert (await engine.agent(agent.id)).current_load == 1
    assert await engine.router.acquire_agent("billing") is None


@pytest.mark.asyncio
async def test_unknown_classifier_output_falls_back_to_default(engine):
    router = AssignmentRouter(engine.agents, engine.registry, FixedClassifier("hardware"))

    assert router.resolve_category("my keyboard broke") == DEFAULT_CATEGORY


@pytest.mark.asyncio
async def test_auto_assign_classifies_and_notes(engine):
    await engine.add_agent("Billie", ["billing"])
    ticket = await engine.lifecycle.create_ticket(
        subject="Refund please",
        description="I was charged twice for my subscription",
        customer=CUSTOMER,
        priority="high",
    )

    assert ticket.category == "billing"
    assert ticket.messages[-1].content == "Ticket auto-assigned to Billie (billing specialist)"


@pytest.mark.asyncio
async def test_auto_assign_to_generalist_notes_role(engine):
    await engine.add_agent("Gene", ["general"])
    ticket = await engine.lifecycle.create_ticket(
        subject="Game crashes",
        description="The client crashes on startup",
        customer=CUSTOMER,
        priority="medium",
    )

    assert ticket.category == "technical"
    assert ticket.messages[-1].content == "Ticket auto-assigned to Gene (generalist)"
