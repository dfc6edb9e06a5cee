"""
Ledger de services: remplacement total des tags et des services vendus,
montants au centime, catalogue.
"""

import pytest

from pipeline_crm.models.lead import LeadTransition
from pipeline_crm.services import service_ledger
from pipeline_crm.services.catalog import delete_service, list_services, update_service
from pipeline_crm.services.errors import (
    LeadValidationError,
    NotFoundError,
    PersistenceError,
    ReferentialError,
)
from pipeline_crm.services.lead_state_machine import transition_lead
from pipeline_crm.services.service_ledger import (
    build_sold_entries,
    replace_tags_for_lead,
    set_lead_sold_services,
    set_lead_tags,
    sold_services_for_lead,
    split_evenly,
    tags_for_lead,
)
from pipeline_crm.tests.helpers import FailingDb, get_lead_doc, make_lead, make_service


class TestAmounts:

    def test_split_evenly_exact(self):
        entries = split_evenly(10.0, ["a", "b", "c"])
        assert [e["valor"] for e in entries] == [3.33, 3.33, 3.34]

    def test_split_single(self):
        assert split_evenly(99.9, ["a"]) == [{"service_id": "a", "valor": 99.9}]

    def test_split_empty(self):
        assert split_evenly(10.0, []) == []

    def test_valores_must_cover_services(self):
        with pytest.raises(LeadValidationError):
            build_sold_entries(100.0, ["a", "b"], {"a": 100.0})

    def test_negative_valor_rejected(self):
        with pytest.raises(LeadValidationError):
            build_sold_entries(100.0, ["a", "b"], {"a": 150.0, "b": -50.0})

    def test_non_finite_valor_rejected(self):
        with pytest.raises(LeadValidationError):
            build_sold_entries(100.0, ["a"], {"a": float("inf")})
        with pytest.raises(LeadValidationError):
            build_sold_entries(100.0, ["a", "b"], {"a": float("nan"), "b": 100.0})


class TestReplaceAll:

    @pytest.mark.asyncio
    async def test_a_then_b_leaves_only_b(self, mock_db):
        a = await make_service("A")
        b = await make_service("B")
        lead = await make_lead()

        await replace_tags_for_lead(lead["id"], [a["id"]])
        await replace_tags_for_lead(lead["id"], [b["id"]])

        tags = await tags_for_lead(lead["id"])
        assert [t["service_id"] for t in tags] == [b["id"]]
        # Ancienne version supprimée
        assert await mock_db.lead_service_tags.count_documents({"lead_id": lead["id"]}) == 1
        print("✅ Replace-all: {A} then {B} -> {B}")

    @pytest.mark.asyncio
    async def test_replace_with_empty_set(self):
        a = await make_service("A")
        lead = await make_lead()
        await replace_tags_for_lead(lead["id"], [a["id"]])
        await replace_tags_for_lead(lead["id"], [])
        assert await tags_for_lead(lead["id"]) == []

    @pytest.mark.asyncio
    async def test_no_rows_for_fresh_lead(self):
        lead = await make_lead()
        assert await tags_for_lead(lead["id"]) == []
        assert await sold_services_for_lead(lead["id"]) == []

    @pytest.mark.asyncio
    async def test_unknown_lead(self):
        with pytest.raises(NotFoundError):
            await tags_for_lead("missing")
        with pytest.raises(NotFoundError):
            await replace_tags_for_lead("missing", [])

    @pytest.mark.asyncio
    async def test_rows_of_other_leads_untouched(self):
        a = await make_service("A")
        lead1 = await make_lead()
        lead2 = await make_lead()
        await replace_tags_for_lead(lead1["id"], [a["id"]])
        await replace_tags_for_lead(lead2["id"], [a["id"]])
        await replace_tags_for_lead(lead1["id"], [])
        assert len(await tags_for_lead(lead2["id"])) == 1

    @pytest.mark.asyncio
    async def test_insert_failure_keeps_previous_set(self, mock_db, monkeypatch):
        a = await make_service("A")
        b = await make_service("B")
        lead = await make_lead()
        await replace_tags_for_lead(lead["id"], [a["id"]])

        monkeypatch.setattr(service_ledger, "get_db", lambda: FailingDb(mock_db, "lead_service_tags"))
        with pytest.raises(PersistenceError):
            await replace_tags_for_lead(lead["id"], [b["id"]])
        monkeypatch.undo()

        assert [t["service_id"] for t in await tags_for_lead(lead["id"])] == [a["id"]]

    @pytest.mark.asyncio
    async def test_pointer_failure_discards_new_rows(self, mock_db, monkeypatch):
        a = await make_service("A")
        b = await make_service("B")
        lead = await make_lead()
        await replace_tags_for_lead(lead["id"], [a["id"]])

        monkeypatch.setattr(
            service_ledger, "get_db",
            lambda: FailingDb(mock_db, "leads", failing=("find_one_and_update",))
        )
        with pytest.raises(PersistenceError):
            await replace_tags_for_lead(lead["id"], [b["id"]])
        monkeypatch.undo()

        assert [t["service_id"] for t in await tags_for_lead(lead["id"])] == [a["id"]]
        assert await mock_db.lead_service_tags.count_documents({"service_id": b["id"]}) == 0


class TestDirectEdits:

    @pytest.mark.asyncio
    async def test_tags_on_interesse_outros_cannot_be_empty(self):
        a = await make_service("A")
        lead = await make_lead()
        await transition_lead(lead["id"], LeadTransition(status="interesse_outros", service_ids=[a["id"]]))

        with pytest.raises(LeadValidationError):
            await set_lead_tags(lead["id"], [])

    @pytest.mark.asyncio
    async def test_tags_update_interest_label(self):
        a = await make_service("A")
        b = await make_service("B")
        lead = await make_lead()
        await transition_lead(lead["id"], LeadTransition(status="interesse_outros", service_ids=[a["id"]]))

        await set_lead_tags(lead["id"], [b["id"]])
        assert (await get_lead_doc(lead["id"]))["servico_interesse"] == "B"

    @pytest.mark.asyncio
    async def test_sold_services_only_for_ganho(self):
        a = await make_service("A")
        lead = await make_lead()
        with pytest.raises(LeadValidationError):
            await set_lead_sold_services(lead["id"], [{"service_id": a["id"]}])

    @pytest.mark.asyncio
    async def test_sold_services_resplit(self):
        a = await make_service("A")
        b = await make_service("B")
        lead = await make_lead()
        await transition_lead(lead["id"], LeadTransition(
            status="ganho", service_ids=[a["id"]], forma_pagamento="pix_avista", valor_total=90
        ))

        sold = await set_lead_sold_services(lead["id"], [{"service_id": a["id"]}, {"service_id": b["id"]}])
        assert [s["valor"] for s in sold] == [45.0, 45.0]
        assert (await get_lead_doc(lead["id"]))["servico_realizado"] == "A, B"

    @pytest.mark.asyncio
    async def test_mixed_values_rejected(self):
        a = await make_service("A")
        b = await make_service("B")
        lead = await make_lead()
        await transition_lead(lead["id"], LeadTransition(
            status="ganho", service_ids=[a["id"]], forma_pagamento="pix_avista", valor_total=90
        ))
        with pytest.raises(LeadValidationError):
            await set_lead_sold_services(lead["id"], [{"service_id": a["id"], "valor": 90}, {"service_id": b["id"]}])


class TestCatalog:

    @pytest.mark.asyncio
    async def test_deactivated_service_stays_in_history(self):
        service = await make_service("Consultoria")
        lead = await make_lead()
        await transition_lead(lead["id"], LeadTransition(
            status="ganho", service_ids=[service["id"]], forma_pagamento="pix_avista", valor_total=100
        ))

        await update_service(service["id"], ativo=False)

        sold = await sold_services_for_lead(lead["id"])
        assert [s["service_id"] for s in sold] == [service["id"]]
        assert service["id"] not in [s["id"] for s in await list_services(active_only=True)]
        assert service["id"] in [s["id"] for s in await list_services()]
        print("✅ Deactivated service kept in sales, hidden from selectors")

    @pytest.mark.asyncio
    async def test_sorted_by_name(self):
        await make_service("Zeta")
        await make_service("Alfa")
        assert [s["nome"] for s in await list_services()] == ["Alfa", "Zeta"]

    @pytest.mark.asyncio
    async def test_referenced_service_cannot_be_deleted(self):
        service = await make_service()
        lead = await make_lead()
        await replace_tags_for_lead(lead["id"], [service["id"]])

        with pytest.raises(ReferentialError):
            await delete_service(service["id"])

    @pytest.mark.asyncio
    async def test_unreferenced_service_deleted(self):
        service = await make_service()
        await delete_service(service["id"])
        assert await list_services() == []
