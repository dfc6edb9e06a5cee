"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  PIPELINE CRM - API Tests (TestClient, base en mémoire)                      ║
║                                                                              ║
║  1. Formulaire public: lead créé, réponse minimale, distribution auto        ║
║  2. Auth + périmètre vendedor / admin                                        ║
║  3. Transitions, ledger, attribution par lot via HTTP                        ║
║  4. Traduction des erreurs métier en codes HTTP                              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import asyncio

from pipeline_crm.tests.helpers import (
    TEST_PASSWORD,
    make_lead,
    make_service,
    make_session,
    make_user,
)


def run(coro):
    return asyncio.run(coro)


def auth_headers(user):
    return {"Authorization": f"Bearer {run(make_session(user))}"}


PUBLIC_LEAD = {
    "nome_completo": "João Pereira",
    "telefone": "(21) 99876-5432",
    "email": "joao@example.com",
    "cpf_cnpj": "111.444.777-35",
}


class TestPublicIntake:

    def test_creates_lead_without_echo(self, api_client, mock_db):
        response = api_client.post("/api/public/leads", json=PUBLIC_LEAD)
        assert response.status_code == 200
        assert response.json() == {"success": True}

        lead = run(mock_db.leads.find_one({}, {"_id": 0}))
        assert lead["status"] == "novo_lead"
        assert lead["telefone"] == "21998765432"
        assert lead["cpf_cnpj"] == "11144477735"
        assert lead["vendedor_id"] is None
        print("✅ Public lead stored as novo_lead")

    def test_invalid_cpf_rejected(self, api_client, mock_db):
        response = api_client.post("/api/public/leads", json={**PUBLIC_LEAD, "cpf_cnpj": "11111111111"})
        assert response.status_code == 422
        assert run(mock_db.leads.count_documents({})) == 0

    def test_auto_distribution_on_intake(self, api_client, mock_db):
        admin = run(make_user("admin"))
        vendedor = run(make_user("vendedor"))
        headers = auth_headers(admin)

        api_client.post("/api/distribution/roster", json={"vendedor_id": vendedor["id"]}, headers=headers)
        api_client.put("/api/distribution/config", json={"enabled": True}, headers=headers)

        api_client.post("/api/public/leads", json=PUBLIC_LEAD)
        lead = run(mock_db.leads.find_one({}, {"_id": 0}))
        assert lead["vendedor_id"] == vendedor["id"]


class TestAuth:

    def test_login_and_me(self, api_client):
        admin = run(make_user("admin", email="chefe@test.local"))
        response = api_client.post("/api/auth/login", json={"email": "Chefe@test.local", "password": TEST_PASSWORD})
        assert response.status_code == 200
        token = response.json()["token"]

        me = api_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["id"] == admin["id"]
        assert me.json()["roles"] == ["admin"]
        assert "password" not in me.json()

    def test_wrong_password(self, api_client):
        run(make_user("admin", email="chefe@test.local"))
        response = api_client.post("/api/auth/login", json={"email": "chefe@test.local", "password": "errada"})
        assert response.status_code == 401

    def test_no_token(self, api_client):
        assert api_client.get("/api/leads").status_code == 401

    def test_vendedor_cannot_provision(self, api_client):
        vendedor = run(make_user("vendedor"))
        response = api_client.post(
            "/api/auth/vendedores",
            json={"email": "novo@test.local", "password": "segredo1", "nome": "Novo"},
            headers=auth_headers(vendedor)
        )
        assert response.status_code == 403

    def test_admin_provisions_vendedor(self, api_client):
        admin = run(make_user("admin"))
        headers = auth_headers(admin)
        response = api_client.post(
            "/api/auth/vendedores",
            json={"email": "novo@test.local", "password": "segredo1", "nome": "Novo"},
            headers=headers
        )
        assert response.status_code == 200
        listing = api_client.get("/api/auth/vendedores", headers=headers).json()
        assert [v["email"] for v in listing["vendedores"]] == ["novo@test.local"]


class TestLeadScope:

    def test_vendedor_sees_only_assigned(self, api_client):
        v1 = run(make_user("vendedor"))
        v2 = run(make_user("vendedor"))
        own = run(make_lead(vendedor_id=v1["id"]))
        other = run(make_lead(vendedor_id=v2["id"]))
        headers = auth_headers(v1)

        listing = api_client.get("/api/leads", headers=headers).json()
        assert [l["id"] for l in listing["leads"]] == [own["id"]]
        assert listing["leads"][0]["action_window"]["bucket"] == "normal"

        assert api_client.get(f"/api/leads/{other['id']}", headers=headers).status_code == 403

    def test_admin_unassigned_filter(self, api_client):
        admin = run(make_user("admin"))
        vendedor = run(make_user("vendedor"))
        run(make_lead(vendedor_id=vendedor["id"]))
        free = run(make_lead())

        listing = api_client.get("/api/leads?unassigned=true", headers=auth_headers(admin)).json()
        assert [l["id"] for l in listing["leads"]] == [free["id"]]

    def test_invalid_status_filter(self, api_client):
        admin = run(make_user("admin"))
        assert api_client.get("/api/leads?status=perdido", headers=auth_headers(admin)).status_code == 422

    def test_account_without_role_refused(self, api_client):
        former = run(make_user(role=None))
        lead = run(make_lead(vendedor_id=former["id"]))
        headers = auth_headers(former)

        assert api_client.get("/api/leads", headers=headers).status_code == 403
        assert api_client.get(f"/api/leads/{lead['id']}", headers=headers).status_code == 403
        response = api_client.post(
            f"/api/leads/{lead['id']}/transition", json={"status": "finalizado"}, headers=headers
        )
        assert response.status_code == 403
        assert api_client.get("/api/closers", headers=headers).status_code == 403
        print("✅ Compte sans rôle: accès pipeline refusé")

    def test_revoked_vendedor_loses_access(self, api_client):
        admin = run(make_user("admin"))
        vendedor = run(make_user("vendedor"))
        run(make_lead(vendedor_id=vendedor["id"]))
        headers = auth_headers(vendedor)
        assert api_client.get("/api/leads", headers=headers).status_code == 200

        revoke = api_client.delete(f"/api/auth/vendedores/{vendedor['id']}", headers=auth_headers(admin))
        assert revoke.status_code == 200
        assert api_client.get("/api/leads", headers=headers).status_code == 401


class TestLeadActions:

    def test_transition_errors_map_to_400(self, api_client):
        vendedor = run(make_user("vendedor"))
        lead = run(make_lead(vendedor_id=vendedor["id"]))
        response = api_client.post(
            f"/api/leads/{lead['id']}/transition",
            json={"status": "interesse_outros", "service_ids": []},
            headers=auth_headers(vendedor)
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Selecione ao menos um serviço"

    def test_non_finite_or_sub_cent_total_refused(self, api_client):
        vendedor = run(make_user("vendedor"))
        service = run(make_service("Consultoria"))
        lead = run(make_lead(status="em_atendimento", vendedor_id=vendedor["id"]))
        headers = {**auth_headers(vendedor), "Content-Type": "application/json"}

        for raw_total in ("Infinity", "NaN", "1e999"):
            response = api_client.post(
                f"/api/leads/{lead['id']}/transition",
                content=(
                    '{"status": "ganho", "forma_pagamento": "pix_avista", '
                    f'"service_ids": ["{service["id"]}"], "valor_total": {raw_total}}}'
                ),
                headers=headers
            )
            assert response.status_code == 422

        response = api_client.post(
            f"/api/leads/{lead['id']}/transition",
            json={
                "status": "ganho",
                "forma_pagamento": "pix_avista",
                "service_ids": [service["id"]],
                "valor_total": 0.004,
            },
            headers=headers
        )
        assert response.status_code == 400

        detail = api_client.get(f"/api/leads/{lead['id']}", headers=headers).json()
        assert detail["status"] == "em_atendimento"
        assert api_client.get(f"/api/leads/{lead['id']}/servicos-vendidos", headers=headers).json() == {"servicos": []}

    def test_ganho_over_http(self, api_client):
        vendedor = run(make_user("vendedor"))
        service = run(make_service("Consultoria"))
        lead = run(make_lead(vendedor_id=vendedor["id"]))
        headers = auth_headers(vendedor)

        response = api_client.post(
            f"/api/leads/{lead['id']}/transition",
            json={
                "status": "ganho",
                "service_ids": [service["id"]],
                "forma_pagamento": "boleto_parcelado",
                "valor_total": 990.0,
                "data_pagamento": "2024-01-01",
                "qtd_parcelas": 3,
            },
            headers=headers
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ganho"
        assert body["action_window"] is None
        assert len(body["parcelas_info"]) == 3

        paid = api_client.patch(f"/api/leads/{lead['id']}/parcelas/1", json={"pago": True}, headers=headers)
        assert paid.json()["parcelas_info"][0]["pago"] is True

        sold = api_client.get(f"/api/leads/{lead['id']}/servicos-vendidos", headers=headers).json()
        assert [s["valor"] for s in sold["servicos"]] == [990.0]

    def test_tags_replace_over_http(self, api_client):
        admin = run(make_user("admin"))
        a = run(make_service("A"))
        b = run(make_service("B"))
        lead = run(make_lead())
        headers = auth_headers(admin)

        api_client.put(f"/api/leads/{lead['id']}/tags", json={"service_ids": [a["id"]]}, headers=headers)
        api_client.put(f"/api/leads/{lead['id']}/tags", json={"service_ids": [b["id"]]}, headers=headers)
        tags = api_client.get(f"/api/leads/{lead['id']}/tags", headers=headers).json()["tags"]
        assert [t["service_id"] for t in tags] == [b["id"]]

    def test_batch_assign_report(self, api_client):
        admin = run(make_user("admin"))
        vendedor = run(make_user("vendedor"))
        lead = run(make_lead())

        response = api_client.post(
            "/api/distribution/assign-batch",
            json={"lead_ids": [lead["id"], "missing"], "vendedor_id": vendedor["id"]},
            headers=auth_headers(admin)
        )
        report = response.json()
        assert report["requested"] == 2
        assert report["assigned"] == 1
        assert report["failed"][0]["lead_id"] == "missing"

    def test_vendedor_cannot_assign(self, api_client):
        v1 = run(make_user("vendedor"))
        lead = run(make_lead(vendedor_id=v1["id"]))
        response = api_client.put(
            f"/api/leads/{lead['id']}/vendedor", json={"vendedor_id": None}, headers=auth_headers(v1)
        )
        assert response.status_code == 403

    def test_delete_archives_and_cascades(self, api_client, mock_db):
        admin = run(make_user("admin"))
        service = run(make_service())
        lead = run(make_lead())
        headers = auth_headers(admin)
        api_client.put(f"/api/leads/{lead['id']}/tags", json={"service_ids": [service["id"]]}, headers=headers)

        assert api_client.delete(f"/api/leads/{lead['id']}", headers=headers).status_code == 200
        assert run(mock_db.leads.count_documents({"id": lead["id"]})) == 0
        assert run(mock_db.leads_archived.count_documents({"id": lead["id"]})) == 1
        assert run(mock_db.lead_service_tags.count_documents({"lead_id": lead["id"]})) == 0

    def test_closer_must_exist(self, api_client):
        vendedor = run(make_user("vendedor"))
        lead = run(make_lead(vendedor_id=vendedor["id"]))
        response = api_client.patch(
            f"/api/leads/{lead['id']}", json={"closer_id": "missing"}, headers=auth_headers(vendedor)
        )
        assert response.status_code == 400


class TestCatalogApi:

    def test_referenced_service_delete_is_409(self, api_client):
        admin = run(make_user("admin"))
        service = run(make_service())
        lead = run(make_lead())
        headers = auth_headers(admin)
        api_client.put(f"/api/leads/{lead['id']}/tags", json={"service_ids": [service["id"]]}, headers=headers)

        response = api_client.delete(f"/api/services/{service['id']}", headers=headers)
        assert response.status_code == 409

    def test_unknown_service_is_404(self, api_client):
        admin = run(make_user("admin"))
        response = api_client.patch("/api/services/missing", json={"ativo": False}, headers=auth_headers(admin))
        assert response.status_code == 404


class TestAdminSettings:

    def test_transition_table_roundtrip(self, api_client):
        admin = run(make_user("admin"))
        headers = auth_headers(admin)
        response = api_client.put(
            "/api/settings/lead-transitions",
            json={"transitions": {"ganho": ["finalizado"]}},
            headers=headers
        )
        assert response.status_code == 200
        table = api_client.get("/api/settings/lead-transitions", headers=headers).json()["transitions"]
        assert table["ganho"] == ["finalizado"]
        assert table["novo_lead"] == []

    def test_stats_overview(self, api_client):
        admin = run(make_user("admin"))
        run(make_lead(status="ganho", valor_ganho=250.0))
        run(make_lead())
        overview = api_client.get("/api/stats/overview?period=7d", headers=auth_headers(admin)).json()
        assert overview["total"] == 2
        assert overview["valor_total_ganho"] == 250.0

    def test_health(self, api_client):
        assert api_client.get("/api/health").json()["status"] == "ok"
