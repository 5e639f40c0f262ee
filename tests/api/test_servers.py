"""
Tests for /api/v1/servers: the lifecycle calls the host engine makes.
"""

from httpx import AsyncClient


async def create_test_server(client: AsyncClient, **attrs) -> dict:
    payload = {"name": "test-server", "cores": 2, "memory": 4}
    payload.update(attrs)
    response = await client.post("/api/v1/servers", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateServer:
    async def test_create_returns_201(self, client: AsyncClient, seeded: dict[str, str]):
        resp = await client.post(
            "/api/v1/servers",
            json={
                "name": "web-01",
                "cores": 2,
                "memory": 4,
                "power": True,
                "storage": [{"object_uuid": seeded["storage_boot"], "bootdevice": True}],
                "network": [
                    {
                        "object_uuid": seeded["network_a"],
                        "rules_v4_in": [
                            {"order": 1, "action": "allow", "protocol": "tcp", "dst_port": "22"},
                            {
                                "order": 2,
                                "action": "drop",
                                "protocol": "tcp",
                                "dst_port": "1:65535",
                            },
                        ],
                    }
                ],
                "ipv4": seeded["ipv4"],
                "labels": ["web", "prod"],
            },
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["name"] == "web-01"
        assert data["status"] == "active"
        assert data["power"] is True
        assert data["legacy"] is False
        assert data["location_uuid"] == "45ed677b-3702-4b36-be2a-a2eab9827950"
        assert data["storage"] == [{"object_uuid": seeded["storage_boot"], "bootdevice": True}]
        assert data["ipv4"] == seeded["ipv4"]
        assert data["ipv6"] is None
        assert sorted(data["labels"]) == ["prod", "web"]
        assert "console_token" in data
        assert "current_price" in data

        # The public network is implied by the IP address, not listed
        assert len(data["network"]) == 1
        network = data["network"][0]
        assert network["object_uuid"] == seeded["network_a"]
        assert [r["order"] for r in network["rules_v4_in"]] == [1, 2]
        assert network["rules_v4_in"][1]["dst_port"] == "1:65535"

    async def test_missing_cores_returns_422(self, client: AsyncClient):
        resp = await client.post("/api/v1/servers", json={"name": "web", "memory": 4})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
        assert resp.json()["error"]["details"][0]["attribute"] == "cores"

    async def test_too_many_storages_returns_422(self, client: AsyncClient):
        storages = [{"object_uuid": f"storage-{i}"} for i in range(9)]
        resp = await client.post(
            "/api/v1/servers", json={"name": "web", "cores": 1, "memory": 1, "storage": storages}
        )
        assert resp.status_code == 422

    async def test_invalid_zone_returns_422(self, client: AsyncClient):
        resp = await client.post(
            "/api/v1/servers",
            json={"name": "web", "cores": 1, "memory": 1, "availability_zone": "z"},
        )
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "INVALID_ATTRIBUTE"
        assert error["details"]["attribute"] == "availability_zone"

    async def test_duplicate_rule_order_returns_422(
        self, client: AsyncClient, seeded: dict[str, str]
    ):
        rule = {"order": 5, "action": "allow"}
        resp = await client.post(
            "/api/v1/servers",
            json={
                "name": "web",
                "cores": 1,
                "memory": 1,
                "network": [{"object_uuid": seeded["network_a"], "rules_v6_out": [rule, rule]}],
            },
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["details"]["attribute"] == "network.0.rules_v6_out"

    async def test_invalid_port_returns_422(self, client: AsyncClient, seeded: dict[str, str]):
        resp = await client.post(
            "/api/v1/servers",
            json={
                "name": "web",
                "cores": 1,
                "memory": 1,
                "network": [
                    {
                        "object_uuid": seeded["network_a"],
                        "rules_v4_in": [{"order": 1, "action": "allow", "dst_port": "80:22"}],
                    }
                ],
            },
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "INVALID_ATTRIBUTE"

    async def test_wrong_ip_family_returns_422(self, client: AsyncClient, seeded: dict[str, str]):
        resp = await client.post(
            "/api/v1/servers",
            json={"name": "web", "cores": 1, "memory": 1, "ipv6": seeded["ipv4"]},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "IP_FAMILY_MISMATCH"

    async def test_unknown_storage_returns_502(self, client: AsyncClient):
        resp = await client.post(
            "/api/v1/servers",
            json={"name": "web", "cores": 1, "memory": 1, "storage": [{"object_uuid": "nope"}]},
        )
        assert resp.status_code == 502
        error = resp.json()["error"]
        assert error["code"] == "RECONCILIATION_FAILED"
        assert error["details"]["object_uuid"] == "nope"
        assert error["details"]["remote_status"] == 404

        # The server exists although linking failed; the host can still track it
        server_id = error["details"]["server_id"]
        resp = await client.get(f"/api/v1/servers/{server_id}")
        assert resp.status_code == 200
        assert resp.json()["storage"] == []


class TestGetServer:
    async def test_get_existing_returns_200(self, client: AsyncClient):
        created = await create_test_server(client)
        resp = await client.get(f"/api/v1/servers/{created['id']}")
        assert resp.status_code == 200
        assert resp.json() == created

    async def test_get_nonexistent_returns_404(self, client: AsyncClient):
        resp = await client.get("/api/v1/servers/nonexistent-id")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "SERVER_GONE"

    async def test_request_id_echoed(self, client: AsyncClient):
        resp = await client.get(
            "/api/v1/servers/nonexistent-id", headers={"X-Request-ID": "req-123"}
        )
        assert resp.headers["X-Request-ID"] == "req-123"


class TestUpdateServer:
    async def test_update_reconciles_attachments(
        self, client: AsyncClient, seeded: dict[str, str]
    ):
        prior = {
            "name": "web",
            "cores": 2,
            "memory": 4,
            "power": True,
            "storage": [{"object_uuid": seeded["storage_boot"], "bootdevice": True}],
            "network": [{"object_uuid": seeded["network_a"]}],
            "ipv4": seeded["ipv4"],
        }
        created = await create_test_server(client, **prior)

        desired = dict(
            prior,
            name="web-renamed",
            cores=1,
            storage=prior["storage"] + [{"object_uuid": seeded["storage_data"]}],
            network=[{"object_uuid": seeded["network_a"]}, {"object_uuid": seeded["network_b"]}],
            ipv4=None,
            ipv6=seeded["ipv6"],
            isoimage=seeded["isoimage"],
        )
        resp = await client.put(
            f"/api/v1/servers/{created['id']}", json={"prior": prior, "desired": desired}
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["name"] == "web-renamed"
        assert data["cores"] == 1
        assert data["power"] is True
        assert {s["object_uuid"] for s in data["storage"]} == {
            seeded["storage_boot"],
            seeded["storage_data"],
        }
        assert [n["object_uuid"] for n in data["network"]] == [
            seeded["network_a"],
            seeded["network_b"],
        ]
        assert data["ipv4"] is None
        assert data["ipv6"] == seeded["ipv6"]
        assert data["isoimage"] == seeded["isoimage"]

    async def test_update_nonexistent_returns_404(self, client: AsyncClient):
        config = {"name": "web", "cores": 1, "memory": 1}
        resp = await client.put(
            "/api/v1/servers/nonexistent-id", json={"prior": config, "desired": config}
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "SERVER_GONE"

    async def test_update_missing_prior_returns_422(self, client: AsyncClient):
        created = await create_test_server(client)
        resp = await client.put(
            f"/api/v1/servers/{created['id']}",
            json={"desired": {"name": "web", "cores": 1, "memory": 1}},
        )
        assert resp.status_code == 422


class TestDeleteServer:
    async def test_delete_returns_204(self, client: AsyncClient):
        created = await create_test_server(client, power=True)
        resp = await client.delete(f"/api/v1/servers/{created['id']}")
        assert resp.status_code == 204

        resp = await client.get(f"/api/v1/servers/{created['id']}")
        assert resp.status_code == 404

    async def test_delete_nonexistent_returns_204(self, client: AsyncClient):
        resp = await client.delete("/api/v1/servers/nonexistent-id")
        assert resp.status_code == 204
