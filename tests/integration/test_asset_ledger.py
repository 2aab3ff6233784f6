"""Asset ledger, movements and depreciation report through the API."""

import pytest


def _ledger_payload(directory, **overrides) -> dict:
    payload = {
        "equipment_id": str(directory.equipment),
        "cost_center_id": str(directory.cost_center),
        "acquisition_date": "2025-01-01",
        "acquisition_value_cents": 120_000,
        "useful_life_months": 12,
        "residual_value_cents": 0,
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_ledger_upsert_is_one_per_equipment(client, directory, headers_for):
    first = await client.post(
        "/api/v1/asset-ledgers", json=_ledger_payload(directory), headers=headers_for("finance")
    )
    second = await client.post(
        "/api/v1/asset-ledgers",
        json=_ledger_payload(directory, acquisition_value_cents=240_000),
        headers=headers_for("finance"),
    )

    assert first.status_code == 200, first.text
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["acquisition_value_cents"] == 240_000

    resp = await client.get("/api/v1/asset-ledgers", headers=headers_for("requester"))
    assert len(resp.json()) == 1


@pytest.mark.asyncio
async def test_ledger_for_unknown_equipment_is_404(client, directory, headers_for):
    resp = await client.post(
        "/api/v1/asset-ledgers",
        json=_ledger_payload(directory, equipment_id="00000000-0000-0000-0000-000000000000"),
        headers=headers_for("admin"),
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_employee_cannot_write_ledger(client, directory, headers_for):
    resp = await client.post(
        "/api/v1/asset-ledgers", json=_ledger_payload(directory), headers=headers_for("requester")
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_transfer_moves_ledger_and_is_listed(client, directory, headers_for):
    await client.post(
        "/api/v1/asset-ledgers", json=_ledger_payload(directory), headers=headers_for("finance")
    )

    resp = await client.post(
        "/api/v1/asset-movements",
        json={
            "equipment_id": str(directory.equipment),
            "type": "TRANSFER",
            "from_cost_center_id": str(directory.cost_center),
            "to_cost_center_id": str(directory.other_cost_center),
            "reason": "Team moved to operations",
            "metadata": {"ticket": "OPS-12"},
        },
        headers=headers_for("finance"),
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["metadata"] == {"ticket": "OPS-12"}
    assert resp.json()["actor_id"] == str(directory.finance)

    ledgers = (await client.get("/api/v1/asset-ledgers", headers=headers_for("finance"))).json()
    assert ledgers[0]["status"] == "TRANSFERRED"
    assert ledgers[0]["cost_center_id"] == str(directory.other_cost_center)
    assert [m["type"] for m in ledgers[0]["recent_movements"]] == ["TRANSFER"]


@pytest.mark.asyncio
async def test_write_off_and_maintenance_statuses(client, directory, headers_for):
    await client.post(
        "/api/v1/asset-ledgers", json=_ledger_payload(directory), headers=headers_for("finance")
    )

    async def move(movement_type: str) -> str:
        resp = await client.post(
            "/api/v1/asset-movements",
            json={"equipment_id": str(directory.equipment), "type": movement_type, "reason": "Yearly check"},
            headers=headers_for("admin"),
        )
        assert resp.status_code == 201, resp.text
        ledgers = (await client.get("/api/v1/asset-ledgers", headers=headers_for("admin"))).json()
        return ledgers[0]["status"]

    assert await move("MAINTENANCE") == "ACTIVE"
    assert await move("WRITE_OFF") == "WRITTEN_OFF"


@pytest.mark.asyncio
async def test_movement_without_ledger_is_404(client, directory, headers_for):
    resp = await client.post(
        "/api/v1/asset-movements",
        json={"equipment_id": str(directory.equipment), "type": "LOSS", "reason": "Missing"},
        headers=headers_for("admin"),
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_depreciation_report(client, directory, headers_for):
    await client.post(
        "/api/v1/asset-ledgers", json=_ledger_payload(directory), headers=headers_for("finance")
    )

    resp = await client.get(
        "/api/v1/depreciation-report", params={"as_of": "2025-07-01"}, headers=headers_for("finance")
    )

    assert resp.status_code == 200
    [line] = resp.json()
    assert line["asset_tag"] == "EQ-1"
    assert line["cost_center_code"] == "CC-1"
    assert line["months_elapsed"] == 6
    assert line["monthly_depreciation_cents"] == 10_000
    assert line["book_value_cents"] == 60_000
