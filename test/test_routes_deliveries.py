"""
Tests for delivery, driver, dispatch and loyalty routes
"""

import asyncio
from datetime import timedelta

from conftest import APEX, auth_headers, delivery_payload, make_token, tenant_client


async def create(client, headers=None, **overrides):
    response = await client.post("/deliveries", json=delivery_payload(**overrides), headers=headers or {})
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateDelivery:
    async def test_guest_create(self, client):
        response = await client.post("/deliveries", json=delivery_payload())
        assert response.status_code == 201
        body = response.json()
        assert body["tenantId"] == "t-saras"
        assert body["status"] == "available"
        assert body["deliveryFee"] == "9.50"
        assert body["distanceMiles"] == "8.00"
        assert body["userId"] is None
        assert body["claimedByDriver"] is None

    async def test_signed_in_create(self, client):
        body = await create(client, headers=auth_headers("u-customer"), isRush=True)
        assert body["userId"] == "u-customer"
        assert body["deliveryFee"] == "14.25"

    async def test_missing_fields_are_400(self, client):
        payload = delivery_payload()
        del payload["pickupAddress"]
        response = await client.post("/deliveries", json=payload)
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_FAILED"
        assert "pickupAddress" in [e["field"] for e in body["details"]["errors"]]

    async def test_blank_fields_are_400(self, client):
        response = await client.post("/deliveries", json=delivery_payload(customerName="  "))
        assert response.status_code == 400
        assert response.json()["details"]["errors"][0]["field"] == "customer_name"

    async def test_bad_email_is_400(self, client):
        response = await client.post("/deliveries", json=delivery_payload(email="nope"))
        assert response.status_code == 400

    async def test_geocoding_failure_is_502(self, client, distance_client):
        from alltown.exceptions import GeocodingError

        distance_client.error = GeocodingError()
        response = await client.post("/deliveries", json=delivery_payload())
        assert response.status_code == 502
        assert response.json()["error"] == "GEOCODING_FAILED"

    async def test_profile_of_other_tenant_is_rejected(self, client):
        response = await client.post("/deliveries", json=delivery_payload(), headers=auth_headers("u-bobs-driver"))
        assert response.status_code == 403
        assert response.json()["error"] == "TENANT_MISMATCH"

    async def test_expired_token(self, client):
        headers = {"Authorization": f"Bearer {make_token('u-customer', expires_in=timedelta(minutes=-5))}"}
        response = await client.post("/deliveries", json=delivery_payload(), headers=headers)
        assert response.status_code == 401
        assert response.json()["message"] == "Token has expired"

    async def test_forged_token(self, client):
        headers = {"Authorization": f"Bearer {make_token('u-customer', secret='wrong')}"}
        response = await client.post("/deliveries", json=delivery_payload(), headers=headers)
        assert response.status_code == 401


class TestListDeliveries:
    async def test_driver_sees_available(self, client):
        first = await create(client)
        second = await create(client)
        response = await client.get("/deliveries", headers=auth_headers("u-driver-1"))
        assert response.status_code == 200
        assert [d["id"] for d in response.json()] == [first["id"], second["id"]]

    async def test_tenants_are_isolated(self, client, bobs_client):
        await create(client)
        response = await bobs_client.get("/deliveries", headers=auth_headers("u-bobs-driver"))
        assert response.status_code == 200
        assert response.json() == []

    async def test_customer_cannot_list(self, client):
        response = await client.get("/deliveries", headers=auth_headers("u-customer"))
        assert response.status_code == 403

    async def test_anonymous_cannot_list(self, client):
        response = await client.get("/deliveries")
        assert response.status_code == 401

    async def test_driver_cannot_list_other_statuses(self, client):
        response = await client.get("/deliveries?status=completed", headers=auth_headers("u-driver-1"))
        assert response.status_code == 403

    async def test_dispatcher_lists_by_status(self, client):
        delivery = await create(client)
        await client.post(f"/deliveries/{delivery['id']}/claim", headers=auth_headers("u-driver-1"))
        response = await client.get("/deliveries?status=claimed", headers=auth_headers("u-dispatch"))
        assert [d["id"] for d in response.json()] == [delivery["id"]]


class TestClaimRoutes:
    async def test_claim_and_conflict(self, client):
        delivery = await create(client)

        response = await client.post(
            f"/deliveries/{delivery['id']}/claim",
            json={"driverNotes": "on my way"},
            headers=auth_headers("u-driver-1"),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "claimed"
        assert body["claimedByDriver"] == "u-driver-1"
        assert body["driverNotes"] == "on my way"

        response = await client.post(f"/deliveries/{delivery['id']}/claim", headers=auth_headers("u-driver-2"))
        assert response.status_code == 409
        assert response.json()["error"] == "DELIVERY_ALREADY_CLAIMED"

    async def test_concurrent_claims(self, client):
        delivery = await create(client)
        responses = await asyncio.gather(
            *(
                client.post(f"/deliveries/{delivery['id']}/claim", headers=auth_headers(driver))
                for driver in ["u-driver-1", "u-driver-2", "u-driver-1", "u-driver-2"]
            )
        )
        codes = sorted(r.status_code for r in responses)
        assert codes == [200, 409, 409, 409]

    async def test_claim_unknown(self, client):
        response = await client.post("/deliveries/nope/claim", headers=auth_headers("u-driver-1"))
        assert response.status_code == 404
        assert response.json()["error"] == "DELIVERY_NOT_FOUND"

    async def test_claim_other_tenants_delivery(self, client, bobs_client):
        delivery = await create(client)
        response = await bobs_client.post(f"/deliveries/{delivery['id']}/claim", headers=auth_headers("u-bobs-driver"))
        assert response.status_code == 403
        assert response.json()["error"] == "TENANT_MISMATCH"

    async def test_mine(self, client):
        delivery = await create(client)
        await create(client)
        await client.post(f"/deliveries/{delivery['id']}/claim", headers=auth_headers("u-driver-1"))
        response = await client.get("/deliveries/mine", headers=auth_headers("u-driver-1"))
        assert [d["id"] for d in response.json()] == [delivery["id"]]


class TestStatusRoutes:
    async def test_lifecycle_and_history(self, client):
        delivery = await create(client, headers=auth_headers("u-customer"))
        driver = auth_headers("u-driver-1")
        path = f"/deliveries/{delivery['id']}"

        await client.post(f"{path}/claim", headers=driver)
        response = await client.patch(f"{path}/status", json={"status": "in_progress"}, headers=driver)
        assert response.json()["status"] == "in_progress"
        response = await client.patch(
            f"{path}/status", json={"status": "completed", "driverNotes": "left at door"}, headers=driver
        )
        assert response.status_code == 200
        assert response.json()["driverNotes"] == "left at door"

        response = await client.get(f"{path}/history", headers=auth_headers("u-customer"))
        assert [e["event"] for e in response.json()] == ["created", "claimed", "started", "completed"]
        assert response.json()[1]["actorId"] == "u-driver-1"

        response = await client.patch(f"{path}/status", json={"status": "completed"}, headers=auth_headers("u-customer"))
        assert response.status_code == 403

    async def test_invalid_transition_is_409(self, client):
        delivery = await create(client)
        response = await client.patch(
            f"/deliveries/{delivery['id']}/status", json={"status": "completed"}, headers=auth_headers("u-dispatch")
        )
        assert response.status_code == 409
        assert response.json()["error"] == "INVALID_STATUS_TRANSITION"

    async def test_unknown_status_is_400(self, client):
        delivery = await create(client)
        response = await client.patch(
            f"/deliveries/{delivery['id']}/status", json={"status": "lost"}, headers=auth_headers("u-dispatch")
        )
        assert response.status_code == 400

    async def test_release(self, client):
        delivery = await create(client)
        path = f"/deliveries/{delivery['id']}"
        await client.post(f"{path}/claim", headers=auth_headers("u-driver-1"))

        response = await client.post(f"{path}/release", headers=auth_headers("u-driver-2"))
        assert response.status_code == 403

        response = await client.post(f"{path}/release", headers=auth_headers("u-driver-1"))
        assert response.status_code == 200
        assert response.json()["status"] == "available"
        assert response.json()["claimedByDriver"] is None

    async def test_customer_sees_own_delivery_only(self, client):
        delivery = await create(client, headers=auth_headers("u-customer"))
        guest = await create(client)
        assert (await client.get(f"/deliveries/{delivery['id']}", headers=auth_headers("u-customer"))).status_code == 200
        assert (await client.get(f"/deliveries/{guest['id']}", headers=auth_headers("u-customer"))).status_code == 403


class TestCustomerHistory:
    async def test_own_requests_newest_first(self, client):
        customer = auth_headers("u-customer")
        first = await create(client, headers=customer)
        await create(client)
        second = await create(client, headers=customer)

        response = await client.get("/deliveries/history", headers=customer)
        assert response.status_code == 200
        assert [d["id"] for d in response.json()] == [second["id"], first["id"]]

    async def test_empty_for_new_customer(self, client):
        await create(client)
        response = await client.get("/deliveries/history", headers=auth_headers("u-customer"))
        assert response.json() == []

    async def test_other_tenant_host(self, client, bobs_client):
        await create(client, headers=auth_headers("u-customer"))
        response = await bobs_client.get("/deliveries/history", headers=auth_headers("u-customer"))
        assert response.status_code == 403
        assert response.json()["error"] == "TENANT_MISMATCH"

    async def test_requires_sign_in(self, client):
        assert (await client.get("/deliveries/history")).status_code == 401


class TestDriverAndDispatch:
    async def test_duty_toggle_releases_claims(self, client):
        delivery = await create(client)
        driver = auth_headers("u-driver-1")
        await client.patch("/driver/status", json={"isOnDuty": True}, headers=driver)
        await client.post(f"/deliveries/{delivery['id']}/claim", headers=driver)

        response = await client.get("/dispatch/drivers?onDuty=true", headers=auth_headers("u-dispatch"))
        assert [d["id"] for d in response.json()] == ["u-driver-1"]

        response = await client.patch("/driver/status", json={"isOnDuty": False}, headers=driver)
        assert response.status_code == 200
        assert response.json() == {"driverId": "u-driver-1", "isOnDuty": False, "releasedDeliveryIds": [delivery["id"]]}

        response = await client.get("/deliveries", headers=driver)
        assert [d["id"] for d in response.json()] == [delivery["id"]]

    async def test_dispatcher_required(self, client):
        response = await client.get("/dispatch/drivers", headers=auth_headers("u-driver-1"))
        assert response.status_code == 403

    async def test_dispatch_deliveries_newest_first(self, client):
        first = await create(client)
        second = await create(client)
        response = await client.get("/dispatch/deliveries", headers=auth_headers("u-admin"))
        assert [d["id"] for d in response.json()] == [second["id"], first["id"]]

    async def test_driver_status_requires_driver(self, client):
        response = await client.patch("/driver/status", json={"isOnDuty": True}, headers=auth_headers("u-dispatch"))
        assert response.status_code == 403


class TestLoyaltyRoute:
    async def test_no_account_yet(self, client):
        response = await client.get("/loyalty/me", headers=auth_headers("u-customer"))
        assert response.json() == {
            "loyaltyPoints": 0,
            "totalDeliveries": 0,
            "freeDeliveryCredits": 0,
            "pointsForFreeDelivery": 3,
            "enabled": True,
        }

    async def test_points_after_completion(self, client):
        delivery = await create(client, headers=auth_headers("u-customer"))
        driver = auth_headers("u-driver-1")
        path = f"/deliveries/{delivery['id']}"
        await client.post(f"{path}/claim", headers=driver)
        await client.patch(f"{path}/status", json={"status": "in_progress"}, headers=driver)
        await client.patch(f"{path}/status", json={"status": "completed"}, headers=driver)

        body = (await client.get("/loyalty/me", headers=auth_headers("u-customer"))).json()
        assert body["loyaltyPoints"] == 1
        assert body["totalDeliveries"] == 1

    async def test_requires_sign_in(self, client):
        assert (await client.get("/loyalty/me")).status_code == 401


class TestCustomDomainHost:
    async def test_same_tenant_on_custom_domain(self, app, client):
        delivery = await create(client)
        async with tenant_client(app, "sarasquickiedelivery.com") as custom:
            response = await custom.get(f"/deliveries/{delivery['id']}", headers=auth_headers("u-dispatch"))
        assert response.status_code == 200

    async def test_main_site_serves_no_deliveries(self, app, seed):
        async with tenant_client(app, APEX) as main:
            response = await main.post("/deliveries", json=delivery_payload())
        assert response.status_code == 404
