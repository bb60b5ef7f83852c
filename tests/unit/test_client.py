"""Unit tests for the ClinkSDK facade."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from clink_sdk.errors import RequestTimeout, RequestValidationError
from clink_sdk.protocol.kinds import RequestFamily
from clink_sdk.protocol.payloads import (
    DebitSuccess,
    ManageSuccess,
    OfferData,
    OfferReceipt,
    OfferSuccess,
)
from clink_sdk.sdk.client import (
    ClinkSDK,
    create_test_client,
    send_debit_request,
    send_offer_request,
)
from clink_sdk.sdk.crypto import Nip44Crypto
from clink_sdk.sdk.transport import MockRelayPool
from clink_sdk.settings import ClinkSettings


@pytest.fixture
def settings(client_keys, service_keys, relays) -> ClinkSettings:
    return ClinkSettings(
        private_key=client_keys.private_key.hex(),
        relays=relays,
        to_pubkey=service_keys.public_key,
    )


@pytest.fixture
def client(settings, pool, crypto) -> ClinkSDK:
    return create_test_client(settings, pool=pool, crypto=crypto)


def sent_body(request) -> dict[str, Any]:
    return json.loads(request.content.partition(":")[2])


class TestClient:
    """Requests go out through the correlator with the family's kind."""

    def test_public_key(self, client, client_keys) -> None:
        assert client.public_key == client_keys.public_key

    @pytest.mark.asyncio
    async def test_offer(self, client, pool, respond) -> None:
        pool.on_publish(lambda request: [respond(request, {"bolt11": "lnbc1"})])

        response = await client.offer({"offer": "coffee", "amount_sats": 1000})

        assert isinstance(response, OfferSuccess)
        assert pool.published[0].kind == 21001
        assert sent_body(pool.published[0]) == {"offer": "coffee", "amount_sats": 1000}

    @pytest.mark.asyncio
    async def test_debit(self, client, pool, respond) -> None:
        pool.on_publish(lambda request: [respond(request, {"res": "ok", "preimage": "aa"})])

        response = await client.debit({"bolt11": "lnbc1"}, timeout_seconds=1)

        assert isinstance(response, DebitSuccess)
        assert pool.published[0].kind == 21002

    @pytest.mark.asyncio
    async def test_request_by_family_name(self, client, pool, respond) -> None:
        pool.on_publish(lambda request: [respond(request, {"res": "ok"})])

        await client.request("debit", {}, timeout_seconds=1)

        assert sent_body(pool.published[0]) == {}

    @pytest.mark.asyncio
    async def test_explicit_counterparty_and_relays(self, client, pool, respond) -> None:
        pool.on_publish(lambda request: [respond(request, {"res": "ok"})])
        other_relays = ["wss://other.example"]

        await client.request(
            RequestFamily.DEBIT, {}, 1, to_pubkey=client.settings.to_pubkey, relays=other_relays
        )

        assert pool.published[0].tag_values("p") == [client.settings.to_pubkey]

    @pytest.mark.asyncio
    async def test_receipt_callback(self, client, pool, respond) -> None:
        pool.on_publish(
            lambda request: [respond(request, {"bolt11": "lnbc1"}), respond(request, {"res": "ok"})]
        )
        receipts: list[OfferReceipt] = []

        await client.offer({"offer": "coffee"}, on_receipt=receipts.append)

        assert len(receipts) == 1
        await client.aclose()
        assert client.correlator.listening == 0
        assert pool.subscriptions[0].closed

    @pytest.mark.asyncio
    async def test_receipt_listener_stops_after_timeout(self, client, pool, respond) -> None:
        """Receipt listening is bounded by the request timeout."""
        pool.on_publish(lambda request: [respond(request, {"bolt11": "lnbc1"})])

        await client.offer({"offer": "coffee"}, timeout_seconds=0.02, on_receipt=lambda r: None)
        assert client.correlator.listening == 1
        await asyncio.sleep(0.1)

        assert client.correlator.listening == 0
        assert pool.subscriptions[0].close_calls == 1


class TestValidation:
    """Invalid requests fail before anything is published."""

    @pytest.mark.asyncio
    async def test_long_description(self, client, pool) -> None:
        with pytest.raises(RequestValidationError):
            await client.offer({"offer": "coffee", "description": "x" * 101})

        assert pool.published == []
        assert pool.subscriptions == []

    @pytest.mark.asyncio
    async def test_wrong_shape(self, client, pool) -> None:
        with pytest.raises(RequestValidationError):
            await client.manage({"resource": "offer", "action": "destroy"})

        assert pool.published == []

    @pytest.mark.asyncio
    async def test_missing_counterparty(self, settings, pool, crypto) -> None:
        settings.to_pubkey = ""
        client = create_test_client(settings, pool=pool, crypto=crypto)

        with pytest.raises(ValueError):
            await client.debit({})

        assert pool.published == []


class TestTimeouts:
    """Call timeout beats settings, settings beat the family default."""

    def test_family_default(self, client) -> None:
        assert client._timeout(RequestFamily.OFFER, None) == 30.0
        assert client._timeout(RequestFamily.DEBIT, None) is None

    def test_settings_default(self, client) -> None:
        client.settings.default_timeout_seconds = 5.0
        assert client._timeout(RequestFamily.OFFER, None) == 5.0
        assert client._timeout(RequestFamily.MANAGE, None) == 5.0

    def test_call_override(self, client) -> None:
        client.settings.default_timeout_seconds = 5.0
        assert client._timeout(RequestFamily.OFFER, 1.0) == 1.0

    @pytest.mark.asyncio
    async def test_times_out(self, client, pool) -> None:
        with pytest.raises(RequestTimeout):
            await client.debit({}, timeout_seconds=0.05)

        assert pool.subscriptions[0].close_calls == 1


class TestOfferManagement:
    """client.offers builds manage requests."""

    @pytest.mark.asyncio
    async def test_list(self, client, pool, respond) -> None:
        details = [{"id": "o1", "noffer": "noffer1a", "label": "Coffee", "price_sats": 10}]
        pool.on_publish(
            lambda request: [respond(request, {"res": "ok", "resource": "offer", "details": details})]
        )

        response = await client.offers.list(timeout_seconds=1)

        assert isinstance(response, ManageSuccess)
        assert response.details[0].label == "Coffee"
        assert pool.published[0].kind == 21003
        assert sent_body(pool.published[0]) == {"resource": "offer", "action": "list"}

    @pytest.mark.asyncio
    async def test_create(self, client, pool, respond) -> None:
        created = {"id": "o2", "noffer": "noffer1b", "label": "Tea", "price_sats": 5}
        pool.on_publish(
            lambda request: [respond(request, {"res": "ok", "resource": "offer", "details": created})]
        )

        response = await client.offers.create("Tea", price_sats=5, timeout_seconds=1)

        assert response.details.id == "o2"
        body = sent_body(pool.published[0])
        assert body["action"] == "create"
        assert body["offer"]["fields"]["label"] == "Tea"

    @pytest.mark.asyncio
    async def test_update_delete_get(self, client, pool, respond) -> None:
        pool.on_publish(lambda request: [respond(request, {"res": "ok", "resource": "offer"})])
        offer = OfferData(id="o1", noffer="noffer1a", label="Coffee")

        await client.offers.update(offer, timeout_seconds=1)
        await client.offers.delete("o1", timeout_seconds=1)
        await client.offers.get("o1", timeout_seconds=1)

        actions = [sent_body(event)["action"] for event in pool.published]
        assert actions == ["update", "delete", "get"]


class TestHelpers:
    """One-shot helpers and factories."""

    @pytest.mark.asyncio
    async def test_send_offer_request(
        self, pool, crypto, client_keys, service_keys, relays, respond
    ) -> None:
        pool.on_publish(lambda request: [respond(request, {"bolt11": "lnbc1"})])

        response = await send_offer_request(
            pool, client_keys.private_key, relays, service_keys.public_key, {"offer": "x"}, crypto=crypto
        )

        assert response.bolt11 == "lnbc1"

    @pytest.mark.asyncio
    async def test_send_debit_request(
        self, pool, crypto, client_keys, service_keys, relays, respond
    ) -> None:
        pool.on_publish(lambda request: [respond(request, {"res": "GFY", "error": "nope", "code": 1})])

        response = await send_debit_request(
            pool, client_keys.private_key.hex(), relays, service_keys.public_key, {}, 1, crypto=crypto
        )

        assert response.res == "GFY"

    @pytest.mark.asyncio
    async def test_test_client_defaults(self, settings) -> None:
        async with create_test_client(settings) as client:
            assert isinstance(client.pool, MockRelayPool)
            assert isinstance(client.crypto, Nip44Crypto)
