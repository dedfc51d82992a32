"""
Test suite for KiwifyGateway.

Token verification runs on raw bodies; API calls run against an
httpx.MockTransport that records each request.

System role: Verification of the Kiwify boundary
"""

import json
from datetime import datetime, timezone

import httpx
import pytest

from fluxo.boundary.payments.kiwify_gateway import KiwifyGateway
from fluxo.configs.kiwify import KiwifySettings
from fluxo.core.exceptions import InvalidSignatureError, PaymentGatewayError
from tests.factories import KIWIFY_PRO_PRODUCT_ID, KIWIFY_WEBHOOK_TOKEN, kiwify_order_payload


def build_gateway(handler=None, webhook_token: str = KIWIFY_WEBHOOK_TOKEN) -> KiwifyGateway:
    settings = KiwifySettings(
        enabled=True,
        api_token="api_tok",
        account_id="acc_1",
        webhook_token=webhook_token,
        pro_product_id=KIWIFY_PRO_PRODUCT_ID,
        base_url="https://kiwify.test/v1",
        checkout_base_url="https://pay.kiwify.test/",
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler)) if handler else None
    return KiwifyGateway(settings, http_client=client)


class TestConstructEvent:
    """Test webhook token verification."""

    def test_construct_event_should_accept_header_token(self) -> None:
        # Arrange
        gateway = build_gateway()
        body = json.dumps(kiwify_order_payload("compra_aprovada", order_id="ord_1")).encode()

        # Act
        event = gateway.construct_event(body, KIWIFY_WEBHOOK_TOKEN)

        # Assert
        assert event["id"] == "ord_1"
        assert event["type"] == "compra_aprovada"
        assert event["subscription_id"] == "ksub_1"

    def test_construct_event_should_prefer_explicit_id(self) -> None:
        gateway = build_gateway()
        payload = {**kiwify_order_payload("compra_aprovada", order_id="ord_1"), "id": "evt_9"}

        event = gateway.construct_event(json.dumps(payload).encode(), KIWIFY_WEBHOOK_TOKEN)

        assert event["id"] == "evt_9"

    def test_construct_event_should_read_kiwify_trigger_field(self) -> None:
        gateway = build_gateway()
        payload = {"order_id": "ord_1", "webhook_event_type": "compra_aprovada"}

        event = gateway.construct_event(json.dumps(payload).encode(), KIWIFY_WEBHOOK_TOKEN)

        assert event["type"] == "compra_aprovada"

    def test_construct_event_should_fall_back_to_body_token(self) -> None:
        gateway = build_gateway()
        body = json.dumps(
            kiwify_order_payload("compra_aprovada", token=KIWIFY_WEBHOOK_TOKEN)
        ).encode()

        event = gateway.construct_event(body, "")

        assert event["type"] == "compra_aprovada"

    @pytest.mark.parametrize("token", ["", "wrong"])
    def test_construct_event_should_reject_missing_or_wrong_token(self, token) -> None:
        gateway = build_gateway()
        body = json.dumps(kiwify_order_payload("compra_aprovada")).encode()

        with pytest.raises(InvalidSignatureError):
            gateway.construct_event(body, token)

    def test_construct_event_should_reject_when_token_not_configured(self) -> None:
        """Deliveries are never accepted unauthenticated."""
        gateway = build_gateway(webhook_token="")
        body = json.dumps(kiwify_order_payload("compra_aprovada")).encode()

        with pytest.raises(InvalidSignatureError, match="not configured"):
            gateway.construct_event(body, "")

    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]"])
    def test_construct_event_should_reject_non_object_bodies(self, body) -> None:
        gateway = build_gateway()

        with pytest.raises(InvalidSignatureError):
            gateway.construct_event(body, KIWIFY_WEBHOOK_TOKEN)


class TestApiCalls:
    """Test Kiwify API requests."""

    @pytest.mark.asyncio
    async def test_retrieve_subscription_should_send_credentials_and_parse(self) -> None:
        # Arrange
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "id": "ksub_1",
                    "status": "cancelled",
                    "product_id": KIWIFY_PRO_PRODUCT_ID,
                    "customer_email": "ana@example.com",
                    "current_period_end": "2026-01-01T00:00:00",
                },
            )

        gateway = build_gateway(handler)

        # Act
        subscription = await gateway.retrieve_subscription("ksub_1")

        # Assert
        assert requests[0].method == "GET"
        assert str(requests[0].url) == "https://kiwify.test/v1/subscriptions/ksub_1"
        assert requests[0].headers["Authorization"] == "Bearer api_tok"
        assert requests[0].headers["x-kiwify-account-id"] == "acc_1"
        assert subscription.normalized_status == "canceled"
        assert subscription.email == "ana@example.com"
        assert subscription.current_period_end == datetime(2026, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_cancel_subscription_should_post_to_cancel_endpoint(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(204)

        gateway = build_gateway(handler)

        await gateway.cancel_subscription("ksub_1")

        assert requests[0].method == "POST"
        assert requests[0].url.path == "/v1/subscriptions/ksub_1/cancel"

    @pytest.mark.asyncio
    async def test_http_errors_should_raise_gateway_error(self) -> None:
        gateway = build_gateway(lambda request: httpx.Response(503, json={"error": "down"}))

        with pytest.raises(PaymentGatewayError) as exc_info:
            await gateway.retrieve_subscription("ksub_1")

        assert exc_info.value.details["operation"] == "retrieve_subscription"

    @pytest.mark.asyncio
    async def test_transport_errors_should_raise_gateway_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        gateway = build_gateway(handler)

        with pytest.raises(PaymentGatewayError):
            await gateway.cancel_subscription("ksub_1")

    @pytest.mark.asyncio
    async def test_malformed_subscription_should_raise_gateway_error(self) -> None:
        gateway = build_gateway(lambda request: httpx.Response(200, json={"status": "active"}))

        with pytest.raises(PaymentGatewayError, match="malformed"):
            await gateway.retrieve_subscription("ksub_1")


class TestCheckoutAndPlans:
    """Test checkout URLs and product mapping."""

    def test_checkout_url_should_prefill_email_and_user(self) -> None:
        gateway = build_gateway()

        url = gateway.checkout_url(KIWIFY_PRO_PRODUCT_ID, "ana+1@example.com", "u-1")

        assert url == "https://pay.kiwify.test/prod_pro?email=ana%2B1%40example.com&external_id=u-1"

    @pytest.mark.parametrize(
        "product_id, plan",
        [(KIWIFY_PRO_PRODUCT_ID, "pro"), ("prod_other", "free"), (None, "free")],
    )
    def test_plan_for_product_should_only_grant_pro_for_pro_product(
        self, product_id, plan
    ) -> None:
        assert build_gateway().plan_for_product(product_id) == plan
