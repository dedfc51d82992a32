"""
Test suite for webhook event parsing and gateway views.

System role: Verification of the typed webhook event union
"""

from datetime import datetime, timezone

import pydantic
import pytest

from fluxo.models.billing import (
    CheckoutSessionCompletedEvent,
    CreateCheckoutSessionRequest,
    GatewaySubscription,
    InvoicePaymentFailedEvent,
    InvoicePaymentSucceededEvent,
    SubscriptionChangedEvent,
    SubscriptionDeletedEvent,
    UnhandledEvent,
    extract_user_id,
    parse_webhook_event,
)
from tests.factories import PERIOD_END, PRO_PRICE_ID, event_payload, subscription_payload


class TestParseWebhookEvent:
    """Test mapping of event types onto variants."""

    def test_parse_should_build_checkout_completed_event(self) -> None:
        """checkout.session.completed carries the session view."""
        # Arrange
        payload = event_payload(
            "checkout.session.completed",
            {
                "id": "cs_1",
                "object": "checkout.session",
                "customer": "cus_1",
                "subscription": "sub_1",
                "metadata": {"userId": "u-1"},
                "amount_total": 1999,
            },
            event_id="evt_1",
        )

        # Act
        event = parse_webhook_event(payload)

        # Assert
        assert isinstance(event, CheckoutSessionCompletedEvent)
        assert event.id == "evt_1"
        assert event.data.subscription == "sub_1"
        assert event.data.user_id == "u-1"

    @pytest.mark.parametrize(
        "event_type",
        ["customer.subscription.created", "customer.subscription.updated"],
    )
    def test_parse_should_build_subscription_changed_event(self, event_type: str) -> None:
        """Created and updated share one variant."""
        event = parse_webhook_event(event_payload(event_type, subscription_payload()))

        assert isinstance(event, SubscriptionChangedEvent)
        assert event.type == event_type
        assert event.data.price_id == PRO_PRICE_ID

    def test_parse_should_build_subscription_deleted_event(self) -> None:
        event = parse_webhook_event(
            event_payload("customer.subscription.deleted", subscription_payload(status="canceled"))
        )

        assert isinstance(event, SubscriptionDeletedEvent)
        assert event.data.status == "canceled"

    def test_parse_should_build_invoice_events(self) -> None:
        invoice = {"id": "in_1", "object": "invoice", "customer": "cus_1", "attempt_count": 2}

        succeeded = parse_webhook_event(event_payload("invoice.payment_succeeded", invoice))
        failed = parse_webhook_event(event_payload("invoice.payment_failed", invoice))

        assert isinstance(succeeded, InvoicePaymentSucceededEvent)
        assert isinstance(failed, InvoicePaymentFailedEvent)
        assert failed.data.attempt_count == 2

    def test_parse_should_fall_back_to_unhandled_event(self) -> None:
        """Unknown types are kept with their raw object."""
        event = parse_webhook_event(event_payload("customer.created", {"id": "cus_1"}))

        assert isinstance(event, UnhandledEvent)
        assert event.type == "customer.created"
        assert event.data == {"id": "cus_1"}

    def test_parse_should_reject_malformed_handled_event(self) -> None:
        """A handled type with a malformed object fails validation."""
        with pytest.raises(pydantic.ValidationError):
            parse_webhook_event(
                event_payload("customer.subscription.updated", {"id": "sub_1"})
            )


class TestGatewaySubscription:
    """Test derived subscription fields."""

    def test_period_end_should_convert_unix_seconds_to_utc(self) -> None:
        subscription = GatewaySubscription.model_validate(subscription_payload())

        assert subscription.period_end == datetime.fromtimestamp(PERIOD_END, tz=timezone.utc)
        assert subscription.period_end.tzinfo is not None

    def test_period_end_should_fall_back_to_first_item(self) -> None:
        """Newer API versions report the period on the item."""
        subscription = GatewaySubscription.model_validate(
            subscription_payload(current_period_end=None, item_period_end=PERIOD_END)
        )

        assert subscription.period_end == datetime.fromtimestamp(PERIOD_END, tz=timezone.utc)

    def test_price_id_should_be_none_without_items(self) -> None:
        subscription = GatewaySubscription.model_validate(
            subscription_payload(price_id=None, current_period_end=None)
        )

        assert subscription.price_id is None
        assert subscription.period_end is None


class TestExtractUserId:
    """Test user ID lookup in gateway metadata."""

    def test_extract_should_read_camel_case_key(self) -> None:
        assert extract_user_id({"userId": "abc"}) == "abc"

    def test_extract_should_read_snake_case_key(self) -> None:
        assert extract_user_id({"user_id": "abc"}) == "abc"

    @pytest.mark.parametrize("metadata", [None, {}, {"userId": ""}, {"other": "x"}])
    def test_extract_should_return_none_when_missing(self, metadata) -> None:
        assert extract_user_id(metadata) is None


class TestCreateCheckoutSessionRequest:
    def test_request_should_accept_camel_case_and_snake_case(self) -> None:
        camel = CreateCheckoutSessionRequest.model_validate(
            {"priceId": "price_1", "successUrl": "https://a", "cancelUrl": "https://b"}
        )
        snake = CreateCheckoutSessionRequest(
            price_id="price_1", success_url="https://a", cancel_url="https://b"
        )

        assert camel == snake
