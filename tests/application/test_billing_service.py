"""
Test suite for BillingService.

Runs the service against an in-memory SQLite database with a mocked
payment gateway: webhook reconciliation (upsert, deletion, dedup,
failure atomicity) and the checkout, portal, status and cancel flows.

System role: Verification of subscription billing orchestration
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from fluxo.application.services.billing_service import BillingService
from fluxo.application.services.plan_resolver import PricePlanResolver
from fluxo.boundary.db.CRUD import subscription_crud, webhook_event_crud
from fluxo.core.exceptions import (
    InvalidSignatureError,
    NotFoundError,
    PaymentGatewayError,
    SubscriptionError,
    ValidationError,
)
from fluxo.core.locks import KeyedLock
from fluxo.models.billing import GatewayCustomer
from tests.factories import (
    PERIOD_END,
    PRO_PRICE_ID,
    as_utc,
    event_payload,
    make_subscription,
    subscription_payload,
)


@pytest.fixture
def user_id(test_user) -> UUID:
    """Provide the seeded user's ID (read before any rollback expires the row)."""
    return test_user.id


@pytest.fixture
def billing_service(test_async_db: AsyncSession, mock_gateway: MagicMock) -> BillingService:
    """Provide BillingService with SQLite session and mocked gateway."""
    return BillingService(
        db=test_async_db,
        gateway=mock_gateway,
        plan_resolver=PricePlanResolver({PRO_PRICE_ID: "pro"}, fallback_plan="free"),
        user_locks=KeyedLock(),
    )


def deliver(mock_gateway: MagicMock, payload: dict) -> None:
    """Make the gateway verify the next delivery as payload."""
    mock_gateway.construct_event.return_value = payload


def link_customer(mock_gateway: MagicMock, user_id: UUID | None) -> None:
    """Make retrieve_customer return a customer linked to user_id."""
    metadata = {"userId": str(user_id)} if user_id else {}
    mock_gateway.retrieve_customer.return_value = GatewayCustomer(
        id="cus_123", metadata=metadata
    )


async def seed_subscription(db: AsyncSession, user_id: UUID, **values):
    record = await subscription_crud.upsert_for_user(db, user_id, **values)
    await db.commit()
    return record


class TestHandleWebhookCheckoutCompleted:
    """Test checkout.session.completed reconciliation."""

    @pytest.mark.asyncio
    async def test_checkout_completed_should_upsert_live_subscription(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        """The live subscription is fetched and written for the user."""
        # Arrange
        deliver(
            mock_gateway,
            event_payload(
                "checkout.session.completed",
                {"id": "cs_1", "subscription": "sub_123", "metadata": {"userId": str(user_id)}},
            ),
        )
        mock_gateway.retrieve_subscription.return_value = make_subscription()

        # Act
        result = await billing_service.handle_webhook(b"{}", "t=1,v1=sig")

        # Assert
        assert result == {"received": True}
        mock_gateway.retrieve_subscription.assert_awaited_once_with("sub_123")
        record = await subscription_crud.get_by_user_id(test_async_db, user_id)
        assert record.plan_id == "pro"
        assert record.status == "active"
        assert record.stripe_customer_id == "cus_123"
        assert record.stripe_subscription_id == "sub_123"
        assert as_utc(record.current_period_end) == datetime.fromtimestamp(
            PERIOD_END, tz=timezone.utc
        )

    @pytest.mark.asyncio
    async def test_checkout_completed_should_reject_missing_user_id(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        """Missing metadata.userId fails and nothing is written."""
        # Arrange
        payload = event_payload(
            "checkout.session.completed",
            {"id": "cs_1", "subscription": "sub_123", "metadata": {}},
        )
        deliver(mock_gateway, payload)

        # Act / Assert
        with pytest.raises(ValidationError, match="userId"):
            await billing_service.handle_webhook(b"{}", "sig")

        mock_gateway.retrieve_subscription.assert_not_called()
        assert await subscription_crud.get_by_user_id(test_async_db, user_id) is None
        assert not await webhook_event_crud.is_processed(test_async_db, payload["id"])

    @pytest.mark.asyncio
    async def test_checkout_completed_should_reject_malformed_user_id(
        self, billing_service, mock_gateway
    ) -> None:
        deliver(
            mock_gateway,
            event_payload(
                "checkout.session.completed",
                {"id": "cs_1", "subscription": "sub_123", "metadata": {"userId": "not-a-uuid"}},
            ),
        )

        with pytest.raises(ValidationError):
            await billing_service.handle_webhook(b"{}", "sig")

    @pytest.mark.asyncio
    async def test_checkout_completed_should_use_fallback_plan_for_unknown_price(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        deliver(
            mock_gateway,
            event_payload(
                "checkout.session.completed",
                {"id": "cs_1", "subscription": "sub_123", "metadata": {"userId": str(user_id)}},
            ),
        )
        mock_gateway.retrieve_subscription.return_value = make_subscription(
            price_id="price_legacy"
        )

        await billing_service.handle_webhook(b"{}", "sig")

        record = await subscription_crud.get_by_user_id(test_async_db, user_id)
        assert record.plan_id == "free"
        assert record.status == "active"


class TestHandleWebhookVerification:
    """Test signature failures and redelivery."""

    @pytest.mark.asyncio
    async def test_invalid_signature_should_fail_before_dispatch(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        """Nothing is fetched or written when verification fails."""
        # Arrange
        mock_gateway.construct_event.side_effect = InvalidSignatureError(
            "Invalid webhook signature"
        )

        # Act / Assert
        with pytest.raises(InvalidSignatureError):
            await billing_service.handle_webhook(b"{}", "bad")

        mock_gateway.retrieve_subscription.assert_not_called()
        mock_gateway.retrieve_customer.assert_not_called()
        assert await subscription_crud.get_by_user_id(test_async_db, user_id) is None

    @pytest.mark.asyncio
    async def test_duplicate_event_id_should_be_acknowledged_without_dispatch(
        self, billing_service, mock_gateway, user_id
    ) -> None:
        """A redelivered event is applied once."""
        # Arrange
        deliver(
            mock_gateway,
            event_payload(
                "checkout.session.completed",
                {"id": "cs_1", "subscription": "sub_123", "metadata": {"userId": str(user_id)}},
                event_id="evt_same",
            ),
        )
        mock_gateway.retrieve_subscription.return_value = make_subscription()

        # Act
        first = await billing_service.handle_webhook(b"{}", "sig")
        second = await billing_service.handle_webhook(b"{}", "sig")

        # Assert
        assert first == {"received": True}
        assert second == {"received": True, "duplicate": True}
        mock_gateway.retrieve_subscription.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_gateway_failure_should_leave_no_partial_state(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        """A failed dispatch rolls back and the event stays retryable."""
        # Arrange
        payload = event_payload(
            "checkout.session.completed",
            {"id": "cs_1", "subscription": "sub_123", "metadata": {"userId": str(user_id)}},
        )
        deliver(mock_gateway, payload)
        mock_gateway.retrieve_subscription.side_effect = PaymentGatewayError(
            "Payment gateway request failed: retrieve_subscription"
        )

        # Act / Assert
        with pytest.raises(PaymentGatewayError):
            await billing_service.handle_webhook(b"{}", "sig")

        assert await subscription_crud.get_by_user_id(test_async_db, user_id) is None
        assert not await webhook_event_crud.is_processed(test_async_db, payload["id"])


class TestHandleWebhookSubscriptionEvents:
    """Test customer.subscription.* reconciliation."""

    @pytest.mark.asyncio
    async def test_subscription_updated_should_store_status_verbatim(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        # Arrange
        await seed_subscription(test_async_db, user_id, plan_id="pro", status="active")
        link_customer(mock_gateway, user_id)
        deliver(
            mock_gateway,
            event_payload(
                "customer.subscription.updated", subscription_payload(status="past_due")
            ),
        )

        # Act
        await billing_service.handle_webhook(b"{}", "sig")

        # Assert
        mock_gateway.retrieve_customer.assert_awaited_once_with("cus_123")
        record = await subscription_crud.get_by_user_id(test_async_db, user_id)
        assert record.status == "past_due"
        assert record.plan_id == "pro"

    @pytest.mark.asyncio
    async def test_subscription_created_should_insert_when_no_row_exists(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        link_customer(mock_gateway, user_id)
        deliver(
            mock_gateway,
            event_payload(
                "customer.subscription.created",
                subscription_payload(current_period_end=None, item_period_end=PERIOD_END),
            ),
        )

        await billing_service.handle_webhook(b"{}", "sig")

        record = await subscription_crud.get_by_user_id(test_async_db, user_id)
        assert record.plan_id == "pro"
        assert as_utc(record.current_period_end) == datetime.fromtimestamp(
            PERIOD_END, tz=timezone.utc
        )

    @pytest.mark.asyncio
    async def test_subscription_updated_should_skip_when_user_unknown(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        """Missing userId on update is logged and acknowledged."""
        # Arrange
        link_customer(mock_gateway, None)
        payload = event_payload("customer.subscription.updated", subscription_payload())
        deliver(mock_gateway, payload)

        # Act
        result = await billing_service.handle_webhook(b"{}", "sig")

        # Assert
        assert result == {"received": True}
        assert await subscription_crud.get_by_user_id(test_async_db, user_id) is None
        assert await webhook_event_crud.is_processed(test_async_db, payload["id"])

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "event_type", ["customer.subscription.updated", "customer.subscription.deleted"]
    )
    async def test_subscription_event_should_skip_malformed_user_link(
        self, billing_service, mock_gateway, test_async_db, user_id, event_type
    ) -> None:
        """A non-UUID userId is skipped and the event is still recorded."""
        # Arrange
        await seed_subscription(test_async_db, user_id, plan_id="pro", status="active")
        mock_gateway.retrieve_customer.return_value = GatewayCustomer(
            id="cus_123", metadata={"userId": "legacy-42"}
        )
        payload = event_payload(event_type, subscription_payload(status="past_due"))
        deliver(mock_gateway, payload)

        # Act
        result = await billing_service.handle_webhook(b"{}", "sig")

        # Assert
        assert result == {"received": True}
        record = await subscription_crud.get_by_user_id(test_async_db, user_id)
        assert (record.plan_id, record.status) == ("pro", "active")
        assert await webhook_event_crud.is_processed(test_async_db, payload["id"])

    @pytest.mark.asyncio
    async def test_subscription_updated_should_use_subscription_metadata_fallback(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        link_customer(mock_gateway, None)
        deliver(
            mock_gateway,
            event_payload(
                "customer.subscription.updated",
                subscription_payload(metadata={"userId": str(user_id)}),
            ),
        )

        await billing_service.handle_webhook(b"{}", "sig")

        record = await subscription_crud.get_by_user_id(test_async_db, user_id)
        assert record.stripe_subscription_id == "sub_123"

    @pytest.mark.asyncio
    async def test_subscription_deleted_should_downgrade_to_free_canceled(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        """Deletion clears the subscription reference and period end."""
        # Arrange
        await seed_subscription(
            test_async_db,
            user_id,
            plan_id="pro",
            status="active",
            stripe_customer_id="cus_123",
            stripe_subscription_id="sub_123",
            current_period_end=datetime.fromtimestamp(PERIOD_END, tz=timezone.utc),
        )
        link_customer(mock_gateway, user_id)
        deliver(
            mock_gateway,
            event_payload("customer.subscription.deleted", subscription_payload(status="canceled")),
        )

        # Act
        await billing_service.handle_webhook(b"{}", "sig")

        # Assert
        record = await subscription_crud.get_by_user_id(test_async_db, user_id)
        assert record.plan_id == "free"
        assert record.status == "canceled"
        assert record.stripe_subscription_id is None
        assert record.current_period_end is None
        assert record.stripe_customer_id == "cus_123"

    @pytest.mark.asyncio
    async def test_subscription_deleted_should_be_idempotent(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        """A second deletion (new event ID) leaves the same end state."""
        # Arrange
        await seed_subscription(
            test_async_db, user_id, plan_id="pro", status="active",
            stripe_subscription_id="sub_123",
        )
        link_customer(mock_gateway, user_id)
        subscription = subscription_payload(status="canceled")

        # Act
        deliver(mock_gateway, event_payload("customer.subscription.deleted", subscription))
        await billing_service.handle_webhook(b"{}", "sig")
        first = await billing_service.get_subscription_status(user_id)

        deliver(mock_gateway, event_payload("customer.subscription.deleted", subscription))
        await billing_service.handle_webhook(b"{}", "sig")
        second = await billing_service.get_subscription_status(user_id)

        # Assert
        for key in ("id", "plan_id", "status", "stripe_subscription_id", "current_period_end"):
            assert first[key] == second[key]
        assert second["plan_id"] == "free"
        assert second["status"] == "canceled"

    @pytest.mark.asyncio
    async def test_subscription_deleted_should_ignore_user_without_row(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        link_customer(mock_gateway, user_id)
        deliver(
            mock_gateway,
            event_payload("customer.subscription.deleted", subscription_payload(status="canceled")),
        )

        result = await billing_service.handle_webhook(b"{}", "sig")

        assert result == {"received": True}
        assert await subscription_crud.get_by_user_id(test_async_db, user_id) is None


class TestHandleWebhookLogOnlyEvents:
    """Test events that never mutate state."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "event_type", ["invoice.payment_succeeded", "invoice.payment_failed"]
    )
    async def test_invoice_events_should_not_change_subscription(
        self, billing_service, mock_gateway, test_async_db, user_id, event_type
    ) -> None:
        # Arrange
        await seed_subscription(test_async_db, user_id, plan_id="pro", status="active")
        deliver(
            mock_gateway,
            event_payload(event_type, {"id": "in_1", "customer": "cus_123", "attempt_count": 1}),
        )

        # Act
        result = await billing_service.handle_webhook(b"{}", "sig")

        # Assert
        assert result == {"received": True}
        record = await subscription_crud.get_by_user_id(test_async_db, user_id)
        assert record.plan_id == "pro"
        assert record.status == "active"

    @pytest.mark.asyncio
    async def test_unhandled_event_should_be_acknowledged(
        self, billing_service, mock_gateway
    ) -> None:
        deliver(mock_gateway, event_payload("customer.created", {"id": "cus_1"}))

        result = await billing_service.handle_webhook(b"{}", "sig")

        assert result == {"received": True}
        mock_gateway.retrieve_customer.assert_not_called()


class TestCreateCheckoutSession:
    """Test checkout session creation."""

    @pytest.mark.asyncio
    async def test_checkout_should_create_and_persist_customer_once(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        """First checkout creates the customer and stores it."""
        # Act
        result = await billing_service.create_checkout_session(
            user_id, PRO_PRICE_ID, "https://app/success", "https://app/cancel"
        )

        # Assert
        assert result == {
            "session_id": "cs_test_1",
            "url": "https://checkout.stripe.com/c/pay/cs_test_1",
        }
        mock_gateway.create_customer.assert_awaited_once_with(
            email="ana@example.com", user_id=str(user_id)
        )
        mock_gateway.create_checkout_session.assert_awaited_once_with(
            customer_id="cus_new",
            price_id=PRO_PRICE_ID,
            success_url="https://app/success",
            cancel_url="https://app/cancel",
            user_id=str(user_id),
        )
        record = await subscription_crud.get_by_user_id(test_async_db, user_id)
        assert record.stripe_customer_id == "cus_new"
        assert record.plan_id == "free"
        assert record.status == "incomplete"

    @pytest.mark.asyncio
    async def test_checkout_should_reuse_stored_customer(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        # Arrange
        await seed_subscription(
            test_async_db, user_id, plan_id="free", status="canceled",
            stripe_customer_id="cus_existing",
        )

        # Act
        await billing_service.create_checkout_session(user_id, PRO_PRICE_ID, "s", "c")
        await billing_service.create_checkout_session(user_id, PRO_PRICE_ID, "s", "c")

        # Assert
        mock_gateway.create_customer.assert_not_called()
        assert mock_gateway.create_checkout_session.await_args.kwargs["customer_id"] == "cus_existing"

    @pytest.mark.asyncio
    async def test_checkout_should_attach_customer_to_free_signup_row(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        """Free-plan users (status active from signup) can upgrade."""
        await seed_subscription(test_async_db, user_id, plan_id="free", status="active")

        await billing_service.create_checkout_session(user_id, PRO_PRICE_ID, "s", "c")

        record = await subscription_crud.get_by_user_id(test_async_db, user_id)
        assert record.stripe_customer_id == "cus_new"
        assert record.status == "active"
        assert record.plan_id == "free"

    @pytest.mark.asyncio
    async def test_checkout_should_reject_active_paid_subscription(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        await seed_subscription(
            test_async_db, user_id, plan_id="pro", status="active", stripe_customer_id="cus_1"
        )

        with pytest.raises(SubscriptionError):
            await billing_service.create_checkout_session(user_id, PRO_PRICE_ID, "s", "c")

        mock_gateway.create_checkout_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_checkout_should_raise_not_found_for_unknown_user(
        self, billing_service, mock_gateway
    ) -> None:
        with pytest.raises(NotFoundError):
            await billing_service.create_checkout_session(uuid4(), PRO_PRICE_ID, "s", "c")

        mock_gateway.create_customer.assert_not_called()


class TestSelfServiceOperations:
    """Test portal, status and cancel operations."""

    @pytest.mark.asyncio
    async def test_portal_should_require_customer(self, billing_service, user_id) -> None:
        with pytest.raises(NotFoundError):
            await billing_service.create_customer_portal_session(user_id, "https://app/billing")

    @pytest.mark.asyncio
    async def test_portal_should_return_gateway_url(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        await seed_subscription(
            test_async_db, user_id, plan_id="pro", status="active", stripe_customer_id="cus_1"
        )

        result = await billing_service.create_customer_portal_session(
            user_id, "https://app/billing"
        )

        assert result == {"url": "https://billing.stripe.com/p/session/bps_1"}
        mock_gateway.create_portal_session.assert_awaited_once_with(
            "cus_1", "https://app/billing"
        )

    @pytest.mark.asyncio
    async def test_get_status_should_raise_when_absent(self, billing_service, user_id) -> None:
        with pytest.raises(NotFoundError):
            await billing_service.get_subscription_status(user_id)

    @pytest.mark.asyncio
    async def test_get_status_should_return_stored_record(
        self, billing_service, test_async_db, user_id
    ) -> None:
        await seed_subscription(test_async_db, user_id, plan_id="pro", status="trialing")

        result = await billing_service.get_subscription_status(user_id)

        assert result["user_id"] == str(user_id)
        assert result["plan_id"] == "pro"
        assert result["status"] == "trialing"

    @pytest.mark.asyncio
    async def test_cancel_should_require_subscription_reference(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        await seed_subscription(test_async_db, user_id, plan_id="free", status="active")

        with pytest.raises(NotFoundError):
            await billing_service.cancel_subscription(user_id)

        mock_gateway.cancel_at_period_end.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_should_only_touch_gateway(
        self, billing_service, mock_gateway, test_async_db, user_id
    ) -> None:
        """Local state waits for the resulting webhook."""
        # Arrange
        await seed_subscription(
            test_async_db, user_id, plan_id="pro", status="active",
            stripe_subscription_id="sub_123",
        )

        # Act
        result = await billing_service.cancel_subscription(user_id)

        # Assert
        assert "end of the billing period" in result["message"]
        mock_gateway.cancel_at_period_end.assert_awaited_once_with("sub_123")
        record = await subscription_crud.get_by_user_id(test_async_db, user_id)
        assert record.plan_id == "pro"
        assert record.status == "active"
