"""Unit tests for BillingWebhookProcessor.

Events go through ``process_webhook`` with the fake gateway's ``valid_sig``
so signature handling, parsing, replay protection and dispatch are all
exercised together.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from repspheres.domains.billing.tests.conftest import (
    DEFAULT_USER_ID,
    _make_event,
    _make_invoice_obj,
    _make_subscription_obj,
    _make_webhook_processor,
    _payload,
)
from repspheres.schemas.subscription import SubscriptionStatus

T0 = 1_700_000_000


async def _send(proc, db, event: dict) -> None:
    await proc.process_webhook(db, _payload(event), "valid_sig")


def _seed_active(repo, **overrides):
    fields = dict(
        stripe_customer_id="cus_test",
        stripe_subscription_id="sub_test",
        plan_id="professional",
        status=SubscriptionStatus.ACTIVE.value,
    )
    fields.update(overrides)
    return repo.seed(DEFAULT_USER_ID, **fields)


# ===========================================================================
# Verification and dispatch
# ===========================================================================


class TestVerificationAndDispatch:
    @pytest.mark.asyncio
    async def test_invalid_signature_raises_value_error(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        event = _make_event("customer.subscription.created", _make_subscription_obj())

        with pytest.raises(ValueError):
            await proc.process_webhook(db, _payload(event), "forged")
        assert repo.get(DEFAULT_USER_ID) is None
        assert events.processed == {}

    @pytest.mark.asyncio
    async def test_malformed_event_raises_value_error(self, db):
        proc, *_ = _make_webhook_processor()

        with pytest.raises(ValueError):
            await proc.process_webhook(db, b'{"type": "invoice.paid"}', "valid_sig")

    @pytest.mark.asyncio
    async def test_unknown_kind_is_ignored(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo)

        await _send(proc, db, _make_event("charge.refunded", {"id": "ch_1"}))

        assert repo.get(DEFAULT_USER_ID).status == SubscriptionStatus.ACTIVE.value
        assert events.processed == {}

    @pytest.mark.asyncio
    async def test_unresolvable_user_is_ignored(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        sub = _make_subscription_obj(id="sub_other", customer="cus_other", metadata={})

        await _send(proc, db, _make_event("customer.subscription.updated", sub))

        assert repo.get(DEFAULT_USER_ID) is None
        assert events.processed == {}

    @pytest.mark.asyncio
    async def test_user_resolved_by_customer_id(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo)
        invoice = _make_invoice_obj(subscription=None)

        await _send(proc, db, _make_event("invoice.payment_failed", invoice, created=T0))

        assert repo.get(DEFAULT_USER_ID).status == SubscriptionStatus.PAST_DUE.value


# ===========================================================================
# Subscription created / updated
# ===========================================================================


class TestSubscriptionUpsert:
    @pytest.mark.asyncio
    async def test_created_mirrors_subscription(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        sub = _make_subscription_obj(current_period_end=T0 + 86400)

        await _send(proc, db, _make_event("customer.subscription.created", sub, created=T0))

        record = repo.get(DEFAULT_USER_ID)
        assert record.status == SubscriptionStatus.ACTIVE.value
        assert record.plan_id == "professional"
        assert record.stripe_subscription_id == "sub_test"
        assert record.stripe_customer_id == "cus_test"
        assert record.current_period_end == datetime.fromtimestamp(T0 + 86400, tz=timezone.utc)
        assert record.last_event_at == datetime.fromtimestamp(T0, tz=timezone.utc)
        assert events.processed == {"evt_test": "customer.subscription.created"}

    @pytest.mark.asyncio
    async def test_plan_falls_back_to_price_mapping(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo, plan_id="starter")
        sub = _make_subscription_obj(
            metadata={},
            items={"data": [{"id": "si_1", "price": {"id": "price_ent", "metadata": {}}}]},
        )

        await _send(proc, db, _make_event("customer.subscription.updated", sub, created=T0))

        assert repo.get(DEFAULT_USER_ID).plan_id == "enterprise"

    @pytest.mark.asyncio
    async def test_plan_unchanged_when_nothing_maps(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo, plan_id="starter")
        sub = _make_subscription_obj(
            metadata={},
            items={"data": [{"id": "si_1", "price": {"id": "price_mystery", "metadata": {}}}]},
        )

        await _send(proc, db, _make_event("customer.subscription.updated", sub, created=T0))

        assert repo.get(DEFAULT_USER_ID).plan_id == "starter"

    @pytest.mark.asyncio
    async def test_incomplete_maps_to_none(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        sub = _make_subscription_obj(status="incomplete")

        await _send(proc, db, _make_event("customer.subscription.created", sub, created=T0))

        assert repo.get(DEFAULT_USER_ID).status == SubscriptionStatus.NONE.value

    @pytest.mark.asyncio
    async def test_stale_update_does_not_overwrite(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo)

        newer = _make_subscription_obj(status="past_due")
        older = _make_subscription_obj(status="active")
        await _send(
            proc,
            db,
            _make_event("customer.subscription.updated", newer, "evt_new", created=T0 + 10),
        )
        await _send(
            proc,
            db,
            _make_event("customer.subscription.updated", older, "evt_old", created=T0),
        )

        record = repo.get(DEFAULT_USER_ID)
        assert record.status == SubscriptionStatus.PAST_DUE.value
        assert record.last_event_at == datetime.fromtimestamp(T0 + 10, tz=timezone.utc)

    @pytest.mark.asyncio
    async def test_other_live_subscription_is_not_adopted(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo)
        sub = _make_subscription_obj(id="sub_second", status="trialing")

        await _send(proc, db, _make_event("customer.subscription.created", sub, created=T0))

        record = repo.get(DEFAULT_USER_ID)
        assert record.stripe_subscription_id == "sub_test"
        assert record.status == SubscriptionStatus.ACTIVE.value

    @pytest.mark.asyncio
    async def test_new_subscription_does_not_revive_canceled_record(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(
            repo,
            status=SubscriptionStatus.CANCELED.value,
            canceled_at=datetime.fromtimestamp(T0, tz=timezone.utc),
            last_event_at=datetime.fromtimestamp(T0 + 100, tz=timezone.utc),
        )
        sub = _make_subscription_obj(
            id="sub_new",
            metadata={"user_id": str(DEFAULT_USER_ID), "plan_id": "starter"},
        )

        await _send(proc, db, _make_event("customer.subscription.created", sub, created=T0 + 200))

        record = repo.get(DEFAULT_USER_ID)
        assert record.stripe_subscription_id == "sub_test"
        assert record.status == SubscriptionStatus.CANCELED.value
        assert record.plan_id == "professional"
        assert record.canceled_at == datetime.fromtimestamp(T0, tz=timezone.utc)

    @pytest.mark.asyncio
    async def test_update_older_than_deletion_is_dropped(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo)

        await _send(
            proc,
            db,
            _make_event(
                "customer.subscription.deleted",
                _make_subscription_obj(status="canceled"),
                "evt_del",
                created=T0 + 100,
            ),
        )
        other = _make_subscription_obj(id="sub_other", status="active")
        await _send(
            proc,
            db,
            _make_event("customer.subscription.updated", other, "evt_upd", created=T0 + 50),
        )

        record = repo.get(DEFAULT_USER_ID)
        assert record.status == SubscriptionStatus.CANCELED.value
        assert record.stripe_subscription_id == "sub_test"
        assert record.last_event_at == datetime.fromtimestamp(T0 + 100, tz=timezone.utc)

    @pytest.mark.asyncio
    async def test_incomplete_record_adopts_new_subscription(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo, status=SubscriptionStatus.NONE.value)
        sub = _make_subscription_obj(
            id="sub_new",
            metadata={"user_id": str(DEFAULT_USER_ID), "plan_id": "starter"},
        )

        await _send(proc, db, _make_event("customer.subscription.created", sub, created=T0))

        record = repo.get(DEFAULT_USER_ID)
        assert record.stripe_subscription_id == "sub_new"
        assert record.status == SubscriptionStatus.ACTIVE.value
        assert record.plan_id == "starter"


# ===========================================================================
# Deletion is terminal
# ===========================================================================


class TestSubscriptionDeleted:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "prior",
        [
            SubscriptionStatus.NONE,
            SubscriptionStatus.TRIALING,
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.PAST_DUE,
            SubscriptionStatus.UNPAID,
            SubscriptionStatus.CANCELED,
        ],
    )
    async def test_deleted_always_cancels(self, db, prior):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo, status=prior.value)
        sub = _make_subscription_obj(status="canceled", canceled_at=T0)

        await _send(proc, db, _make_event("customer.subscription.deleted", sub, created=T0))

        record = repo.get(DEFAULT_USER_ID)
        assert record.status == SubscriptionStatus.CANCELED.value
        assert record.canceled_at == datetime.fromtimestamp(T0, tz=timezone.utc)

    @pytest.mark.asyncio
    async def test_deleted_wins_even_when_older_than_last_update(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo, last_event_at=datetime.fromtimestamp(T0 + 60, tz=timezone.utc))
        sub = _make_subscription_obj(status="canceled")

        await _send(proc, db, _make_event("customer.subscription.deleted", sub, created=T0))

        assert repo.get(DEFAULT_USER_ID).status == SubscriptionStatus.CANCELED.value

    @pytest.mark.asyncio
    async def test_no_later_event_leaves_canceled(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo)

        await _send(
            proc,
            db,
            _make_event(
                "customer.subscription.deleted",
                _make_subscription_obj(status="canceled"),
                "evt_del",
                created=T0,
            ),
        )
        follow_ups = [
            _make_event(
                "customer.subscription.updated",
                _make_subscription_obj(status="active"),
                "evt_upd",
                created=T0 + 10,
            ),
            _make_event("invoice.payment_succeeded", _make_invoice_obj(), "evt_paid", T0 + 20),
            _make_event("invoice.payment_failed", _make_invoice_obj(), "evt_fail", T0 + 30),
        ]
        for event in follow_ups:
            await _send(proc, db, event)

        assert repo.get(DEFAULT_USER_ID).status == SubscriptionStatus.CANCELED.value

    @pytest.mark.asyncio
    async def test_out_of_order_update_after_delete_is_ignored(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo)
        deleted = _make_event(
            "customer.subscription.deleted",
            _make_subscription_obj(status="canceled"),
            "evt_del",
            created=T0 + 10,
        )
        updated = _make_event(
            "customer.subscription.updated",
            _make_subscription_obj(status="active"),
            "evt_upd",
            created=T0,
        )

        await asyncio.gather(_send(proc, db, deleted), _send(proc, db, updated))

        assert repo.get(DEFAULT_USER_ID).status == SubscriptionStatus.CANCELED.value

    @pytest.mark.asyncio
    async def test_deletion_of_other_subscription_is_ignored(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo)
        sub = _make_subscription_obj(id="sub_stray", status="canceled")

        await _send(proc, db, _make_event("customer.subscription.deleted", sub, created=T0))

        assert repo.get(DEFAULT_USER_ID).status == SubscriptionStatus.ACTIVE.value


# ===========================================================================
# Invoices
# ===========================================================================


class TestInvoices:
    @pytest.mark.asyncio
    async def test_payment_failed_then_succeeded(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo)

        await _send(
            proc,
            db,
            _make_event("invoice.payment_failed", _make_invoice_obj(), "evt_1", created=T0),
        )
        assert repo.get(DEFAULT_USER_ID).status == SubscriptionStatus.PAST_DUE.value
        assert notifier.events_for(DEFAULT_USER_ID) == ["payment_failed"]

        await _send(
            proc,
            db,
            _make_event("invoice.payment_succeeded", _make_invoice_obj(), "evt_2", created=T0 + 5),
        )
        assert repo.get(DEFAULT_USER_ID).status == SubscriptionStatus.ACTIVE.value

    @pytest.mark.asyncio
    async def test_payment_failed_during_trial(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo, status=SubscriptionStatus.TRIALING.value)

        await _send(proc, db, _make_event("invoice.payment_failed", _make_invoice_obj()))

        assert repo.get(DEFAULT_USER_ID).status == SubscriptionStatus.PAST_DUE.value

    @pytest.mark.asyncio
    async def test_payment_succeeded_recovers_unpaid(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo, status=SubscriptionStatus.UNPAID.value)

        await _send(proc, db, _make_event("invoice.payment_succeeded", _make_invoice_obj()))

        assert repo.get(DEFAULT_USER_ID).status == SubscriptionStatus.ACTIVE.value

    @pytest.mark.asyncio
    async def test_trial_will_end_only_notifies(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        record = _seed_active(repo, status=SubscriptionStatus.TRIALING.value)
        sub = _make_subscription_obj(status="trialing", trial_end=T0 + 3 * 86400)

        await _send(
            proc, db, _make_event("customer.subscription.trial_will_end", sub, created=T0)
        )

        assert record.status == SubscriptionStatus.TRIALING.value
        assert record.last_event_at is None
        assert notifier.sent == [
            (
                "trial_will_end",
                DEFAULT_USER_ID,
                {"subscription_id": "sub_test", "trial_end": T0 + 3 * 86400},
            )
        ]


# ===========================================================================
# Replay idempotency
# ===========================================================================


class TestReplay:
    @pytest.mark.asyncio
    async def test_replayed_event_is_applied_once(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo)
        failed = _make_event("invoice.payment_failed", _make_invoice_obj(), "evt_1", T0)

        await _send(proc, db, failed)
        first = (repo.get(DEFAULT_USER_ID).status, repo.get(DEFAULT_USER_ID).last_event_at)
        await _send(proc, db, failed)

        record = repo.get(DEFAULT_USER_ID)
        assert (record.status, record.last_event_at) == first
        assert notifier.events_for(DEFAULT_USER_ID) == ["payment_failed"]
        assert repo.call_count("update") == 1

    @pytest.mark.asyncio
    async def test_handler_failure_rolls_back_and_raises(self, db):
        proc, gw, repo, events, notifier = _make_webhook_processor()
        _seed_active(repo)

        async def boom(*args, **kwargs):
            raise RuntimeError("db down")

        repo.update = boom  # type: ignore[method-assign]

        with pytest.raises(RuntimeError):
            await _send(proc, db, _make_event("invoice.payment_failed", _make_invoice_obj()))
        db.rollback.assert_awaited()
        db.commit.assert_not_awaited()
