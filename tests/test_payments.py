import asyncio
import hashlib
import hmac
import json
import time

import stripe
from sqlalchemy import func, select

from cvintelligence.models.package import ProductPackage
from cvintelligence.models.payment import CreditPurchase
from cvintelligence.services.auth import AuthService
from cvintelligence.services.settings_store import SettingsStore

from conftest import fetch_user

WEBHOOK_SECRET = "whsec_test"


def sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def succeeded_event(user_id, credits=10, intent_id="pi_123"):
    return json.dumps({
        "id": "evt_1",
        "type": "payment_intent.succeeded",
        "data": {"object": {
            "id": intent_id,
            "amount": credits * 500,
            "amount_received": credits * 500,
            "currency": "brl",
            "metadata": {"userId": str(user_id), "credits": str(credits), "packageName": "Pacote Pro"},
        }},
    })


async def post_webhook(client, payload, signature):
    return await client.post("/api/webhook", content=payload.encode(),
                             headers={"stripe-signature": signature, "content-type": "application/json"})


async def count_purchases(session_factory):
    async with session_factory() as session:
        return (await session.execute(select(func.count(CreditPurchase.id)))).scalar_one()


async def test_webhook_credits_once_per_payment_intent(client, db, user, session_factory):
    await SettingsStore(db).set("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    await AuthService(db).update_credits(user["id"], 5)
    payload = succeeded_event(user["id"], credits=10)

    first = await post_webhook(client, payload, sign(payload))
    replay = await post_webhook(client, payload, sign(payload))

    assert first.status_code == 200
    assert first.json() == {"received": True}
    assert replay.status_code == 200
    assert (await fetch_user(session_factory, user["id"])).credits == 15
    assert await count_purchases(session_factory) == 1

    purchases = (await client.get("/api/purchases")).json()
    assert len(purchases) == 1
    assert purchases[0]["packageName"] == "Pacote Pro"
    assert purchases[0]["creditsPurchased"] == 10
    assert purchases[0]["amountPaidCents"] == 5000
    assert purchases[0]["stripePaymentIntentId"] == "pi_123"


async def test_concurrent_webhook_deliveries_credit_once(client, db, user, session_factory):
    await SettingsStore(db).set("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    payload = succeeded_event(user["id"], credits=10, intent_id="pi_race")

    responses = await asyncio.gather(
        post_webhook(client, payload, sign(payload)),
        post_webhook(client, payload, sign(payload)),
    )

    assert [r.status_code for r in responses] == [200, 200]
    assert (await fetch_user(session_factory, user["id"])).credits == 12
    assert await count_purchases(session_factory) == 1


async def test_webhook_rejects_bad_signature(client, db, user, session_factory):
    await SettingsStore(db).set("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    payload = succeeded_event(user["id"])

    response = await post_webhook(client, payload, sign(payload, secret="whsec_other"))

    assert response.status_code == 400
    assert response.json()["message"].startswith("Webhook Error")
    assert (await fetch_user(session_factory, user["id"])).credits == 2
    assert await count_purchases(session_factory) == 0


async def test_webhook_rejects_stale_timestamp(client, db, user):
    await SettingsStore(db).set("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    payload = succeeded_event(user["id"])

    response = await post_webhook(client, payload, sign(payload, timestamp=int(time.time()) - 3600))

    assert response.status_code == 400


async def test_webhook_without_secret_or_header(client, db, user):
    payload = succeeded_event(user["id"])
    assert (await post_webhook(client, payload, sign(payload))).status_code == 400

    await SettingsStore(db).set("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    response = await client.post("/api/webhook", content=payload.encode())
    assert response.status_code == 400


async def test_webhook_ignores_other_events(client, db, user, session_factory):
    await SettingsStore(db).set("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    payload = json.dumps({"id": "evt_2", "type": "payment_intent.created", "data": {"object": {}}})

    response = await post_webhook(client, payload, sign(payload))

    assert response.status_code == 200
    assert await count_purchases(session_factory) == 0


async def test_webhook_for_unknown_user_is_acknowledged(client, db, session_factory):
    await SettingsStore(db).set("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    payload = succeeded_event(4242)

    response = await post_webhook(client, payload, sign(payload))

    assert response.status_code == 200
    assert await count_purchases(session_factory) == 0


async def test_create_payment_intent(client, db, user, monkeypatch):
    await SettingsStore(db).set("STRIPE_SECRET_KEY", "sk_test_123")
    db.add(ProductPackage(name="Pacote Básico", credits=3, price_cents=1500))
    await db.commit()
    calls = []

    def fake_create(**kwargs):
        calls.append(kwargs)
        return {"id": "pi_new", "client_secret": "pi_new_secret_abc"}

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

    response = await client.post("/api/create-payment-intent", json={"credits": 3})

    assert response.status_code == 200
    assert response.json() == {"clientSecret": "pi_new_secret_abc"}
    assert calls[0]["amount"] == 1500
    assert calls[0]["currency"] == "brl"
    assert calls[0]["api_key"] == "sk_test_123"
    assert calls[0]["metadata"] == {"userId": str(user["id"]), "credits": "3", "packageName": "Pacote Básico"}
    # Nothing is credited until the webhook arrives
    assert (await client.get("/api/auth/user")).json()["credits"] == 2


async def test_create_payment_intent_provider_error(client, db, user, monkeypatch):
    await SettingsStore(db).set("STRIPE_SECRET_KEY", "sk_test_123")

    def failing_create(**kwargs):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.PaymentIntent, "create", failing_create)

    response = await client.post("/api/create-payment-intent", json={"credits": 2})

    assert response.status_code == 502


async def test_create_payment_intent_when_disabled(client, db, user):
    assert (await client.post("/api/create-payment-intent", json={"credits": 2})).status_code == 503

    store = SettingsStore(db)
    await store.set("STRIPE_SECRET_KEY", "sk_test_123")
    await store.set("STRIPE_PAYMENTS_ENABLED", "false")
    assert (await client.post("/api/create-payment-intent", json={"credits": 2})).status_code == 503


async def test_create_payment_intent_validates_credits(client, user):
    response = await client.post("/api/create-payment-intent", json={"credits": 0})

    assert response.status_code == 400


async def test_payment_config(client, db):
    store = SettingsStore(db)
    await store.set("STRIPE_SECRET_KEY", "sk_test_123")
    await store.set("STRIPE_PUBLIC_KEY", "pk_test_123")

    response = await client.get("/api/payments/config")

    assert response.json() == {
        "enabled": True,
        "publicKey": "pk_test_123",
        "unitPriceCents": 500,
        "currency": "brl",
    }
