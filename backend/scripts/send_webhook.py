#!/usr/bin/env python3
"""
Send signed payments-processor webhooks to a local server.

Usage:
    # Start your server first
    uvicorn main:app --reload

    # Then run this script
    python scripts/send_webhook.py --event invoice_paid --customer cus_123
    python scripts/send_webhook.py --event subscription_deleted --customer cus_123
    python scripts/send_webhook.py --event invalid_signature
"""

import argparse
import hashlib
import hmac
import json
import os
import time
import uuid

import httpx

DEFAULT_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
DEFAULT_BASE_URL = os.getenv("TEST_BASE_URL", "http://localhost:8000")


def sign(payload: bytes, secret: str) -> str:
    """Stripe-Signature header value: t=<timestamp>,v1=<hex hmac-sha256>."""
    timestamp = int(time.time())
    signed = f"{timestamp}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def build_event(event_type: str, data_object: dict) -> dict:
    return {
        "id": f"evt_{uuid.uuid4().hex[:24]}",
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "data": {"object": data_object},
    }


def send_event(base_url: str, secret: str, event: dict, signature: str = None) -> httpx.Response:
    payload = json.dumps(event).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        "Stripe-Signature": signature or sign(payload, secret),
    }

    print(f"\n{'='*60}")
    print(f"Sending webhook: {event['type']}")
    print(f"Payload: {json.dumps(event, indent=2)}")
    print(f"{'='*60}\n")

    response = httpx.post(f"{base_url}/webhook", content=payload, headers=headers)
    print(f"Response Status: {response.status_code}")
    print(f"Response Body: {response.text}")
    return response


def invoice_paid(customer_id: str) -> dict:
    return build_event("invoice.paid", {
        "id": "in_local_test",
        "object": "invoice",
        "status": "paid",
        "customer": customer_id,
    })


def payment_failed(customer_id: str) -> dict:
    return build_event("invoice.payment_failed", {
        "id": "in_local_test",
        "object": "invoice",
        "customer": customer_id,
        "lines": {"data": []},
    })


def subscription_deleted(customer_id: str) -> dict:
    return build_event("customer.subscription.deleted", {
        "id": "sub_local_test",
        "object": "subscription",
        "customer": customer_id,
        "items": {"data": []},
    })


def charge_refunded(customer_id: str) -> dict:
    return build_event("charge.refunded", {
        "id": "ch_local_test",
        "object": "charge",
        "customer": customer_id,
        "refunded": True,
    })


EVENTS = {
    "invoice_paid": invoice_paid,
    "payment_failed": payment_failed,
    "subscription_deleted": subscription_deleted,
    "charge_refunded": charge_refunded,
}


def main():
    parser = argparse.ArgumentParser(description="Send signed webhooks to a local server")
    parser.add_argument(
        "--event",
        choices=list(EVENTS.keys()) + ["invalid_signature"],
        default="invoice_paid",
    )
    parser.add_argument("--customer", default="cus_local_test", help="Processor customer id")
    parser.add_argument(
        "--secret",
        default=DEFAULT_SECRET,
        help="Webhook secret (default: STRIPE_WEBHOOK_SECRET env var)"
    )
    parser.add_argument(
        "--base-url",
        default=DEFAULT_BASE_URL,
        help="Base URL of your server (default: http://localhost:8000)"
    )

    args = parser.parse_args()

    if args.event == "invalid_signature":
        response = send_event(
            args.base_url, args.secret, invoice_paid(args.customer), signature="t=1,v1=invalid"
        )
        if response.status_code == 401:
            print("\nCorrectly rejected invalid signature")
        else:
            print("\nWARNING: Invalid signature was NOT rejected")
        return

    send_event(args.base_url, args.secret, EVENTS[args.event](args.customer))


if __name__ == "__main__":
    main()
