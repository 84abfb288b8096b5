"""Manual smoke run against a local server (uvicorn src.main:app --port 8000).

Tokens are minted locally, so JWT_SECRET must match the server's. The order
section needs a seeded product: SMOKE_PRODUCT_ID / SMOKE_PRODUCT_PRICE.
"""
import json
import os
import urllib.error
import urllib.request

from src.ft_gateway.auth.jwt_handler import create_access_token

BASE = os.environ.get("SMOKE_BASE_URL", "http://localhost:8000/api/v1")
PRODUCT_ID = os.environ.get("SMOKE_PRODUCT_ID", "prod-demo-tomato")
PRODUCT_PRICE = int(os.environ.get("SMOKE_PRODUCT_PRICE", "15000"))


def post(path, body=None, token=None):
    data = json.dumps(body or {}).encode()
    req = urllib.request.Request(
        f"{BASE}{path}",
        data=data,
        headers={"Content-Type": "application/json"}
    )
    if token:
        req.add_header("Authorization", f"Bearer {token}")
    try:
        with urllib.request.urlopen(req) as r:
            return json.loads(r.read())
    except urllib.error.HTTPError as e:
        return json.loads(e.read())

def get(path, token=None, params=None):
    url = f"{BASE}{path}"
    if params:
        url += "?" + "&".join(f"{k}={v}" for k, v in params.items())
    req = urllib.request.Request(url)
    if token:
        req.add_header("Authorization", f"Bearer {token}")
    try:
        with urllib.request.urlopen(req) as r:
            return json.loads(r.read())
    except urllib.error.HTTPError as e:
        return json.loads(e.read())

def section(title):
    print(f"\n{'='*60}")
    print(f"### {title} ###")
    print('='*60)

def label(name):
    print(f"\n--- {name} ---")

def out(data):
    print(json.dumps(data, indent=2, ensure_ascii=False))

# ── Tokens ─────────────────────────────────────────────────────
BUYER = create_access_token("smoke-buyer", "buyer")
OTHER = create_access_token("smoke-buyer-2", "buyer")
ADMIN = create_access_token("smoke-admin", "admin")

# ── T1 Public / auth ───────────────────────────────────────────
section("T1: PUBLIC AND AUTH")

label("T1-1: Payment methods (no auth)")
out(get("/payments/methods"))

label("T1-2: List orders without token (expect 401)")
out(get("/orders"))

label("T1-3: Admin stats as buyer (expect 1002)")
out(get("/admin/escrow/stats", BUYER))

# ── T2 Orders ──────────────────────────────────────────────────
section("T2: ORDERS")

DELIVERY = {
    "firstName": "Aminata", "lastName": "Kamara", "phone": "23276123456",
    "address": "12 Wilkinson Road", "district": "Western Area Urban",
}

label("T2-1: Create order")
r = post("/orders", {
    "items": [{"productId": PRODUCT_ID, "quantity": 1, "price": PRODUCT_PRICE}],
    "delivery": DELIVERY,
    "total": PRODUCT_PRICE,
}, BUYER)
out(r)
ORDER_ID = (r.get("data") or {}).get("id", "")

label("T2-2: Empty cart (expect 3001)")
out(post("/orders", {"items": [], "delivery": DELIVERY}, BUYER))

label("T2-3: Unknown district (expect 3001)")
out(post("/orders", {
    "items": [{"productId": PRODUCT_ID, "quantity": 1, "price": PRODUCT_PRICE}],
    "delivery": {**DELIVERY, "district": "Atlantis"},
}, BUYER))

label("T2-4: Read another buyer's order (expect 1002)")
out(get(f"/orders/{ORDER_ID}", OTHER))

label("T2-5: List my orders")
out(get("/orders", BUYER, {"limit": 5}))

# ── T3 Payments ────────────────────────────────────────────────
section("T3: PAYMENTS")

label("T3-1: Bad phone number (expect 4001)")
out(post("/payments/initialize", {
    "orderId": ORDER_ID, "paymentMethod": "orange_money", "phoneNumber": "076123456",
}, BUYER))

label("T3-2: Initialize payment (4004 when Monime is not configured)")
r = post("/payments/initialize", {
    "orderId": ORDER_ID, "paymentMethod": "orange_money", "phoneNumber": "23276123456",
}, BUYER)
out(r)
REFERENCE = (r.get("data") or {}).get("reference", "")

if REFERENCE:
    label("T3-3: Second initialize (expect 4003)")
    out(post("/payments/initialize", {
        "orderId": ORDER_ID, "paymentMethod": "afrimoney", "phoneNumber": "23276123456",
    }, BUYER))

    label("T3-4: Poll status")
    out(get("/payments/verify", BUYER, {"reference": REFERENCE}))

label("T3-5: Webhook with bad signature (expect 4006)")
out(post("/payments/monime/webhook", {"event": "payment.completed", "data": {}}))

label("T3-6: Payment history")
out(get("/payments/history", BUYER, {"limit": 5}))

label("T3-7: My escrows and stats")
out(get("/payments/escrows", BUYER))
out(get("/payments/escrows/stats", BUYER))

if ORDER_ID:
    label("T3-8: Refund without a reason (expect 3001)")
    out(post(f"/payments/refund/{ORDER_ID}", {}, ADMIN))

# ── T4 Admin ───────────────────────────────────────────────────
section("T4: ADMIN")

label("T4-1: Escrow stats")
out(get("/admin/escrow/stats", ADMIN))

label("T4-2: Pending escrows")
out(get("/admin/escrow", ADMIN, {"status": "pending"}))

label("T4-3: Stale payment sweep")
out(post("/admin/payments/sweep", token=ADMIN))

label("T4-4: Auto-release run")
out(post("/admin/escrow/auto-release", token=ADMIN))

if ORDER_ID and not REFERENCE:
    label("T4-5: Cancel unpaid order")
    out(post(f"/orders/{ORDER_ID}/cancel", {"reason": "smoke run"}, BUYER))
