#!/usr/bin/env python3
"""
Stripe Product & Price Setup Script
=====================================
Creates (or finds) the Basic and Pro subscription products and their monthly
JPY prices, then prints the price ids to put in STRIPE_BASIC_PRICE_ID /
STRIPE_PRO_PRICE_ID.

Usage:
    python scripts/stripe_setup.py --mode test    # Setup test mode
    python scripts/stripe_setup.py --mode live    # Setup live mode (PRODUCTION)
    python scripts/stripe_setup.py --dry-run      # Show what would be created
"""

import argparse
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import stripe
from dotenv import load_dotenv

from theme_api.services.tier_service import CURRENCY, PLANS

# Settings variable each plan's price id is exported as
ENV_NAMES = {plan: config["price_setting"] for plan, config in PLANS.items()}


def _lookup_key(plan: str) -> str:
    return f"theme_discovery_{plan}_monthly"


def _find_or_create_product(plan: str, config: dict):
    existing = stripe.Product.search(query=f"metadata['plan']:'{plan}'")
    if existing.data:
        product = existing.data[0]
        print(f"   ✓ Found existing product: {product.id}")
        return stripe.Product.modify(
            product.id,
            name=config["name"],
            metadata={"plan": plan, "features": ", ".join(config["features"])},
        )
    product = stripe.Product.create(
        name=config["name"],
        metadata={"plan": plan, "features": ", ".join(config["features"])},
    )
    print(f"   ✅ Created new product: {product.id}")
    return product


def _find_or_create_price(plan: str, config: dict, product) -> str:
    lookup_key = _lookup_key(plan)
    existing = stripe.Price.list(lookup_keys=[lookup_key], limit=1)
    if existing.data:
        price = existing.data[0]
        if price.unit_amount == config["price"] and price.currency == CURRENCY:
            print(f"      ✓ Found existing price: {price.id}")
            return price.id
        # Prices are immutable; move the lookup key onto a fresh one
        print("      ⚠️  Price mismatch! Creating new price...")

    price = stripe.Price.create(
        product=product.id,
        unit_amount=config["price"],  # JPY is zero-decimal
        currency=CURRENCY,
        recurring={"interval": "month"},
        lookup_key=lookup_key,
        transfer_lookup_key=True,
        metadata={"plan": plan},
    )
    print(f"      ✅ Created new price: {price.id}")
    return price.id


def setup_stripe_products(dry_run=False):
    """Create or update the plan products and prices. Returns {plan: price_id}."""
    mode = "LIVE" if (stripe.api_key or "").startswith("sk_live_") else "TEST"
    print(f"\n{'='*60}")
    print(f"🔧 Stripe Setup - {mode} MODE")
    print(f"{'='*60}\n")
    if dry_run:
        print("🔍 DRY RUN MODE - No changes will be made\n")

    price_map = {}
    for plan, config in PLANS.items():
        print(f"\n📦 Product: {config['name']} ({plan})")
        print(f"   💰 ¥{config['price']:,}/month")
        if dry_run:
            print("   ✓ Would create/update product and price")
            price_map[plan] = f"price_DRYRUN_{plan}"
            continue
        product = _find_or_create_product(plan, config)
        price_map[plan] = _find_or_create_price(plan, config, product)

    print(f"\n{'='*60}")
    print("📋 PRICE MAPPING (add these to your environment variables)")
    print(f"{'='*60}\n")
    for plan, price_id in price_map.items():
        print(f"{ENV_NAMES[plan]}={price_id}")
    print()
    return price_map


def main():
    parser = argparse.ArgumentParser(description="Setup Stripe products and prices")
    parser.add_argument("--mode", choices=["test", "live"], default="test",
                        help="Which Stripe mode to use (test or live)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Show what would be created without making changes")
    args = parser.parse_args()

    env_file = Path(__file__).parent.parent / "backend" / ".env.local"
    if env_file.exists():
        print(f"📂 Loading environment from: {env_file}")
        load_dotenv(env_file, override=False)

    if args.mode == "live":
        stripe.api_key = os.getenv("STRIPE_LIVE_SECRET_KEY") or os.getenv("STRIPE_SECRET_KEY")
        if not stripe.api_key or not stripe.api_key.startswith("sk_live_"):
            print("❌ ERROR: STRIPE_LIVE_SECRET_KEY not found or invalid!")
            sys.exit(1)
    else:
        stripe.api_key = os.getenv("STRIPE_SECRET_KEY")
        if not stripe.api_key and not args.dry_run:
            print("❌ ERROR: STRIPE_SECRET_KEY not found!")
            print("   Set STRIPE_SECRET_KEY in your environment or backend/.env.local")
            sys.exit(1)

    try:
        setup_stripe_products(dry_run=args.dry_run)
    except stripe.StripeError as e:
        print(f"\n❌ Stripe Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
