# Ensures `from theme_api...` works when the package lives under `backend/theme_api`
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
PKG_DIR = ROOT / "backend"
if str(PKG_DIR) not in sys.path:
    sys.path.insert(0, str(PKG_DIR))

# Settings are read at import time; tests must never see real vendor keys.
_TEST_ENV = {
    "APP_ENV": "test",
    "SUPABASE_URL": "https://edge.test",
    "SUPABASE_SERVICE_ROLE_KEY": "service-role-test",
    "SUPABASE_JWT_SECRET": "test-jwt-secret",
    "STRIPE_SECRET_KEY": "sk_test_dummy",
    "STRIPE_WEBHOOK_SECRET": "whsec_test_secret",
    "STRIPE_BASIC_PRICE_ID": "price_basic_test",
    "STRIPE_PRO_PRICE_ID": "price_pro_test",
    "SCHEDULER_ENABLED": "false",
}
for _k, _v in _TEST_ENV.items():
    os.environ[_k] = _v
