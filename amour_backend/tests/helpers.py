"""
Request helpers shared by the API tests.
"""

from amour_backend.app.core.config import settings
from amour_backend.app.core.jwt import create_access_token
from amour_backend.app.domain.billing.signature import compute_payment_signature


def auth_headers(account) -> dict:
    token = create_access_token(
        data={"sub": account.phone, "user_id": account.id, "role": account.role.value}
    )
    return {"Authorization": f"Bearer {token}"}


def signed_payment(order_id: str, payment_id: str, amount=249) -> dict:
    """Checkout callback body signed with the configured gateway secret."""
    return {
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": compute_payment_signature(
            order_id, payment_id, settings.razorpay_key_secret
        ),
        "amountRupees": amount,
    }
