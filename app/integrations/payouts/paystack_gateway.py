import logging
from decimal import Decimal
import requests
from app.errors import PayoutFailure
from app.integrations.payouts.base import TransferGateway, TransferResult

logger = logging.getLogger(__name__)


def _is_retryable(status_code, message):
    return status_code >= 500 or "balance" in (message or "").lower()


class PaystackTransferGateway(TransferGateway):
    name = "paystack"

    def __init__(self, secret_key: str, base_url: str = "https://api.paystack.co", timeout: float = 15):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def transfer(self, *, amount, recipient_code, reference, reason=""):
        payload = {
            "source": "balance",
            "amount": int((Decimal(str(amount)) * 100).to_integral_value()),
            "recipient": recipient_code,
            "reference": reference,
            "reason": reason or "Seller payout",
        }
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }
        try:
            r = requests.post(f"{self.base_url}/transfer", headers=headers, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning({"event": "paystack_transfer_network_error", "reference": reference, "error": str(e)})
            raise PayoutFailure(f"Transfer request failed: {e}", retryable=True) from e

        try:
            j = r.json() if r.content else {}
        except ValueError:
            j = {}
        if r.status_code < 200 or r.status_code >= 300 or j.get("status") is not True:
            msg = (j.get("message") or f"HTTP {r.status_code}").strip()
            raise PayoutFailure(f"PAYSTACK_TRANSFER_FAILED:{msg}", retryable=_is_retryable(r.status_code, msg))

        data = j.get("data") or {}
        return TransferResult(
            reference=(data.get("reference") or reference).strip(),
            status=(data.get("status") or "success").strip().lower(),
            transfer_code=(data.get("transfer_code") or "").strip(),
            provider=self.name,
            raw=j,
        )
