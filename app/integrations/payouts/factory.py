from app.integrations.payouts.base import TransferGateway
from app.integrations.payouts.mock_gateway import MockTransferGateway
from app.integrations.payouts.paystack_gateway import PaystackTransferGateway


class GatewayMisconfigured(RuntimeError):
    pass


def build_gateway(config) -> TransferGateway:
    provider = (config.get("PAYOUT_GATEWAY") or "mock").strip().lower()
    if provider == "mock":
        return MockTransferGateway()
    if provider != "paystack":
        raise GatewayMisconfigured(f"Unknown payout gateway: {provider}")

    secret_key = (config.get("PAYSTACK_SECRET_KEY") or "").strip()
    if not secret_key:
        raise GatewayMisconfigured("PAYSTACK_SECRET_KEY is required for the paystack gateway")
    return PaystackTransferGateway(
        secret_key=secret_key,
        base_url=config.get("PAYSTACK_BASE_URL") or "https://api.paystack.co",
        timeout=float(config.get("PAYSTACK_TIMEOUT_SECONDS") or 15),
    )
