from .base import TransferGateway, TransferResult
from .factory import GatewayMisconfigured, build_gateway
from .mock_gateway import MockTransferGateway
from .paystack_gateway import PaystackTransferGateway

__all__ = [
    "TransferGateway",
    "TransferResult",
    "GatewayMisconfigured",
    "build_gateway",
    "MockTransferGateway",
    "PaystackTransferGateway",
]
