import logging
from collections import deque
from app.errors import PayoutFailure
from app.integrations.payouts.base import TransferGateway, TransferResult

logger = logging.getLogger(__name__)


class MockTransferGateway(TransferGateway):
    """In-process gateway. ``outcomes`` is consumed one per call
    (``"success"``, ``"retryable"`` or ``"permanent"``); once empty every
    transfer succeeds."""

    name = "mock"

    def __init__(self, outcomes=None):
        self.outcomes = deque(outcomes or [])
        self.calls = []

    def transfer(self, *, amount, recipient_code, reference, reason=""):
        self.calls.append({"amount": amount, "recipient_code": recipient_code, "reference": reference})
        outcome = self.outcomes.popleft() if self.outcomes else "success"
        logger.info({"event": "mock_transfer", "reference": reference, "outcome": outcome})
        if outcome == "retryable":
            raise PayoutFailure("Insufficient balance in transfer account", retryable=True)
        if outcome == "permanent":
            raise PayoutFailure("Invalid recipient account", retryable=False)
        return TransferResult(
            reference=reference,
            status="success",
            transfer_code=f"MOCK-{reference}",
            provider=self.name,
            raw={"amount": str(amount), "recipient_code": recipient_code},
        )
