from dataclasses import dataclass, field


@dataclass
class TransferResult:
    reference: str
    status: str
    transfer_code: str = ""
    provider: str = ""
    raw: dict = field(default_factory=dict)


class TransferGateway:
    """Moves money to a seller's bank account.

    Implementations raise ``PayoutFailure`` with ``retryable`` set when the
    transfer did not go through.
    """

    name = "unknown"

    def transfer(self, *, amount, recipient_code: str, reference: str, reason: str = "") -> TransferResult:
        raise NotImplementedError
