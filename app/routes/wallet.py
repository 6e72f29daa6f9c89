from flask import Blueprint, request, current_app
from flask_limiter.util import get_remote_address
from extensions import limiter
from models import db
from models.coin import CoinTransaction
from models.payout import Payout
from app.errors import NotFound
from app.schemas.wallet import BankDetailsRequest, WithdrawRequest
from app.services import payouts
from app.services.coin_ledger import CoinLedgerService
from app.services.escrow import escrow_balance, escrow_history
from app.utils import auth_required, ok, transactional, validate_schema
from app.version import API_PREFIX

wallet_bp = Blueprint("wallet", __name__, url_prefix=f"{API_PREFIX}/wallet")


@wallet_bp.before_request
@auth_required
def _require_user():
    return None


@wallet_bp.route("/coins", methods=["GET"])
def coin_wallet():
    """
    Coin balance and recent coin ledger rows
    ---
    tags:
      - Wallet
    """
    user = request.user
    txns = (
        CoinTransaction.query.filter_by(user_id=user.id)
        .order_by(CoinTransaction.id.desc())
        .limit(50)
        .all()
    )
    return ok({"balance": CoinLedgerService.balance(user.id), "transactions": [t.to_dict() for t in txns]})


@wallet_bp.route("/escrow", methods=["GET"])
def escrow_wallet():
    user = request.user
    return ok(
        {
            "balance": float(escrow_balance(user.id)),
            "payout_setup_completed": user.has_bank_details,
            "entries": [e.to_dict() for e in escrow_history(user.id)],
        }
    )


@wallet_bp.route("/bank", methods=["PUT"])
@validate_schema(BankDetailsRequest)
def set_bank_details():
    """
    Save the payout destination account
    ---
    tags:
      - Wallet
    """
    data = request.validated_data
    user = request.user
    with transactional("Failed to save bank details"):
        user.bank_name = data.bank_name
        user.bank_code = data.bank_code
        user.account_number = data.account_number
        user.account_name = data.account_name
        user.recipient_code = data.recipient_code
    return ok(user.to_dict(), message="Bank details saved")


@wallet_bp.route("/withdraw", methods=["POST"])
@limiter.limit(
    lambda: current_app.config["WITHDRAW_LIMIT_PER_IP"],
    key_func=get_remote_address,
    error_message="Too many withdrawal requests from this IP",
)
@validate_schema(WithdrawRequest)
def withdraw():
    """
    Withdraw from escrow to the saved bank account
    ---
    tags:
      - Wallet
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [amount]
          properties:
            amount: {type: number}
    responses:
      201:
        description: Withdrawal queued
      400:
        description: Below minimum, no bank details, or more than the escrow balance
    """
    with transactional("Withdrawal request failed"):
        payout = payouts.request_withdrawal(request.user, request.validated_data.amount)
    payout_id = payout.id
    payouts.dispatch_payout(payout_id)
    payout = db.session.get(Payout, payout_id)
    return ok(payout.to_dict(), message="Withdrawal requested", status=201)


@wallet_bp.route("/payouts", methods=["GET"])
def list_payouts():
    return ok([p.to_dict() for p in payouts.payouts_for(request.user.id)])


@wallet_bp.route("/payouts/<int:payout_id>", methods=["GET"])
def get_payout(payout_id):
    payout = db.session.get(Payout, payout_id)
    if payout is None or payout.user_id != request.user.id:
        raise NotFound("Payout not found")
    return ok(payout.to_dict())
