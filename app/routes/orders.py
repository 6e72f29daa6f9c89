from flask import Blueprint, request
from app.schemas.orders import StatusUpdateRequest, DisputeRequest
from app.services import order_lifecycle
from app.utils import auth_required, ok, error, transactional, validate_schema
from app.version import API_PREFIX

order_bp = Blueprint("orders", __name__, url_prefix=f"{API_PREFIX}/orders")


@order_bp.before_request
@auth_required
def _require_user():
    return None


@order_bp.route("", methods=["GET"])
def list_orders():
    """
    Orders the caller bought or sold
    ---
    tags:
      - Orders
    parameters:
      - in: query
        name: role
        type: string
        enum: [buyer, seller]
    """
    role = request.args.get("role")
    if role not in (None, "buyer", "seller"):
        return error("role must be buyer or seller", status=400)
    orders = order_lifecycle.orders_for(request.user.id, role)
    return ok([o.to_dict(with_items=False) for o in orders])


@order_bp.route("/<int:order_id>", methods=["GET"])
def get_order(order_id):
    order = order_lifecycle.order_for_party(order_id, request.user.id)
    data = order.to_dict()
    data["status_history"] = [log.to_dict() for log in order.status_logs]
    data["disputes"] = [d.to_dict() for d in order.disputes]
    data["role"] = order.role_of(request.user.id)
    return ok(data)


@order_bp.route("/<int:order_id>/status", methods=["POST"])
@validate_schema(StatusUpdateRequest)
def update_status(order_id):
    """
    Move an order to its next status
    ---
    tags:
      - Orders
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [status]
          properties:
            status:
              type: string
              enum: [confirmed, shipped, delivered, completed, cancelled]
    responses:
      200:
        description: Order updated
      409:
        description: Transition not allowed or lost a concurrent update
    """
    order_lifecycle.order_for_party(order_id, request.user.id)
    with transactional("Order status update failed"):
        order = order_lifecycle.transition(order_id, request.validated_data.status, actor_id=request.user.id)
    return ok(order.to_dict(), message=f"Order {order.status}")


@order_bp.route("/<int:order_id>/dispute", methods=["POST"])
@validate_schema(DisputeRequest)
def open_dispute(order_id):
    """
    Buyer opens a dispute on a shipped or delivered order
    ---
    tags:
      - Orders
    """
    data = request.validated_data
    order_lifecycle.order_for_party(order_id, request.user.id)
    with transactional("Failed to open dispute"):
        dispute = order_lifecycle.raise_dispute(order_id, request.user.id, data.reason, data.description)
    return ok(dispute.to_dict(), message="Dispute opened", status=201)
