"""Wallet routes: balance, history, deposits and withdrawals."""
import logging

from flask import Blueprint, request, jsonify, g, current_app

from bantah.core import PaymentService, WalletService
from bantah.utils.permissions import active_user_required, current_user_id
from bantah.utils.serializers import serialize
from bantah.utils.validators import parse_amount

logger = logging.getLogger(__name__)

wallets_bp = Blueprint("wallets", __name__)


@wallets_bp.route("/", methods=["GET"])
@active_user_required
def get_balance():
    wallet = WalletService.get_or_create_wallet(current_user_id())
    return jsonify({
        "balance": round(float(wallet.get("balance", 0)), 2),
        "coins": int(wallet.get("coins", 0)),
        "currency": current_app.config["CURRENCY"]
    })


@wallets_bp.route("/transactions", methods=["GET"])
@active_user_required
def get_transactions():
    limit = min(request.args.get("limit", 50, type=int), 200)
    return jsonify({
        "transactions": WalletService.get_wallet_transactions(current_user_id(), limit=limit)
    })


@wallets_bp.route("/deposit", methods=["POST"])
@active_user_required
def initialize_deposit():
    data = request.get_json(silent=True) or {}
    amount = parse_amount(data.get("amount"))
    if amount is None:
        return jsonify({"error": "Amount must be a positive number"}), 400

    deposit, error = PaymentService.initialize_deposit(g.current_user, amount, data.get("callback_url"))
    if error:
        return jsonify({"error": error}), 400
    return jsonify(deposit), 201


@wallets_bp.route("/deposit/verify/<reference>", methods=["GET", "POST"])
@active_user_required
def verify_deposit(reference):
    result, error = PaymentService.verify_deposit(reference, user_id=current_user_id())
    if error:
        status = 404 if error == "Deposit not found" else 400
        return jsonify({"error": error}), status
    return jsonify(result)


@wallets_bp.route("/paystack/webhook", methods=["POST"])
def paystack_webhook():
    """Paystack server-to-server notification for completed charges."""
    signature = request.headers.get("x-paystack-signature", "")
    if not PaymentService.gateway().verify_webhook_signature(request.get_data(), signature):
        logger.warning("Rejected Paystack webhook with bad signature")
        return jsonify({"error": "Invalid signature"}), 401

    payload = request.get_json(silent=True) or {}
    if payload.get("event") == "charge.success":
        reference = (payload.get("data") or {}).get("reference")
        if reference:
            _, error = PaymentService.verify_deposit(reference)
            if error:
                logger.warning("Webhook deposit %s not credited: %s", reference, error)

    return jsonify({"received": True})


@wallets_bp.route("/withdraw", methods=["POST"])
@active_user_required
def withdraw():
    data = request.get_json(silent=True) or {}
    amount = parse_amount(data.get("amount"))
    if amount is None:
        return jsonify({"error": "Amount must be a positive number"}), 400

    withdrawal, error = PaymentService.request_withdrawal(
        current_user_id(), amount, data.get("account_number"), data.get("bank_code")
    )
    if error:
        return jsonify({"error": error}), 400

    return jsonify({
        "withdrawal": serialize(withdrawal),
        "balance": WalletService.get_wallet_balance(current_user_id())
    }), 201
