"""
Creator payouts through Razorpay X: fund-account onboarding and withdrawal payouts.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import requests

from fanmeet.config import Settings
from fanmeet.db import DbClient, ProfileRecord, utcnow
from fanmeet.errors import (
    ConfigurationError,
    NotFoundError,
    PermissionDeniedError,
    UpstreamApiError,
    ValidationError,
)
from fanmeet.impersonation import ADMIN_ROLE
from fanmeet.razorpay import PaymentsClient
from fanmeet.types import WithdrawalStatus

logger = logging.getLogger(__name__)


def _check_can_link(db: DbClient, caller_id: Optional[str], creator_id: str) -> None:
    if caller_id == creator_id:
        return
    caller = db.get_profile(caller_id) if caller_id else None
    if not caller or caller.role != ADMIN_ROLE:
        raise PermissionDeniedError(
            "Unauthorized: Cannot link a fund account for another creator"
        )


def create_fund_account(
    razorpay: PaymentsClient,
    *,
    name: Optional[str],
    ifsc: Optional[str] = None,
    account_number: Optional[str] = None,
    upi_id: Optional[str] = None,
    creator_id: Optional[str] = None,
    caller_id: Optional[str] = None,
    db: Optional[DbClient] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Register a creator's bank account or UPI handle as a Razorpay fund account.

    A UPI id takes precedence over bank details when both are given. When
    ``creator_id`` is passed the resulting fund account id is saved on the
    creator's profile so payouts can find it. Only that creator or an admin
    (``caller_id``) may relink a profile.
    """
    if not name or not (account_number or upi_id):
        raise ValidationError("Missing required bank details")
    if creator_id and db is not None:
        _check_can_link(db, caller_id, creator_id)

    now = now or utcnow()
    contact = razorpay.create_contact(
        {
            "name": name,
            "type": "employee",
            "reference_id": f"creator_{int(now.timestamp() * 1000)}",
            "notes": {"source": "fanmeet_creator"},
        }
    )

    if upi_id:
        fund_payload = {
            "contact_id": contact["id"],
            "account_type": "vpa",
            "vpa": {"address": upi_id},
        }
    else:
        fund_payload = {
            "contact_id": contact["id"],
            "account_type": "bank_account",
            "bank_account": {
                "name": name,
                "ifsc": ifsc,
                "account_number": account_number,
            },
        }
    fund_account = razorpay.create_fund_account(fund_payload)

    if creator_id and db is not None:
        profile = db.get_profile(creator_id) or ProfileRecord(id=creator_id, role="creator")
        profile.razorpay_fund_account_id = fund_account["id"]
        db.save_profile(profile)
        logger.info("Linked fund account %s to creator %s", fund_account["id"], creator_id)

    return {"fund_account_id": fund_account["id"], "contact_id": contact["id"]}


def trigger_payout(
    db: DbClient,
    razorpay: PaymentsClient,
    settings: Settings,
    withdrawal_request_id: Optional[str],
    now: Optional[datetime] = None,
) -> dict:
    if not withdrawal_request_id:
        raise ValidationError("Missing withdrawal_request_id")

    request = db.get_withdrawal_request(withdrawal_request_id)
    if not request:
        raise NotFoundError("Invalid withdrawal request or not found")

    if request.status != WithdrawalStatus.PENDING:
        return {"message": "Request already processed", "status": request.status}

    profile = db.get_profile(request.creator_id)
    fund_account_id = profile.razorpay_fund_account_id if profile else None
    if not fund_account_id:
        raise ValidationError(
            "Creator has no linked fund account (razorpay_fund_account_id missing)"
        )

    if not (
        settings.razorpay_key_id
        and settings.razorpay_key_secret
        and settings.razorpay_account_number
    ):
        logger.error("Missing Razorpay keys in environment")
        raise ConfigurationError("Server misconfiguration: Missing Payment Keys")

    if not db.transition_withdrawal_request(
        request.id, [WithdrawalStatus.PENDING], status=WithdrawalStatus.PROCESSING
    ):
        current = db.get_withdrawal_request(request.id)
        return {
            "message": "Request already processed",
            "status": current.status if current else request.status,
        }

    payload = {
        "account_number": settings.razorpay_account_number,
        "fund_account_id": fund_account_id,
        "amount": request.amount * 100,  # paise
        "currency": "INR",
        "mode": "IMPS",
        "purpose": "payout",
        "queue_if_low_balance": True,
        "reference_id": request.id,
        "narration": settings.payout_narration,
    }
    logger.info("Initiating payout for withdrawal %s", request.id)

    try:
        payout = razorpay.create_payout(payload)
    except UpstreamApiError as exc:
        db.update_withdrawal_request(
            request.id,
            status=WithdrawalStatus.FAILED,
            notes=f"Razorpay Error: {exc.message or 'Unknown'}",
        )
        raise
    except requests.RequestException as exc:
        # Outcome unknown: stays processing until reconciled against Razorpay.
        logger.error("Payout request for withdrawal %s did not complete: %s", request.id, exc)
        db.update_withdrawal_request(request.id, notes=f"Razorpay Error: {exc}")
        raise UpstreamApiError(f"Payout request failed: {exc}") from exc

    db.update_withdrawal_request(
        request.id,
        status=WithdrawalStatus.COMPLETED,
        processed_at=now or utcnow(),
        notes=f"Payout ID: {payout['id']}",
    )
    return {"success": True, "payout_id": payout["id"]}
