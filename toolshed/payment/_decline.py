"""
Gateway error codes → the fixed set of messages a shopper may see.

Raw gateway text never reaches `GatewayError.message`; it is kept in
`detail` for the logs.
"""

from __future__ import annotations

import logging
from enum import StrEnum

from toolshed.errors import GatewayError

logger = logging.getLogger(__name__)


class DeclineReason(StrEnum):
    DECLINED = "declined"
    EXPIRED = "expired"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    BAD_NUMBER = "bad_number"
    BAD_CVC = "bad_cvc"
    GENERIC = "generic"


DECLINE_MESSAGES: dict[DeclineReason, str] = {
    DeclineReason.DECLINED: "Your card was declined. Please try a different card.",
    DeclineReason.EXPIRED: "Your card has expired. Please use a different card.",
    DeclineReason.INSUFFICIENT_FUNDS: "Your card has insufficient funds. Please use a different card.",
    DeclineReason.BAD_NUMBER: "Your card number is incorrect. Please check it and try again.",
    DeclineReason.BAD_CVC: "Your card's security code is incorrect. Please check it and try again.",
    DeclineReason.GENERIC: "We couldn't process your payment. Please try again.",
}

_CODES: dict[str, DeclineReason] = {
    "card_declined": DeclineReason.DECLINED,
    "generic_decline": DeclineReason.DECLINED,
    "do_not_honor": DeclineReason.DECLINED,
    "fraudulent": DeclineReason.DECLINED,
    "lost_card": DeclineReason.DECLINED,
    "stolen_card": DeclineReason.DECLINED,
    "expired_card": DeclineReason.EXPIRED,
    "insufficient_funds": DeclineReason.INSUFFICIENT_FUNDS,
    "incorrect_number": DeclineReason.BAD_NUMBER,
    "invalid_number": DeclineReason.BAD_NUMBER,
    "incorrect_cvc": DeclineReason.BAD_CVC,
    "invalid_cvc": DeclineReason.BAD_CVC,
}


def reason_for(*codes: str | None) -> DeclineReason:
    """First recognised code wins. `decline_code` is more specific than `code`, pass it first."""
    for code in codes:
        if code and code in _CODES:
            return _CODES[code]
    return DeclineReason.GENERIC


def decline(*codes: str | None, detail: str | None = None) -> GatewayError:
    reason = reason_for(*codes)
    if detail:
        logger.info("Gateway declined payment (%s): %s", reason, detail)
    return GatewayError(reason.value, DECLINE_MESSAGES[reason], detail)


__all__ = (
    "DeclineReason",
    "DECLINE_MESSAGES",
    "reason_for",
    "decline",
)
