"""Mock card processor used by checkout. Not a real gateway."""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

logger = logging.getLogger(__name__)


def validate_card_number(card_number: str) -> bool:
    """Luhn checksum over a 13-19 digit card number (spaces and dashes ignored)."""
    digits = card_number.replace(" ", "").replace("-", "")

    if not digits.isdigit() or not 13 <= len(digits) <= 19:
        return False

    total = 0
    for i, char in enumerate(reversed(digits)):
        digit = int(char)
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit

    return total % 10 == 0


@dataclass
class PaymentResult:
    success: bool
    message: str
    transaction_id: Optional[str] = None


class PaymentService:
    def process_payment(self, card_number: str, amount: Decimal) -> PaymentResult:
        logger.info("Processing payment of %s with card ending in %s", amount, card_number[-4:])

        if not validate_card_number(card_number):
            return PaymentResult(success=False, message="Invalid card number")

        transaction_id = str(uuid.uuid4())
        logger.info("Payment successful. Transaction ID: %s", transaction_id)
        return PaymentResult(
            success=True,
            message="Payment processed successfully",
            transaction_id=transaction_id,
        )
