"""Payment stub: card fields are format-checked, nothing is charged."""
import logging
import re
import time

from pymongo.database import Database

from courses import require_class
from database import PAYMENTS, create_document, store_operation
from errors import InvalidInput
from schemas import Payment, build

logger = logging.getLogger("learnify.payments")

CARD_NUMBER = re.compile(r"^\d{13,19}$")
EXPIRY_DATE = re.compile(r"^(0[1-9]|1[0-2])/\d{2}$")
CVV = re.compile(r"^\d{3,4}$")


def check_card(card_number: str, expiry_date: str, cvv: str) -> None:
    digits = (card_number or "").replace(" ", "").replace("-", "")
    if not CARD_NUMBER.match(digits) or not EXPIRY_DATE.match(expiry_date or "") or not CVV.match(cvv or ""):
        raise InvalidInput("Invalid payment details")


@store_operation
def record_payment(
    db: Database,
    class_id: str,
    user_id: str,
    amount: float,
    card_number: str,
    expiry_date: str,
    cvv: str,
) -> str:
    """Record a completed payment and return its synthetic transaction id."""
    class_oid = require_class(db, class_id)["_id"]
    check_card(card_number, expiry_date, cvv)
    transaction_id = f"TXN-{int(time.time() * 1000)}"
    payment = build(
        Payment, class_id=class_oid, user_id=user_id, amount=amount, transaction_id=transaction_id
    )
    create_document(db, PAYMENTS, payment)
    logger.info("payment %s recorded for class %s", transaction_id, class_id)
    return transaction_id
