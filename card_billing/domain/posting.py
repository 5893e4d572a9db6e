"""Conversion rules from card transactions to bill line items"""

from card_billing.domain.models import (
    CREDIT_CHECK_CHECK,
    CREDIT_CHECK_CREDIT,
    PRODUCT_LUMP_SUM,
    CardTransaction,
    CardType,
    LineItem,
    TransactionType,
)
from card_billing.utils.date_utils import DATE_FORMAT, TIME_FORMAT

MASK_TOKEN = "**"


def mask_merchant_name(merchant_name: str | None) -> str | None:
    """
    Mask a merchant name for external reporting.

    Names of up to 2 characters are returned as-is, up to 4 characters keep the
    first 2, longer names keep the first 3. The remainder becomes a fixed "**".

    Example:
        "스타벅스역삼점" -> "스타벅**"
        "GS25" -> "GS**"
    """
    if merchant_name is None or len(merchant_name) <= 2:
        return merchant_name
    if len(merchant_name) <= 4:
        return merchant_name[:2] + MASK_TOKEN
    return merchant_name[:3] + MASK_TOKEN


# Plain authorizations and cancellations both default to lump-sum
_PRODUCT_TYPE_BY_TRAN_TYPE = {
    TransactionType.APPROVAL: PRODUCT_LUMP_SUM,
    TransactionType.CANCEL: PRODUCT_LUMP_SUM,
}


def determine_product_type(tran_type: TransactionType) -> str:
    return _PRODUCT_TYPE_BY_TRAN_TYPE.get(tran_type, PRODUCT_LUMP_SUM)


def determine_credit_check_type(card_type: CardType | str | None) -> str:
    """Credit cards report "01"; debit and prepaid are classified as check cards ("02")"""
    if card_type is None:
        return CREDIT_CHECK_CREDIT
    if CardType(card_type) in (CardType.DEBIT, CardType.PREPAID):
        return CREDIT_CHECK_CHECK
    return CREDIT_CHECK_CREDIT


def build_line_item(card_id: str, transaction: CardTransaction) -> LineItem:
    """Line item for a transaction: date, time and signed amount are taken verbatim"""
    return LineItem(
        card_id=card_id,
        paid_date=transaction.tran_date.strftime(DATE_FORMAT),
        paid_time=transaction.tran_time.strftime(TIME_FORMAT),
        paid_amt=transaction.amount,
        merchant_name_masked=mask_merchant_name(transaction.merchant_name),
        credit_fee_amt=0,
        product_type=determine_product_type(transaction.tran_type),
    )
