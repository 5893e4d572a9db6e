"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class NotFoundError(DomainException):
    """Referenced entity does not exist"""

    pass


class CardNotFoundError(NotFoundError):
    """Card reference could not be resolved"""

    def __init__(self, card_ref: str):
        self.card_ref = card_ref
        super().__init__(f"Card not found: {card_ref}")


class UserNotFoundError(NotFoundError):
    """Card user does not exist"""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class StatementNotFoundError(NotFoundError):
    """Bill could not be located"""

    pass


class InvalidStateError(DomainException):
    """Entity state forbids the requested operation"""

    pass


class InvalidCardStateError(InvalidStateError):
    """Card status forbids posting (e.g. closed card)"""

    def __init__(self, card_no: str, status: str):
        self.card_no = card_no
        self.status = status
        super().__init__(f"Card {card_no} is not usable (status={status})")


class StatementClosedError(InvalidStateError):
    """Line items cannot be appended to a closed bill"""

    pass


class InvalidChargeMonthError(DomainException, ValueError):
    """Charge month is not a valid YYYYMM value"""

    pass
