import string

import shortuuid

COUPON_CODE_ALPHABET = string.ascii_uppercase + string.digits
COUPON_CODE_LENGTH = 10


def generate_shortuuid() -> str:
    return shortuuid.uuid()


def generate_short_token(length: int = 12, alphabet: str | None = None) -> str:
    # ShortUUID sorts and dedupes the alphabet; draws come from `secrets`.
    return shortuuid.ShortUUID(alphabet=alphabet).random(length=length)
