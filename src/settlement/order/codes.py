"""Human friendly codes for payments and credits."""

import secrets
from uuid import uuid4

ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8


def friendly_code(prefix: str, length: int = CODE_LENGTH) -> str:
    body = "".join(secrets.choice(ALPHABET) for _ in range(length))
    return f"{prefix}-{body}"


def unique_code(prefix: str, taken, attempts: int = 10, generator=friendly_code) -> str:
    """Draw codes until one is not in ``taken``.

    After ``attempts`` collisions a uuid based code is returned, which cannot
    collide with the short alphabet codes.
    """
    taken = set(taken)
    for _ in range(attempts):
        code = generator(prefix)
        if code not in taken:
            return code
    return f"{prefix}-{uuid4().hex.upper()}"
