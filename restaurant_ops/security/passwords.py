from pwdlib import PasswordHash
from pwdlib.exceptions import UnknownHashError
from pwdlib.hashers.bcrypt import BcryptHasher


password_hash = PasswordHash.recommended()
pin_hash = PasswordHash((BcryptHasher(),))


def hash_password(raw_password: str) -> str:
    return password_hash.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        return False
    try:
        return password_hash.verify(raw_password, hashed_password)
    except UnknownHashError:
        return False


def hash_pin(pin: str) -> str:
    return pin_hash.hash(pin)


def verify_pin(pin: str, hashed_pin: str | None) -> bool:
    # bcrypt comparison only; a PIN is never matched by plaintext equality.
    if not hashed_pin:
        return False
    try:
        return pin_hash.verify(pin, hashed_pin)
    except UnknownHashError:
        return False
