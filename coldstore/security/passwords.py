from pwdlib import PasswordHash

from coldstore.errors import ValidationError

MIN_PASSWORD_LENGTH = 8

password_hash = PasswordHash.recommended()


def hash_password(raw_password: str) -> str:
    if len(raw_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    return password_hash.hash(raw_password)


def check_password(raw_password: str, hashed_password: str) -> tuple[bool, str | None]:
    """Verify a password; the second item is a fresh hash when the stored one is outdated."""
    return password_hash.verify_and_update(raw_password, hashed_password)
