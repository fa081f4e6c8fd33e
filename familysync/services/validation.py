"""Validation Service.

Pure field validators for families and user profiles. Nothing here touches
the database or caches a result, so model properties built on top of these
functions always reflect the current in-memory state.
"""

FAMILY_NAME_MIN_LENGTH = 2
FAMILY_NAME_MAX_LENGTH = 50
FAMILY_CODE_MIN_LENGTH = 6
FAMILY_CODE_MAX_LENGTH = 8
DISPLAY_NAME_MAX_LENGTH = 50
APPLE_USER_ID_HASH_MIN_LENGTH = 10


def is_name_valid(name: str | None) -> bool:
    if name is None:
        return False
    trimmed = name.strip()
    return FAMILY_NAME_MIN_LENGTH <= len(trimmed) <= FAMILY_NAME_MAX_LENGTH


def is_code_valid(code: str | None) -> bool:
    """Family codes are 6-8 letters or digits."""
    if not code:
        return False
    return (
        FAMILY_CODE_MIN_LENGTH <= len(code) <= FAMILY_CODE_MAX_LENGTH
        and code.isalnum()
    )


def is_display_name_valid(display_name: str | None) -> bool:
    if display_name is None:
        return False
    trimmed = display_name.strip()
    return 1 <= len(trimmed) <= DISPLAY_NAME_MAX_LENGTH


def is_apple_user_id_hash_valid(apple_user_id_hash: str | None) -> bool:
    if not apple_user_id_hash:
        return False
    return len(apple_user_id_hash) >= APPLE_USER_ID_HASH_MIN_LENGTH


def validate_family(name: str, code: str) -> list[str]:
    """Return every rule a new family would break (empty list when valid)."""
    errors: list[str] = []

    trimmed = (name or "").strip()
    if not trimmed:
        errors.append("Family name cannot be empty")
    elif len(trimmed) < FAMILY_NAME_MIN_LENGTH:
        errors.append(f"Family name must be at least {FAMILY_NAME_MIN_LENGTH} characters")
    elif len(trimmed) > FAMILY_NAME_MAX_LENGTH:
        errors.append(f"Family name cannot exceed {FAMILY_NAME_MAX_LENGTH} characters")

    if not code:
        errors.append("Family code cannot be empty")
    elif not FAMILY_CODE_MIN_LENGTH <= len(code) <= FAMILY_CODE_MAX_LENGTH:
        errors.append(
            f"Family code must be {FAMILY_CODE_MIN_LENGTH}-{FAMILY_CODE_MAX_LENGTH} characters"
        )
    elif not code.isalnum():
        errors.append("Family code must be alphanumeric")

    return errors


def validate_user_profile(display_name: str, apple_user_id_hash: str) -> list[str]:
    """Return every rule a new user profile would break."""
    errors: list[str] = []

    trimmed = (display_name or "").strip()
    if not trimmed:
        errors.append("Display name cannot be empty")
    elif len(trimmed) > DISPLAY_NAME_MAX_LENGTH:
        errors.append(f"Display name cannot exceed {DISPLAY_NAME_MAX_LENGTH} characters")

    if not apple_user_id_hash:
        errors.append("Apple ID hash cannot be empty")
    elif len(apple_user_id_hash) < APPLE_USER_ID_HASH_MIN_LENGTH:
        errors.append("Invalid Apple ID hash format")

    return errors
