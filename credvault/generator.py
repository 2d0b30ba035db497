"""Secure password generation.

By default every character is drawn uniformly from the union of the
selected alphabets. ``require_each=True`` additionally guarantees at least
one character from each selected class.
"""

import string
from typing import NamedTuple, Optional

from credvault.config import DEFAULT_PASSWORD_LENGTH, MAX_PASSWORD_LENGTH, MIN_PASSWORD_LENGTH
from credvault.errors import LengthOutOfRange, NoCharacterClassSelected
from credvault.random_source import RandomSource, default_random

UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
DIGITS = string.digits
SPECIAL = string.punctuation


class CharacterClasses(NamedTuple):
    """Which alphabets a generated password may use."""

    uppercase: bool = True
    lowercase: bool = True
    digits: bool = True
    special: bool = True

    def pools(self) -> list[str]:
        """Alphabets of the enabled classes, in a fixed order."""
        selected = []
        if self.uppercase:
            selected.append(UPPERCASE)
        if self.lowercase:
            selected.append(LOWERCASE)
        if self.digits:
            selected.append(DIGITS)
        if self.special:
            selected.append(SPECIAL)
        return selected


def generate_password(
    length: int = DEFAULT_PASSWORD_LENGTH,
    classes: CharacterClasses = CharacterClasses(),
    require_each: bool = False,
    random: Optional[RandomSource] = None,
) -> str:
    """Generate a random password.

    Args:
        length: Password length, MIN_PASSWORD_LENGTH..MAX_PASSWORD_LENGTH
        classes: Character classes to draw from
        require_each: Guarantee one character from every selected class
        random: Randomness provider

    Returns:
        Generated password string

    Raises:
        NoCharacterClassSelected: If every class is disabled
        LengthOutOfRange: If length is outside the allowed range, or too
            short to hold one of each class when require_each is set
    """
    if isinstance(length, bool) or not isinstance(length, int):
        raise LengthOutOfRange(f"Password length must be an integer, got {length!r}")
    if not MIN_PASSWORD_LENGTH <= length <= MAX_PASSWORD_LENGTH:
        raise LengthOutOfRange(
            f"Password length must be between {MIN_PASSWORD_LENGTH} and {MAX_PASSWORD_LENGTH}."
        )

    pools = classes.pools()
    if not pools:
        raise NoCharacterClassSelected("At least one character type must be selected.")

    rng = random or default_random
    combined_pool = ''.join(pools)

    if not require_each:
        return ''.join(rng.choice(combined_pool) for _ in range(length))

    if length < len(pools):
        raise LengthOutOfRange(
            f"Password length must be at least {len(pools)} "
            "to include all selected character types."
        )

    # One from each selected type, the rest from the combined pool
    password_chars = [rng.choice(pool) for pool in pools]
    password_chars.extend(rng.choice(combined_pool) for _ in range(length - len(pools)))

    # Shuffle to avoid predictable positions
    rng.shuffle(password_chars)

    return ''.join(password_chars)
