import re
import hashlib
from typing import Optional, Union

TEAM_ID_LENGTH = 8
GAME_ID_LENGTH = 8


def generate_team_id(
    espn_id: Union[str, int],
    abbreviation: Optional[str] = None,
    namespace: str = "cfb",
    length: int = TEAM_ID_LENGTH,
) -> str:
    """Deterministic internal team id, e.g. ('52', 'TOW') -> 'TOW' + 5 hex chars.

    The abbreviation (up to 3 alphanumerics, padded with 'x' to 2) is kept as
    a readable prefix; the rest is a sha256 digest of a fixed template.
    """
    if length < 4:
        raise ValueError("Team id length must be at least 4")
    clean_abv = re.sub(r"[^A-Za-z0-9]", "", abbreviation or "")
    prefix = clean_abv[:3].ljust(2, "x")
    base = clean_abv or str(espn_id)
    digest = hashlib.sha256(f"{namespace}-{base}-{espn_id}".encode()).hexdigest()
    return (prefix + digest[: length - len(prefix)]).upper()


def generate_game_id(prefix: str, native_id: Union[str, int], discriminator: Optional[str] = None) -> str:
    """md5 of '{prefix}{native_id}-{discriminator}', first 8 hex chars upper-cased."""
    source = f"{prefix}{native_id}-{discriminator or ''}"
    return hashlib.md5(source.encode()).hexdigest()[:GAME_ID_LENGTH].upper()
