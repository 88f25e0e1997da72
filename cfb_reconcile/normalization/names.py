"""Deterministic text canonicalization shared by every matching stage.

Everything in here is a pure function of its arguments: no I/O, no settings,
no logging. Team and game reconciliation both lean on `clean_name` and
`is_safe_match`, so any change to these rules changes which records match.
"""

import re
from datetime import date, datetime
from typing import NamedTuple, Optional, Set, Tuple

COMMON_MASCOTS = frozenset(
    {
        "eagles", "tigers", "bulldogs", "wildcats", "panthers", "lions",
        "bears", "cardinals", "hawks", "knights", "trojans", "spartans",
        "warriors", "vikings", "pirates", "flames", "saints", "demons",
        "rebels", "mustangs", "cougars", "rams", "wolves", "falcons",
        "jaguars", "bison", "broncos", "colts", "hornets", "owls",
        "bobcats", "raccoons",
    }
)

STATE_ABBREVIATIONS = {
    "al": "alabama", "ak": "alaska", "az": "arizona", "ar": "arkansas",
    "ca": "california", "co": "colorado", "ct": "connecticut", "de": "delaware",
    "fl": "florida", "ga": "georgia", "hi": "hawaii", "id": "idaho",
    "il": "illinois", "in": "indiana", "ia": "iowa", "ks": "kansas",
    "ky": "kentucky", "la": "louisiana", "me": "maine", "md": "maryland",
    "ma": "massachusetts", "mi": "michigan", "mn": "minnesota",
    "ms": "mississippi", "mo": "missouri", "mt": "montana", "ne": "nebraska",
    "nv": "nevada", "nh": "new hampshire", "nj": "new jersey",
    "nm": "new mexico", "ny": "new york", "nc": "north carolina",
    "nd": "north dakota", "oh": "ohio", "ok": "oklahoma", "or": "oregon",
    "pa": "pennsylvania", "ri": "rhode island", "sc": "south carolina",
    "sd": "south dakota", "tn": "tennessee", "tx": "texas", "ut": "utah",
    "vt": "vermont", "va": "virginia", "wa": "washington",
    "wv": "west virginia", "wi": "wisconsin", "wy": "wyoming",
}

AFFILIATION_WORDS = frozenset({"university", "univ", "college", "of", "at"})
ACRONYM_STOP_WORDS = frozenset({"of", "the", "and", "at", "in", "a", "an", "for", "to"})

# Applied to the space-joined string, in order.
_PHRASE_RULES = [
    (re.compile(r"\bstate university of new york\b"), "suny"),
    (re.compile(r"\b(?:california state|cal state)\b"), "csu"),
    (re.compile(r"\bsouthern illinois\b"), "siu"),
    (re.compile(r"\bmt\b"), "mount"),
]

_PAREN_STATE = re.compile(r"\(\s*([a-z])\.?\s*([a-z])\.?\s*\)")
_SUFFIX_STATE = re.compile(r",\s*([a-z])\.?\s*([a-z])\.?\s*$")
_NON_WORD = re.compile(r"[^a-z0-9\s]")
_APOSTROPHES = re.compile(r"['‘’`]")
_MAX_CLEAN_PASSES = 5

_DIVISION_TAG = re.compile(
    r"\s*\((?:fbs|fcs|d-?i{1,3}|div(?:ision)?\.?\s*i{1,3})\)\s*$", re.IGNORECASE
)
_TITLE_SPLIT = re.compile(r"\s(?:vs\.?|at|@)\s", re.IGNORECASE)
_SCORE = re.compile(r"^\s*([WLT])?\s*(\d+)\s*-\s*(\d+)", re.IGNORECASE)
_RANK_PREFIX = re.compile(r"^#\s*\d+\s+")
_NCAA_URL_PREFIXES = ("https://stats.ncaa.org", "https://www.ncaa.com")


class ParsedOpponent(NamedTuple):
    name: str
    scraped_team_home: bool
    neutral_site: Optional[str] = None


class ParsedScore(NamedTuple):
    result: Optional[str]  # "W", "L", "T" or None when the row carries no indicator
    team_score: int
    opponent_score: int


def _expand_state(match: "re.Match[str]") -> str:
    code = match.group(1) + match.group(2)
    state = STATE_ABBREVIATIONS.get(code)
    return f" {state} " if state else f" {code} "


def _clean_once(text: str) -> str:
    text = _APOSTROPHES.sub("", text.lower())
    text = text.replace("&", " and ")
    text = _PAREN_STATE.sub(_expand_state, text)
    text = _SUFFIX_STATE.sub(_expand_state, text)
    text = _NON_WORD.sub(" ", text)
    text = " ".join(text.split())
    for pattern, replacement in _PHRASE_RULES:
        text = pattern.sub(replacement, text)

    words = [
        w for w in text.split() if w not in COMMON_MASCOTS and w not in AFFILIATION_WORDS
    ]
    # "St" is a suffix for State and a prefix for Saint.
    for i, word in enumerate(words):
        if word == "st":
            words[i] = "state" if 0 < i == len(words) - 1 else "saint"
    return " ".join(words)


def clean_name(name: Optional[str]) -> str:
    """Canonical, lowercase form of a school or team name.

    "Miami (OH) RedHawks" -> "miami ohio redhawks", "St. Francis (PA)" ->
    "saint francis pennsylvania", "Ohio St." -> "ohio state". Applying it
    twice gives the same result as applying it once.
    """
    if not name:
        return ""
    text = name
    for _ in range(_MAX_CLEAN_PASSES):
        cleaned = _clean_once(text)
        if cleaned == text:
            break
        text = cleaned
    return text


def generate_acronym(name: Optional[str]) -> str:
    if not name:
        return ""
    letters = []
    for word in re.split(r"[\s-]+", name.lower()):
        word = re.sub(r"[^a-z0-9]", "", word)
        if word and word not in ACRONYM_STOP_WORDS:
            letters.append(word[0])
    return "".join(letters)


def name_tokens(name: Optional[str]) -> Set[str]:
    return set(clean_name(name).split())


def token_overlap(first: Optional[str], second: Optional[str]) -> float:
    """Shared cleaned tokens relative to the smaller token set (0.0 when either is empty)."""
    a, b = name_tokens(first), name_tokens(second)
    if not a or not b:
        return 0.0
    return len(a & b) / min(len(a), len(b))


def is_safe_match(first: Optional[str], second: Optional[str], min_overlap: float = 0.8) -> bool:
    """Exact cleaned equality, or at least `min_overlap` token overlap."""
    a, b = clean_name(first), clean_name(second)
    if not a or not b:
        return False
    if a == b:
        return True
    return token_overlap(a, b) >= min_overlap


def normalize_division(text: Optional[str]) -> Optional[str]:
    """Maps scraped division text to one of fbs, fcs, d2, d3."""
    if not text:
        return None
    lowered = text.lower()
    if "fbs" in lowered:
        return "fbs"
    if "fcs" in lowered:
        return "fcs"
    if "division iii" in lowered:
        return "d3"
    if "division ii" in lowered:
        return "d2"
    # Bare "Division I" (not II/III) defaults to fbs
    if re.search(r"division\s+i(?!\w)", lowered):
        return "fbs"
    if lowered.strip() in {"fbs", "fcs", "d2", "d3"}:
        return lowered.strip()
    return None


def strip_division_tag(name: Optional[str]) -> str:
    """'Towson (FCS)' -> 'Towson'. State tags such as '(OH)' are kept."""
    if not name:
        return ""
    return _DIVISION_TAG.sub("", name).strip()


def school_url_key(url: Optional[str]) -> Optional[str]:
    """Host-independent key for NCAA school profile URLs."""
    if not url:
        return None
    url = url.strip()
    for prefix in _NCAA_URL_PREFIXES:
        if url.startswith(prefix) and "/schools/" in url:
            return url[len(prefix):].rstrip("/")
    return url


def format_color(color: Optional[str]) -> Optional[str]:
    """Normalizes to '#RRGGBB'; black and missing values count as unset."""
    if not color:
        return None
    value = color.strip().lstrip("#").upper()
    if value in {"", "NULL", "000000"}:
        return None
    if not re.fullmatch(r"[0-9A-F]{6}", value):
        return None
    return f"#{value}"


def parse_ncaa_date(text: Optional[str]) -> Optional[date]:
    """Parses 'M/D/YYYY' (optionally followed by a time or note) or ISO dates."""
    if not text or not text.strip():
        return None
    head = text.strip().split()[0]
    if "/" in head:
        parts = head.split("/")
        if len(parts) != 3:
            return None
        try:
            month, day, year = (int(p) for p in parts)
            return date(year, month, day)
        except ValueError:
            return None
    try:
        return datetime.fromisoformat(text.strip().replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(head[:10])
    except ValueError:
        return None


def parse_opponent(text: Optional[str]) -> ParsedOpponent:
    """Splits a scraped opponent cell into name and orientation.

    '@ Delaware' means the scraped team traveled; 'Delaware @ Annapolis, MD'
    marks a neutral site.
    """
    raw = (text or "").strip()
    scraped_team_home = True
    neutral_site = None
    if raw.startswith("@"):
        raw = raw[1:].strip()
        scraped_team_home = False
    elif " @ " in raw:
        raw, neutral_site = (part.strip() for part in raw.split(" @ ", 1))
    raw = _RANK_PREFIX.sub("", raw).rstrip("*").strip()
    return ParsedOpponent(name=raw, scraped_team_home=scraped_team_home, neutral_site=neutral_site)


def parse_score(text: Optional[str]) -> Optional[ParsedScore]:
    """'W 35 - 14' -> ParsedScore('W', 35, 14). Scores are from the scraped team's view."""
    if not text:
        return None
    match = _SCORE.match(text)
    if not match:
        return None
    result = match.group(1).upper() if match.group(1) else None
    return ParsedScore(result, int(match.group(2)), int(match.group(3)))


def split_title(title: Optional[str]) -> Optional[Tuple[str, str]]:
    """'Towson Tigers at Maryland Terrapins' -> (away, home)."""
    if not title:
        return None
    parts = _TITLE_SPLIT.split(title)
    if len(parts) != 2:
        return None
    away, home = parts[0].strip(), parts[1].strip()
    if not away or not home:
        return None
    return away, home
