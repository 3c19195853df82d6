import re

UUID_CHARS = re.compile(r"^[0-9a-fA-F-]+$")


def normalize_text(s: str) -> str:
    return " ".join(s.strip().lower().split())


def normalize_name(name: str) -> str:
    # Oracles sometimes wrap names in quotes or brackets
    return normalize_text(name.strip("\"'`[]()<> "))


def looks_like_id_fragment(s: str, min_length: int = 8) -> bool:
    """True for hex/dash strings long enough to be a truncated UUID."""
    s = s.strip()
    return len(s) >= min_length and bool(UUID_CHARS.match(s))


def names_overlap(raw: str, name: str) -> bool:
    """Case-insensitive containment in either direction."""
    a = normalize_name(raw)
    b = normalize_name(name)
    if not a or not b:
        return False
    return a in b or b in a
