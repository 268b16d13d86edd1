"""
Mod Codec

Converts between the osu! modifier bitmask and its display string.
"""

# Flag -> acronym, in display order (ascending bit value)
MOD_ACRONYMS: dict[int, str] = {
    1: "NF",
    2: "EZ",
    4: "TD",
    8: "HD",
    16: "HR",
    32: "SD",
    64: "DT",
    128: "RX",
    256: "HT",
    512: "NC",
    1024: "FL",
    2048: "AT",
    4096: "SO",
    8192: "AP",
    16384: "PF",
    536870912: "V2",
}

ACRONYM_FLAGS: dict[str, int] = {acronym: flag for flag, acronym in MOD_ACRONYMS.items()}

NO_MOD = "NM"

EZ, TD, HD, HR, SD, DT, HT, NC, SO, PF = 2, 4, 8, 16, 32, 64, 256, 512, 4096, 16384

# Scores set with any of these are never counted
FORBIDDEN_MODS = EZ | TD | HT | SO

# Passing with these guarantees the max combo was held
AUTO_MAX_COMBO_MODS = SD | PF

# The API reports NC as NC|DT and PF as PF|SD; the implied flag is not displayed
_IMPLIED = {NC: DT, PF: SD}


def is_mod_allowed(mods: int) -> bool:
    """True if the bitmask contains no forbidden mod."""
    return (int(mods) & FORBIDDEN_MODS) == 0


def mod_string(mods: int) -> str:
    """
    Render a bitmask, e.g. 24 -> "HDHR", 576 -> "NC", 0 -> "NM".

    Unknown bits are ignored.
    """
    mods = int(mods)
    if mods == 0:
        return NO_MOD

    hidden = 0
    for flag, implied in _IMPLIED.items():
        if mods & flag:
            hidden |= implied

    return "".join(
        acronym
        for flag, acronym in MOD_ACRONYMS.items()
        if mods & flag and not hidden & flag
    )


def parse_mod_string(text: str) -> int:
    """
    Parse a display string back into a bitmask, e.g. "HDDT" -> 72.

    Implied flags are restored ("NC" -> 576).

    Raises:
        ValueError: On an unknown acronym or odd-length string
    """
    text = text.strip().upper()
    if text in ("", NO_MOD):
        return 0
    if len(text) % 2:
        raise ValueError(f"Malformed mod string: {text!r}")

    mods = 0
    for i in range(0, len(text), 2):
        acronym = text[i : i + 2]
        if acronym not in ACRONYM_FLAGS:
            raise ValueError(f"Unknown mod {acronym!r} in {text!r}")
        flag = ACRONYM_FLAGS[acronym]
        mods |= flag | _IMPLIED.get(flag, 0)
    return mods
