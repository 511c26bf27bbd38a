"""Canonical caliber enumeration and alias normalization."""

from enum import Enum
from typing import Optional


class Caliber(str, Enum):
    """Canonical caliber values. Nothing outside this list is ever emitted."""

    NINE_MM = "9mm"
    ACP_45 = ".45 ACP"
    SW_40 = ".40 S&W"
    ACP_380 = ".380 ACP"
    LR_22 = ".22 LR"
    REM_223_556 = ".223/5.56"
    WIN_308_762X51 = ".308/7.62x51"
    SPRG_30_06 = ".30-06"
    CREEDMOOR_65 = "6.5 Creedmoor"
    X39_762 = "7.62x39"
    GAUGE_12 = "12ga"
    GAUGE_20 = "20ga"


CANONICAL_CALIBERS: list[str] = [c.value for c in Caliber]

# Lower-case alias -> canonical value
CALIBER_ALIASES: dict[str, Caliber] = {
    # 9mm
    "9x19mm": Caliber.NINE_MM,
    "9x19": Caliber.NINE_MM,
    "9mm luger": Caliber.NINE_MM,
    "9mm parabellum": Caliber.NINE_MM,
    # .223/5.56
    "5.56 nato": Caliber.REM_223_556,
    "5.56x45mm": Caliber.REM_223_556,
    "5.56x45": Caliber.REM_223_556,
    "5.56mm": Caliber.REM_223_556,
    "5.56": Caliber.REM_223_556,
    ".223 rem": Caliber.REM_223_556,
    ".223 remington": Caliber.REM_223_556,
    "223 rem": Caliber.REM_223_556,
    # .308/7.62x51
    "7.62x51mm": Caliber.WIN_308_762X51,
    "7.62x51": Caliber.WIN_308_762X51,
    "7.62 nato": Caliber.WIN_308_762X51,
    ".308 win": Caliber.WIN_308_762X51,
    ".308 winchester": Caliber.WIN_308_762X51,
    "308 win": Caliber.WIN_308_762X51,
    # .45 ACP
    ".45 auto": Caliber.ACP_45,
    "45 acp": Caliber.ACP_45,
    ".45acp": Caliber.ACP_45,
    # .40 S&W
    "40 s&w": Caliber.SW_40,
    ".40sw": Caliber.SW_40,
    ".40 smith & wesson": Caliber.SW_40,
    # .380 ACP
    "380 acp": Caliber.ACP_380,
    ".380acp": Caliber.ACP_380,
    ".380 auto": Caliber.ACP_380,
    # .22 LR
    "22 lr": Caliber.LR_22,
    ".22lr": Caliber.LR_22,
    "22lr": Caliber.LR_22,
    ".22 long rifle": Caliber.LR_22,
    # 6.5 Creedmoor
    "6.5mm creedmoor": Caliber.CREEDMOOR_65,
    "6.5 cm": Caliber.CREEDMOOR_65,
    # 7.62x39
    "7.62x39mm": Caliber.X39_762,
    # .30-06
    "30-06": Caliber.SPRG_30_06,
    ".30-06 springfield": Caliber.SPRG_30_06,
    ".30-06 sprg": Caliber.SPRG_30_06,
    # Shotgun
    "12 gauge": Caliber.GAUGE_12,
    "12 ga": Caliber.GAUGE_12,
    "12g": Caliber.GAUGE_12,
    "20 gauge": Caliber.GAUGE_20,
    "20 ga": Caliber.GAUGE_20,
    "20g": Caliber.GAUGE_20,
}

CALIBER_LABELS: dict[Caliber, str] = {
    Caliber.REM_223_556: ".223 / 5.56",
    Caliber.WIN_308_762X51: ".308 / 7.62x51",
    Caliber.GAUGE_12: "12 Gauge",
    Caliber.GAUGE_20: "20 Gauge",
}


def normalize_caliber(value: Optional[str]) -> Optional[Caliber]:
    """
    Map a free-text caliber string to its canonical value.

    Matching is case-insensitive against the canonical values first, then
    the alias table.

    Returns:
        Canonical Caliber, or None if the string is unmapped
    """
    if not value:
        return None

    key = value.strip().lower()
    if not key:
        return None

    for caliber in Caliber:
        if caliber.value.lower() == key:
            return caliber

    return CALIBER_ALIASES.get(key)


def is_valid_caliber(value: Optional[str]) -> bool:
    """Check whether a string normalizes to a canonical caliber."""
    return normalize_caliber(value) is not None


def caliber_label(caliber: Caliber) -> str:
    """Human-readable label for a canonical caliber."""
    return CALIBER_LABELS.get(caliber, caliber.value)


def caliber_aliases(caliber: Caliber) -> list[str]:
    """All lower-case spellings that normalize to the given caliber.

    Used to match free-text caliber columns in the observation store.
    """
    spellings = {caliber.value.lower()}
    spellings.update(alias for alias, target in CALIBER_ALIASES.items() if target is caliber)
    return sorted(spellings)
