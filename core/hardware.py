"""
core/hardware.py -- Hardware model catalog: raw model identifiers to friendly
names and release years.

The tables are static data, not logic. ModelCatalog wraps them so a caller can
pass an extended or replacement catalog into the transformers without touching
pipeline code:

    catalog = ModelCatalog(apple={**APPLE_MODELS, "Mac17,1": ModelInfo("...", 2026)})

Release years feed age estimation when a source has no purchase or warranty
date. A year of 0 means "recognised family, unknown year".
"""

import re
from datetime import datetime, timezone
from typing import NamedTuple, Optional


class ModelInfo(NamedTuple):
    name: str
    year: int


# ---------------------------------------------------------------------------
# Apple -- exact model identifier
# ---------------------------------------------------------------------------

APPLE_MODELS: dict[str, ModelInfo] = {
    # MacBook Air
    "Mac16,13": ModelInfo('MacBook Air 15" (M4, 2025)', 2025),
    "Mac16,12": ModelInfo('MacBook Air 13" (M4, 2025)', 2025),
    "Mac15,13": ModelInfo('MacBook Air 15" (M3, 2024)', 2024),
    "Mac15,12": ModelInfo('MacBook Air 13" (M3, 2024)', 2024),
    "Mac14,15": ModelInfo('MacBook Air 15" (M2, 2023)', 2023),
    "Mac14,2": ModelInfo('MacBook Air 13" (M2, 2022)', 2022),
    "MacBookAir10,1": ModelInfo('MacBook Air 13" (M1, 2020)', 2020),
    "MacBookAir9,1": ModelInfo('MacBook Air 13" (Intel, 2020)', 2020),
    # MacBook Pro -- Apple Silicon
    "Mac16,1": ModelInfo('MacBook Pro 14" (M4, 2024)', 2024),
    "Mac16,6": ModelInfo('MacBook Pro 14" (M4 Pro, 2024)', 2024),
    "Mac16,8": ModelInfo('MacBook Pro 14" (M4 Max, 2024)', 2024),
    "Mac16,5": ModelInfo('MacBook Pro 16" (M4 Pro, 2024)', 2024),
    "Mac16,7": ModelInfo('MacBook Pro 16" (M4 Max, 2024)', 2024),
    "Mac15,3": ModelInfo('MacBook Pro 14" (M3, 2023)', 2023),
    "Mac15,6": ModelInfo('MacBook Pro 14" (M3 Pro, 2023)', 2023),
    "Mac15,8": ModelInfo('MacBook Pro 14" (M3 Max, 2023)', 2023),
    "Mac15,10": ModelInfo('MacBook Pro 14" (M3 Max, 2023)', 2023),
    "Mac15,7": ModelInfo('MacBook Pro 16" (M3 Pro, 2023)', 2023),
    "Mac15,9": ModelInfo('MacBook Pro 16" (M3 Max, 2023)', 2023),
    "Mac15,11": ModelInfo('MacBook Pro 16" (M3 Max, 2023)', 2023),
    "Mac14,5": ModelInfo('MacBook Pro 14" (M2 Pro, 2023)', 2023),
    "Mac14,9": ModelInfo('MacBook Pro 14" (M2 Max, 2023)', 2023),
    "Mac14,6": ModelInfo('MacBook Pro 16" (M2 Pro, 2023)', 2023),
    "Mac14,10": ModelInfo('MacBook Pro 16" (M2 Max, 2023)', 2023),
    "Mac14,7": ModelInfo('MacBook Pro 13" (M2, 2022)', 2022),
    "MacBookPro18,1": ModelInfo('MacBook Pro 16" (M1 Pro, 2021)', 2021),
    "MacBookPro18,2": ModelInfo('MacBook Pro 16" (M1 Max, 2021)', 2021),
    "MacBookPro18,3": ModelInfo('MacBook Pro 14" (M1 Pro, 2021)', 2021),
    "MacBookPro18,4": ModelInfo('MacBook Pro 14" (M1 Max, 2021)', 2021),
    "MacBookPro17,1": ModelInfo('MacBook Pro 13" (M1, 2020)', 2020),
    # MacBook Pro -- Intel
    "MacBookPro16,1": ModelInfo('MacBook Pro 16" (Intel, 2019)', 2019),
    "MacBookPro16,2": ModelInfo('MacBook Pro 13" (Intel, 2020)', 2020),
    "MacBookPro16,3": ModelInfo('MacBook Pro 13" (Intel, 2020)', 2020),
    "MacBookPro16,4": ModelInfo('MacBook Pro 16" (Intel, 2020)', 2020),
    "MacBookPro15,1": ModelInfo('MacBook Pro 15" (Intel, 2019)', 2019),
    "MacBookPro15,2": ModelInfo('MacBook Pro 13" (Intel, 2019)', 2019),
    "MacBookPro15,3": ModelInfo('MacBook Pro 15" (Intel, 2019)', 2019),
    "MacBookPro15,4": ModelInfo('MacBook Pro 13" (Intel, 2019)', 2019),
    "MacBookPro14,1": ModelInfo('MacBook Pro 13" (Intel, 2017)', 2017),
    "MacBookPro14,2": ModelInfo('MacBook Pro 13" (Intel, 2017)', 2017),
    "MacBookPro14,3": ModelInfo('MacBook Pro 15" (Intel, 2017)', 2017),
    # iMac
    "Mac16,2": ModelInfo('iMac 24" (M4, 2024)', 2024),
    "Mac16,3": ModelInfo('iMac 24" (M4, 2024)', 2024),
    "Mac15,4": ModelInfo('iMac 24" (M3, 2023)', 2023),
    "Mac15,5": ModelInfo('iMac 24" (M3, 2023)', 2023),
    "iMac21,1": ModelInfo('iMac 24" (M1, 2021)', 2021),
    "iMac21,2": ModelInfo('iMac 24" (M1, 2021)', 2021),
    "iMac20,1": ModelInfo('iMac 27" (Intel, 2020)', 2020),
    "iMac20,2": ModelInfo('iMac 27" (Intel, 2020)', 2020),
    "iMac19,1": ModelInfo('iMac 27" (Intel, 2019)', 2019),
    "iMac19,2": ModelInfo('iMac 21.5" (Intel, 2019)', 2019),
    "iMac18,1": ModelInfo('iMac 21.5" (Intel, 2017)', 2017),
    "iMac18,2": ModelInfo('iMac 21.5" 4K (Intel, 2017)', 2017),
    "iMac18,3": ModelInfo('iMac 27" 5K (Intel, 2017)', 2017),
    "iMac15,1": ModelInfo('iMac 27" 5K (Intel, 2014)', 2014),
    "iMacPro1,1": ModelInfo('iMac Pro 27" (Intel Xeon, 2017)', 2017),
    # Mac mini
    "Mac16,10": ModelInfo("Mac mini (M4, 2024)", 2024),
    "Mac16,11": ModelInfo("Mac mini (M4 Pro, 2024)", 2024),
    "Mac14,3": ModelInfo("Mac mini (M2, 2023)", 2023),
    "Mac14,12": ModelInfo("Mac mini (M2 Pro, 2023)", 2023),
    "Macmini9,1": ModelInfo("Mac mini (M1, 2020)", 2020),
    "Macmini8,1": ModelInfo("Mac mini (Intel, 2018)", 2018),
    "Macmini7,1": ModelInfo("Mac mini (Intel, 2014)", 2014),
    "Macmini6,1": ModelInfo("Mac mini (Intel, 2012)", 2012),
    "Macmini6,2": ModelInfo("Mac mini (Intel, 2012)", 2012),
    # Mac Studio / Mac Pro
    "Mac16,9": ModelInfo("Mac Studio (M3 Ultra, 2025)", 2025),
    "Mac15,14": ModelInfo("Mac Studio (M3 Ultra, 2025)", 2025),
    "Mac14,13": ModelInfo("Mac Studio (M2 Max, 2023)", 2023),
    "Mac14,14": ModelInfo("Mac Studio (M2 Ultra, 2023)", 2023),
    "Mac13,1": ModelInfo("Mac Studio (M1 Max, 2022)", 2022),
    "Mac13,2": ModelInfo("Mac Studio (M1 Ultra, 2022)", 2022),
    "Mac14,8": ModelInfo("Mac Pro (M2 Ultra, 2023)", 2023),
}

# ---------------------------------------------------------------------------
# Lenovo -- machine type (first four characters of the model number)
# ---------------------------------------------------------------------------

LENOVO_MACHINE_TYPES: dict[str, ModelInfo] = {
    "21HM": ModelInfo("ThinkPad X1 Carbon Gen 11", 2023),
    "21HN": ModelInfo("ThinkPad X1 Carbon Gen 11", 2023),
    "21KC": ModelInfo("ThinkPad X1 Carbon Gen 12", 2024),
    "21KD": ModelInfo("ThinkPad X1 Carbon Gen 12", 2024),
    "21CB": ModelInfo("ThinkPad X1 Carbon Gen 10", 2022),
    "21CC": ModelInfo("ThinkPad X1 Carbon Gen 10", 2022),
    "20XW": ModelInfo("ThinkPad X1 Carbon Gen 9", 2021),
    "20XX": ModelInfo("ThinkPad X1 Carbon Gen 9", 2021),
    "20KH": ModelInfo("ThinkPad X1 Carbon Gen 6", 2018),
    "20KG": ModelInfo("ThinkPad X1 Carbon Gen 6", 2018),
    "20FB": ModelInfo("ThinkPad X1 Carbon Gen 4", 2016),
    "20FC": ModelInfo("ThinkPad X1 Carbon Gen 4", 2016),
    "21JR": ModelInfo("ThinkPad X1 Yoga Gen 8", 2023),
    "21JS": ModelInfo("ThinkPad X1 Yoga Gen 8", 2023),
    "21CD": ModelInfo("ThinkPad X1 Yoga Gen 7", 2022),
    "21CE": ModelInfo("ThinkPad X1 Yoga Gen 7", 2022),
    "21HK": ModelInfo("ThinkPad P16s Gen 2", 2023),
    "21HL": ModelInfo("ThinkPad P16s Gen 2", 2023),
    "21KS": ModelInfo("ThinkPad P16s Gen 3", 2024),
    "21KT": ModelInfo("ThinkPad P16s Gen 3", 2024),
    "21H3": ModelInfo("ThinkPad P1 Gen 6", 2023),
    "21H4": ModelInfo("ThinkPad P1 Gen 6", 2023),
    "21NS": ModelInfo("ThinkPad P1 Gen 7", 2024),
    "21NT": ModelInfo("ThinkPad P1 Gen 7", 2024),
    "21MC": ModelInfo("ThinkPad T14 Gen 5", 2024),
    "21MD": ModelInfo("ThinkPad T14 Gen 5", 2024),
    "21DJ": ModelInfo("ThinkPad T14 Gen 4", 2023),
    "21DK": ModelInfo("ThinkPad T14 Gen 4", 2023),
    "20UN": ModelInfo("ThinkPad T14 Gen 1", 2020),
    "20UD": ModelInfo("ThinkPad T14 Gen 1", 2020),
    "21H1": ModelInfo("ThinkPad L14 Gen 4", 2023),
    "21H2": ModelInfo("ThinkPad L14 Gen 4", 2023),
    "21JN": ModelInfo("ThinkPad E16 Gen 1", 2023),
    "21JM": ModelInfo("ThinkPad E16 Gen 1", 2023),
    "20W6": ModelInfo("ThinkPad X13 Gen 2", 2021),
    "20WK": ModelInfo("ThinkPad X13 Gen 2", 2021),
    "30FM": ModelInfo("ThinkStation P360 Ultra", 2022),
    "30FN": ModelInfo("ThinkStation P360 Ultra", 2022),
    "83A4": ModelInfo("IdeaPad Slim 5", 2023),
    "83A5": ModelInfo("IdeaPad Slim 5", 2023),
}

DELL_MODELS: dict[str, ModelInfo] = {
    "Latitude 5320": ModelInfo("Dell Latitude 5320", 2021),
    "Latitude 5550": ModelInfo("Dell Latitude 5550", 2024),
    "Latitude 7320": ModelInfo("Dell Latitude 7320", 2021),
    "OptiPlex 9020 AIO": ModelInfo("Dell OptiPlex 9020 All-in-One", 2014),
    "OptiPlex 7080": ModelInfo("Dell OptiPlex 7080", 2020),
    "Dell Inc. OptiPlex Micro Plus 7020": ModelInfo("Dell OptiPlex Micro Plus 7020", 2024),
    "Dell Inc. OptiPlex Micro 7010": ModelInfo("Dell OptiPlex Micro 7010", 2023),
    "Inspiron 16 5620": ModelInfo("Dell Inspiron 16 5620", 2022),
}

SURFACE_MODELS: dict[str, ModelInfo] = {
    "Surface Pro": ModelInfo("Microsoft Surface Pro", 2017),
    "Surface Pro 8": ModelInfo("Microsoft Surface Pro 8", 2021),
    "Surface Pro 9": ModelInfo("Microsoft Surface Pro 9", 2022),
}

# Surface Pro generation -> release year, for names not in SURFACE_MODELS.
SURFACE_GENERATIONS: dict[int, int] = {8: 2021, 9: 2022, 10: 2023}

_DELL_MARKERS = ("Latitude", "OptiPlex", "Inspiron", "Dell")
_APPLE_ID_RE = re.compile(r"^(MacBookPro|MacBookAir|MacBook|Macmini|iMac|Mac)\d")
_APPLE_PREFIX_RE = re.compile(r"^(Mac|iMac|MacBook|Macmini)")
_LENOVO_PART_RE = re.compile(r"^2[0-9A-Z]{9}$")
_LENOVO_PREFIX_RE = re.compile(r"^(2[0-9A-Z]|83)")
_SURFACE_GEN_RE = re.compile(r"Pro\s*(\d+)", re.IGNORECASE)
_YEAR_RE = re.compile(r"\b(20[1-2]\d)\b")

# Generic Apple names keyed by identifier prefix, most specific first.
_APPLE_FAMILIES = (
    ("MacBookPro", "MacBook Pro"),
    ("MacBookAir", "MacBook Air"),
    ("iMac", "iMac"),
    ("Macmini", "Mac mini"),
    ("Mac", "Mac"),
)


def _is_unknown(model_id: Optional[str]) -> bool:
    return not model_id or not model_id.strip() or model_id.strip() == "Unknown"


class ModelCatalog:
    """Lookup over the static model tables. Tables may be replaced per instance."""

    def __init__(
        self,
        apple: Optional[dict[str, ModelInfo]] = None,
        lenovo: Optional[dict[str, ModelInfo]] = None,
        dell: Optional[dict[str, ModelInfo]] = None,
        surface: Optional[dict[str, ModelInfo]] = None,
    ) -> None:
        self.apple = APPLE_MODELS if apple is None else apple
        self.lenovo = LENOVO_MACHINE_TYPES if lenovo is None else lenovo
        self.dell = DELL_MODELS if dell is None else dell
        self.surface = SURFACE_MODELS if surface is None else surface

    def lookup(self, model_id: Optional[str]) -> Optional[ModelInfo]:
        if _is_unknown(model_id):
            return None
        model = model_id.strip()

        if model in self.apple:
            return self.apple[model]

        prefix = model[:4].upper()
        if prefix in self.lenovo:
            return self.lenovo[prefix]

        if model in self.dell:
            return self.dell[model]
        if any(marker in model for marker in _DELL_MARKERS):
            return ModelInfo(model.replace("Dell Inc. ", "Dell "), 0)

        if model in self.surface:
            return self.surface[model]
        if "Surface" in model:
            gen = _SURFACE_GEN_RE.search(model)
            year = SURFACE_GENERATIONS.get(int(gen.group(1)), 0) if gen else 0
            return ModelInfo(f"Microsoft {model}", year)

        return None

    def friendly_name(self, model_id: Optional[str]) -> str:
        if _is_unknown(model_id):
            return "Unknown Model"
        info = self.lookup(model_id)
        if info is not None:
            return info.name
        model = model_id.strip()
        if _APPLE_ID_RE.match(model):
            for prefix, family in _APPLE_FAMILIES:
                if model.startswith(prefix):
                    return f"{family} ({model})"
        if _LENOVO_PART_RE.match(model):
            return f"Lenovo ({model})"
        return model

    def release_year(self, model_id: Optional[str]) -> int:
        """Release year from the tables, else a year written in the string, else 0."""
        if _is_unknown(model_id):
            return 0
        info = self.lookup(model_id)
        if info is not None and info.year:
            return info.year
        match = _YEAR_RE.search(model_id)
        return int(match.group(1)) if match else 0

    def manufacturer(self, model_id: Optional[str]) -> str:
        if _is_unknown(model_id):
            return "Unknown"
        model = model_id.strip()
        if _APPLE_PREFIX_RE.match(model):
            return "Apple"
        if _LENOVO_PREFIX_RE.match(model) or model[:4] in self.lenovo:
            return "Lenovo"
        if any(marker in model for marker in _DELL_MARKERS):
            return "Dell"
        if "Surface" in model:
            return "Microsoft"
        return "Unknown"

    def release_date(self, model_id: Optional[str]) -> Optional[datetime]:
        """Mid-year (1 June) of the release year; the tables only know years."""
        year = self.release_year(model_id)
        if not year:
            return None
        return datetime(year, 6, 1, tzinfo=timezone.utc)


DEFAULT_CATALOG = ModelCatalog()
