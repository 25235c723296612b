from typing import Optional

# Local crop names accepted on input.
CROP_ALIASES = {
    "пшениця": "wheat",
    "кукурудза": "corn",
    "соняшник": "sunflower",
    "ріпак": "rapeseed",
    "соя": "soybean",
    "картопля": "potato",
    "maize": "corn",
    "soy": "soybean",
}

# Optimal topsoil moisture (%) per crop.
MOISTURE_RANGES = {
    "wheat": {"min": 35, "max": 70, "name": "wheat"},
    "corn": {"min": 40, "max": 80, "name": "corn"},
    "sunflower": {"min": 30, "max": 65, "name": "sunflower"},
    "rapeseed": {"min": 35, "max": 75, "name": "rapeseed"},
    "soybean": {"min": 40, "max": 80, "name": "soybean"},
    "potato": {"min": 45, "max": 85, "name": "potato"},
    "default": {"min": 35, "max": 70, "name": "field crops"},
}

# Yield in t/ha.
BASE_YIELDS = {
    "wheat": {"base": 4.5, "min": 2.0, "max": 7.0},
    "corn": {"base": 6.8, "min": 3.0, "max": 12.0},
    "sunflower": {"base": 2.2, "min": 1.0, "max": 3.5},
    "rapeseed": {"base": 2.8, "min": 1.5, "max": 4.2},
    "soybean": {"base": 2.1, "min": 1.0, "max": 3.2},
    "potato": {"base": 18.5, "min": 10.0, "max": 35.0},
}


def normalize_crop(crop: Optional[str], default: str = "wheat") -> str:
    if not crop:
        return default
    key = crop.strip().lower()
    return CROP_ALIASES.get(key, key)
