"""Sierra Leone districts and their default delivery cities."""

DISTRICT_CITIES: dict[str, list[str]] = {
    "Western Area Urban": ["Freetown"],
    "Western Area Rural": ["Waterloo", "Lumley", "Hastings"],
    "Northern Province": [],
    "Bombali": ["Makeni", "Magburaka"],
    "Kambia": ["Kambia", "Rokupr"],
    "Koinadugu": ["Kabala", "Yifin"],
    "Port Loko": ["Port Loko", "Lungi"],
    "Tonkolili": ["Magburaka", "Mile 91"],
    "Southern Province": [],
    "Bo": ["Bo", "Kakua"],
    "Bonthe": ["Bonthe", "Mattru Jong"],
    "Moyamba": ["Moyamba", "Rotifunk"],
    "Pujehun": ["Pujehun", "Potoru"],
    "Eastern Province": [],
    "Kailahun": ["Kailahun", "Koidu"],
    "Kenema": ["Kenema", "Blama"],
    "Kono": ["Koidu", "Yengema"],
}


def is_known_district(district: str) -> bool:
    return district in DISTRICT_CITIES


def default_city_for(district: str) -> str:
    """First listed city of a district, or '' for provinces without one."""
    cities = DISTRICT_CITIES.get(district, [])
    return cities[0] if cities else ""
