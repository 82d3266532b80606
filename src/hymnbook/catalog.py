"""Static catalog of the hymn sections the client ships with.

French and Kreyol sections with the same parent are separate collections,
not translations of each other, so each has its own id.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class Language(str, Enum):
    FRENCH = "french"
    KREYOL = "kreyol"


@dataclass(frozen=True)
class HymnSection:
    id: int
    name: str
    language: Language
    hymn_count: int


SECTIONS: List[HymnSection] = [
    HymnSection(1, "Chants d'Espérance", Language.FRENCH, 360),
    HymnSection(2, "Chants d'Espérance", Language.KREYOL, 360),
    HymnSection(3, "Sur les Ailes de la Foi", Language.FRENCH, 150),
    HymnSection(4, "Mélodies Joyeuses", Language.FRENCH, 100),
    HymnSection(5, "Melodi Jwayal", Language.KREYOL, 100),
    HymnSection(6, "La Voix du Réveil", Language.FRENCH, 80),
    HymnSection(7, "Réveillons-Nous", Language.FRENCH, 60),
    HymnSection(8, "Échos des Élus", Language.FRENCH, 50),
    HymnSection(9, "Haïti Chante", Language.FRENCH, 40),
    HymnSection(10, "Ayiti Chante", Language.KREYOL, 40),
    HymnSection(11, "Gloire à l'Agneau", Language.FRENCH, 45),
    HymnSection(12, "Alléluia", Language.FRENCH, 35),
    HymnSection(13, "Alelouya", Language.KREYOL, 35),
]

_SECTIONS_BY_ID: Dict[int, HymnSection] = {section.id: section for section in SECTIONS}


def get_section(section_id: int) -> Optional[HymnSection]:
    """Return the catalog entry for ``section_id`` or ``None`` if unknown."""

    return _SECTIONS_BY_ID.get(section_id)


def parse_language(value) -> Optional[Language]:
    if isinstance(value, Language):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Language(value.strip().lower())
    except ValueError:
        return None
