"""
Drying vocabulary module.

Closed enumerations shared by the psychrometrics engine, the setup resolver
and the record store: material codes, surface types, equipment types, the
chamber color palette, atmospheric reading types and the setup wizard steps.
"""

from enum import Enum, IntEnum
from typing import Dict, List, Optional


class MaterialCode(Enum):
    """Material a reference point is taken on. Value is the stored code."""

    # Wall
    DRYWALL = ('D', 'Drywall', 'Wall')
    INSULATION = ('I', 'Insulation', 'Wall')
    PANELING = ('PNL', 'Paneling', 'Wall')
    # Floor
    CARPET = ('C', 'Carpet', 'Floor')
    TILE = ('TL', 'Tile', 'Floor')
    SUBFLOOR = ('SF', 'Subfloor', 'Floor')
    WOOD_FLOOR = ('WF', 'Wood Floor', 'Floor')
    # Structure
    FRAMING = ('FRM', 'Framing', 'Structure')
    CEILING_JOIST = ('CJST', 'Ceiling Joist', 'Structure')
    FLOOR_JOIST = ('FJST', 'Floor Joist', 'Structure')
    # Sheeting
    OSB = ('OSB', 'OSB', 'Sheeting')
    PARTICLE_BOARD = ('PB', 'Particle Board', 'Sheeting')
    PARTICLE_BOARD_UNDERLAYMENT = ('PBU', 'Particle Board Underlayment', 'Sheeting')
    PLYWOOD = ('PLY', 'Plywood', 'Sheeting')
    # Trim & Millwork
    MDF_BASEBOARD = ('MDFB', 'MDF (Baseboard)', 'Trim & Millwork')
    MDF_CASING = ('MDFC', 'MDF (Casing)', 'Trim & Millwork')
    WOOD_BASEBOARD = ('WDB', 'Wood (Baseboard)', 'Trim & Millwork')
    WOOD_CASING = ('WDC', 'Wood (Casing)', 'Trim & Millwork')
    CABINETRY = ('CAB', 'Cabinetry', 'Trim & Millwork')
    # Concrete
    CONCRETE_WALL = ('CW', 'Concrete Wall', 'Concrete')
    CONCRETE_FLOOR = ('CF', 'Concrete Floor', 'Concrete')
    # Other
    TACK_STRIP = ('TK', 'Tack Strip', 'Other')

    def __init__(self, code: str, label: str, category: str):
        self.code = code
        self.label = label
        self.category = category

    @classmethod
    def from_code(cls, code: Optional[str]) -> Optional['MaterialCode']:
        """Look up a material by its stored code. Returns None for unknown codes."""
        if not code:
            return None
        normalized = str(code).strip().upper()
        for material in cls:
            if material.code == normalized:
                return material
        return None

    @classmethod
    def codes(cls) -> List[str]:
        return [m.code for m in cls]


class SurfaceType(Enum):
    """Where in a room a reference point sits."""
    WALL = ('wall', 'Wall')
    CEILING = ('ceiling', 'Ceiling')
    FLOOR = ('floor', 'Floor')
    CABINETRY = ('cabinetry', 'Cabinetry')

    def __init__(self, key: str, label: str):
        self.key = key
        self.label = label


# Materials offered per surface type
SURFACE_MATERIALS: Dict[SurfaceType, List[str]] = {
    SurfaceType.WALL: ['D', 'I', 'PNL', 'FRM', 'OSB', 'PB', 'PLY', 'CW', 'MDFB', 'MDFC', 'WDB', 'WDC'],
    SurfaceType.CEILING: ['D', 'I', 'CJST', 'FRM', 'OSB', 'PLY'],
    SurfaceType.FLOOR: ['C', 'TL', 'SF', 'WF', 'CF', 'TK', 'FJST', 'OSB', 'PB', 'PBU', 'PLY'],
    SurfaceType.CABINETRY: ['CAB', 'PNL', 'TK'],
}


class EquipmentType(Enum):
    """Drying equipment placed in a room."""
    DEHUMIDIFIER = ('dehumidifier', 'Dehumidifiers', 'DH', 'equipment')
    AIR_MOVER = ('air_mover', 'Air Movers', 'AM', 'equipment')
    NEGATIVE_AIR = ('negative_air', 'Negative Air Machines', 'NAM', 'equipment')
    INJECTIDRY = ('injectidry', 'Injectidry System', 'INJ', 'specialty')
    MULTI_PORT = ('multi_port', 'Multi-port Attachments', 'MPA', 'specialty')
    HEATED_AIR_MOVER = ('heated_air_mover', 'Heated Air Movers', 'HAM', 'specialty')

    def __init__(self, type_key: str, label: str, short_label: str, category: str):
        self.type_key = type_key
        self.label = label
        self.short_label = short_label
        self.category = category

    @classmethod
    def from_key(cls, key: Optional[str]) -> Optional['EquipmentType']:
        """Accepts either the type key ('air_mover') or the short label ('AM')."""
        if not key:
            return None
        for equipment in cls:
            if key == equipment.type_key or key == equipment.short_label:
                return equipment
        return None


class ChamberColor(Enum):
    """Fixed 8-color chamber palette."""
    PURPLE = '#bf5af2'
    CYAN = '#00aaff'
    TEAL = '#00f5d4'
    GREEN = '#05ffa1'
    PINK = '#ff2a6d'
    ORANGE = '#ff9f1c'
    YELLOW = '#ffe66d'
    BLUE = '#4361ee'

    @property
    def display_name(self) -> str:
        return self.name.title()

    @classmethod
    def hexes(cls) -> List[str]:
        return [c.value for c in cls]


class ReadingType(Enum):
    """Kind of atmospheric reading taken during a visit."""
    UNAFFECTED = 'unaffected'
    OUTSIDE = 'outside'
    CHAMBER_INTAKE = 'chamber_intake'
    CHAMBER_DEHU_EXHAUST = 'chamber_dehu_exhaust'

    @property
    def needs_chamber(self) -> bool:
        return self in (ReadingType.CHAMBER_INTAKE, ReadingType.CHAMBER_DEHU_EXHAUST)


class SetupStep(IntEnum):
    """Steps of the initial drying setup wizard, in order."""
    ROOMS_REVIEW = 0
    CREATE_CHAMBERS = 1
    ASSIGN_ROOMS = 2
    DEHU_COUNTS = 3
    REFERENCE_POINTS = 4
    BASELINES = 5
    EQUIPMENT = 6
    ATMOSPHERIC_READINGS = 7
    MOISTURE_READINGS = 8

    @property
    def title(self) -> str:
        return STEP_TITLES[self]


STEP_TITLES: Dict[SetupStep, str] = {
    SetupStep.ROOMS_REVIEW: 'Rooms Review',
    SetupStep.CREATE_CHAMBERS: 'Create Chambers',
    SetupStep.ASSIGN_ROOMS: 'Assign Rooms to Chambers',
    SetupStep.DEHU_COUNTS: 'Dehumidifier Counts',
    SetupStep.REFERENCE_POINTS: 'Reference Points',
    SetupStep.BASELINES: 'Baselines',
    SetupStep.EQUIPMENT: 'Equipment per Room',
    SetupStep.ATMOSPHERIC_READINGS: 'Atmospheric Readings',
    SetupStep.MOISTURE_READINGS: 'Moisture Readings',
}


def vocabulary_payload() -> Dict[str, list]:
    """JSON-serialisable dump of every table, for populating select boxes."""
    return {
        'material_codes': [
            {'code': m.code, 'label': m.label, 'category': m.category}
            for m in MaterialCode
        ],
        'surface_types': [
            {'key': s.key, 'label': s.label, 'materials': SURFACE_MATERIALS[s]}
            for s in SurfaceType
        ],
        'equipment_types': [
            {'type': e.type_key, 'label': e.label, 'short_label': e.short_label, 'category': e.category}
            for e in EquipmentType
        ],
        'chamber_colors': [
            {'name': c.display_name, 'hex': c.value}
            for c in ChamberColor
        ],
        'reading_types': [r.value for r in ReadingType],
        'setup_steps': [
            {'step': int(step), 'title': step.title}
            for step in SetupStep
        ],
    }
