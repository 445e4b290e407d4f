"""
Tests for the drying vocabulary enumerations.
"""
from drylog.drying.vocabulary import (
    ChamberColor,
    EquipmentType,
    MaterialCode,
    ReadingType,
    SetupStep,
    SurfaceType,
    SURFACE_MATERIALS,
    vocabulary_payload,
)


class TestMaterialCode:

    def test_has_twenty_two_unique_codes(self):
        codes = MaterialCode.codes()
        assert len(codes) == 22
        assert len(set(codes)) == 22

    def test_from_code(self):
        assert MaterialCode.from_code('D') is MaterialCode.DRYWALL
        assert MaterialCode.from_code(' cjst ') is MaterialCode.CEILING_JOIST
        assert MaterialCode.from_code('NOPE') is None
        assert MaterialCode.from_code(None) is None

    def test_every_surface_material_is_a_known_code(self):
        known = set(MaterialCode.codes())
        for surface, codes in SURFACE_MATERIALS.items():
            assert set(codes) <= known, f"{surface} lists an unknown material"


class TestSurfaceType:

    def test_every_surface_offers_materials(self):
        assert set(SURFACE_MATERIALS) == set(SurfaceType)
        assert all(SURFACE_MATERIALS[s] for s in SurfaceType)

    def test_payload_lists_surfaces_with_materials(self):
        surfaces = vocabulary_payload()['surface_types']
        assert [s['label'] for s in surfaces] == ['Wall', 'Ceiling', 'Floor', 'Cabinetry']
        assert surfaces[1]['materials'] == SURFACE_MATERIALS[SurfaceType.CEILING]


class TestEquipmentType:

    def test_lookup_by_key_or_short_label(self):
        assert EquipmentType.from_key('negative_air') is EquipmentType.NEGATIVE_AIR
        assert EquipmentType.from_key('HAM') is EquipmentType.HEATED_AIR_MOVER
        assert EquipmentType.from_key('fan') is None

    def test_categories(self):
        assert {e.category for e in EquipmentType} == {'equipment', 'specialty'}


class TestChamberColor:

    def test_palette_has_eight_distinct_colors(self):
        hexes = ChamberColor.hexes()
        assert len(hexes) == 8
        assert len(set(hexes)) == 8
        assert hexes[0] == '#bf5af2'

    def test_display_name(self):
        assert ChamberColor.CYAN.display_name == 'Cyan'


class TestReadingType:

    def test_chamber_readings_need_a_chamber(self):
        assert ReadingType.CHAMBER_INTAKE.needs_chamber is True
        assert ReadingType.CHAMBER_DEHU_EXHAUST.needs_chamber is True
        assert ReadingType.OUTSIDE.needs_chamber is False
        assert ReadingType.UNAFFECTED.needs_chamber is False


class TestSetupStep:

    def test_nine_ordered_steps(self):
        assert [int(s) for s in SetupStep] == list(range(9))

    def test_titles(self):
        assert SetupStep.ASSIGN_ROOMS.title == 'Assign Rooms to Chambers'
        assert SetupStep.EQUIPMENT.title == 'Equipment per Room'


class TestVocabularyPayload:

    def test_contains_every_table(self):
        payload = vocabulary_payload()
        assert set(payload) == {
            'material_codes', 'surface_types', 'equipment_types',
            'chamber_colors', 'reading_types', 'setup_steps',
        }
        assert len(payload['material_codes']) == 22
        assert payload['setup_steps'][6] == {'step': 6, 'title': 'Equipment per Room'}
        assert 'chamber_dehu_exhaust' in payload['reading_types']
