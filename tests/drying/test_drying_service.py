"""
Tests for the drying log service layer.
These run against an in-memory SQLite database so the queries, numbering and
replace-on-save behaviour are exercised for real.
"""
import pytest
from drylog import create_app
from drylog.models import db, DryingLogStatus, DryingRoom
from drylog.drying.service import (
    DryingLogService,
    DryingLogExistsError,
    DryingLogLockedError,
    DryingLogNotFoundError,
    RecordNotFoundError,
    SetupAlreadyCompleteError,
    ValidationError,
)
from drylog.drying.vocabulary import ChamberColor, SetupStep


@pytest.fixture
def app():
    """Create Flask application for testing."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def log(app):
    """A drying log with two unassigned rooms."""
    log = DryingLogService.create_log("JOB-100", "Kitchen, Living Room")
    db.session.commit()
    return log


@pytest.fixture
def ready_log(log):
    """A log whose setup is complete apart from readings."""
    chamber = DryingLogService.create_chamber(log, "Main")
    for room in DryingLogService.list_rooms(log):
        DryingLogService.update_room(log, room.id, {'chamber_id': chamber.id})
    kitchen = DryingLogService.list_rooms(log)[0]
    DryingLogService.add_ref_point(log, kitchen.id, 'D', 'North wall')
    DryingLogService.upsert_baseline(log, 'D', 12)
    db.session.commit()
    return log


# ==============================================================================
# LOG TESTS
# ==============================================================================

class TestDryingLogs:

    def test_create_log_prepopulates_unassigned_rooms(self, log):
        rooms = DryingLogService.list_rooms(log)

        assert [r.name for r in rooms] == ['Kitchen', 'Living Room']
        assert all(r.chamber_id is None for r in rooms)
        assert DryingLogService.list_chambers(log) == []
        assert log.status is DryingLogStatus.ACTIVE
        assert log.next_ref_number == 1

    def test_create_log_twice_is_rejected(self, log):
        with pytest.raises(DryingLogExistsError):
            DryingLogService.create_log("JOB-100")

    def test_require_log_missing(self, app):
        with pytest.raises(DryingLogNotFoundError):
            DryingLogService.require_log("NOPE")

    def test_complete_stamps_and_locks(self, log):
        DryingLogService.update_log(log, {'status': 'complete', 'completed_by': 'tech@example.com'})
        db.session.commit()

        assert log.status is DryingLogStatus.COMPLETE
        assert log.locked is True
        assert log.completed_at is not None
        assert log.completed_by == 'tech@example.com'
        with pytest.raises(DryingLogLockedError):
            DryingLogService.require_log("JOB-100", writable=True)
        # Read access still works
        assert DryingLogService.require_log("JOB-100") is log

    def test_reactivating_unlocks(self, log):
        DryingLogService.update_log(log, {'status': 'complete'})
        DryingLogService.update_log(log, {'status': 'active'})

        assert log.locked is False
        assert log.completed_at is None

    def test_invalid_status(self, log):
        with pytest.raises(ValidationError):
            DryingLogService.update_log(log, {'status': 'done'})

    def test_setup_complete_flag(self, log):
        DryingLogService.update_log(log, {'setup_complete': True})
        assert log.setup_complete is True


# ==============================================================================
# CHAMBER AND ROOM TESTS
# ==============================================================================

class TestChambersAndRooms:

    def test_chamber_colors_are_assigned_in_palette_order(self, log):
        first = DryingLogService.create_chamber(log, "Upstairs")
        second = DryingLogService.create_chamber(log, "Basement", floor_level='basement')

        assert first.color == ChamberColor.PURPLE.value
        assert second.color == ChamberColor.CYAN.value
        assert second.floor_level == 'basement'
        assert first.floor_level == 'main_level'
        assert [c.position for c in DryingLogService.list_chambers(log)] == [0, 1]

    def test_explicit_color_must_be_in_palette(self, log):
        with pytest.raises(ValidationError):
            DryingLogService.create_chamber(log, "Main", color='#000000')

    def test_chamber_name_required(self, log):
        with pytest.raises(ValidationError):
            DryingLogService.create_chamber(log, "   ")

    def test_assign_missing_colors(self, log):
        chamber = DryingLogService.create_chamber(log, "Main")
        chamber.color = ''
        changed = DryingLogService.assign_missing_colors(log)

        assert changed == [chamber]
        assert chamber.color in ChamberColor.hexes()

    def test_delete_chamber_unassigns_rooms(self, log):
        chamber = DryingLogService.create_chamber(log, "Main")
        room = DryingLogService.list_rooms(log)[0]
        DryingLogService.update_room(log, room.id, {'chamber_id': chamber.id})
        db.session.commit()

        DryingLogService.delete_chamber(log, chamber.id)
        db.session.commit()

        assert db.session.get(DryingRoom, room.id).chamber_id is None
        assert DryingLogService.list_chambers(log) == []

    def test_assign_room_to_unknown_chamber(self, log):
        room = DryingLogService.list_rooms(log)[0]
        with pytest.raises(RecordNotFoundError):
            DryingLogService.update_room(log, room.id, {'chamber_id': 'missing'})

    def test_create_room_appends(self, log):
        room = DryingLogService.create_room(log, "Hall")
        assert room.position == 2
        assert room.chamber_id is None

    def test_delete_room_removes_its_ref_points(self, log):
        room = DryingLogService.list_rooms(log)[0]
        DryingLogService.add_ref_point(log, room.id, 'D')
        db.session.commit()

        DryingLogService.delete_room(log, room.id)
        db.session.commit()

        assert DryingLogService.list_ref_points(log) == []
        assert len(DryingLogService.list_rooms(log)) == 1


# ==============================================================================
# REFERENCE POINT AND BASELINE TESTS
# ==============================================================================

class TestRefPointsAndBaselines:

    def test_ref_numbers_increase_and_are_never_reused(self, log):
        room = DryingLogService.list_rooms(log)[0]
        first = DryingLogService.add_ref_point(log, room.id, 'D')
        second = DryingLogService.add_ref_point(log, room.id, 'c')
        numbers = [first.ref_number, second.ref_number]
        assert second.material_code == 'C'
        db.session.commit()

        DryingLogService.delete_ref_point(log, second.id)
        third = DryingLogService.add_ref_point(log, room.id, 'TL')
        numbers.append(third.ref_number)
        db.session.commit()

        assert numbers == [1, 2, 3]
        assert log.next_ref_number == 4

    def test_material_code_is_validated(self, log):
        room = DryingLogService.list_rooms(log)[0]
        with pytest.raises(ValidationError):
            DryingLogService.add_ref_point(log, room.id, 'XYZ')

    def test_upsert_baseline_keeps_one_row_per_code(self, log):
        DryingLogService.upsert_baseline(log, 'D', 10)
        DryingLogService.upsert_baseline(log, 'd', '12.5')
        db.session.commit()

        baselines = DryingLogService.list_baselines(log)
        assert len(baselines) == 1
        assert baselines[0].baseline_value == 12.5

    def test_baseline_range(self, log):
        with pytest.raises(ValidationError):
            DryingLogService.upsert_baseline(log, 'D', 101)

    def test_ensure_default_baselines(self, log):
        room = DryingLogService.list_rooms(log)[0]
        DryingLogService.add_ref_point(log, room.id, 'D')
        DryingLogService.add_ref_point(log, room.id, 'C')
        DryingLogService.upsert_baseline(log, 'TL', 5)

        created = DryingLogService.ensure_default_baselines(log)
        db.session.commit()

        assert {b.material_code: b.baseline_value for b in created} == {'D': 11.0, 'C': 8.0}
        assert DryingLogService.ensure_default_baselines(log) == []


# ==============================================================================
# SETUP RESOLUTION TESTS
# ==============================================================================

class TestResolveSetupStep:

    def test_walkthrough(self, app):
        log = DryingLogService.create_log("JOB-200")
        assert DryingLogService.resolve_setup_step(log)['step'] == SetupStep.ROOMS_REVIEW

        room = DryingLogService.create_room(log, "Kitchen")
        assert DryingLogService.resolve_setup_step(log)['step'] == SetupStep.CREATE_CHAMBERS

        chamber = DryingLogService.create_chamber(log, "Main")
        assert DryingLogService.resolve_setup_step(log)['step'] == SetupStep.ASSIGN_ROOMS

        DryingLogService.update_room(log, room.id, {'chamber_id': chamber.id})
        db.session.flush()
        assert DryingLogService.resolve_setup_step(log)['step'] == SetupStep.REFERENCE_POINTS

        DryingLogService.add_ref_point(log, room.id, 'D')
        DryingLogService.add_ref_point(log, room.id, 'C')
        DryingLogService.upsert_baseline(log, 'D', 11)
        result = DryingLogService.resolve_setup_step(log)
        assert result == {'step': 5, 'title': 'Baselines', 'missing_baselines': ['C']}

        DryingLogService.upsert_baseline(log, 'C', 8)
        assert DryingLogService.resolve_setup_step(log)['step'] == SetupStep.EQUIPMENT

    def test_closed_once_a_visit_exists(self, ready_log):
        DryingLogService.create_visit(ready_log)
        with pytest.raises(SetupAlreadyCompleteError):
            DryingLogService.resolve_setup_step(ready_log)


# ==============================================================================
# VISIT TESTS
# ==============================================================================

class TestVisits:

    def test_visit_numbers_increase(self, ready_log):
        first = DryingLogService.create_visit(ready_log, "2024-03-01T10:00:00Z")
        second = DryingLogService.create_visit(ready_log)

        assert (first.visit_number, second.visit_number) == (1, 2)
        assert first.visited_at.isoformat() == "2024-03-01T10:00:00"

    def test_bad_visit_date(self, ready_log):
        with pytest.raises(ValidationError):
            DryingLogService.create_visit(ready_log, "yesterday")

    def test_save_visit_data_derives_gpp_and_dry_standard(self, ready_log):
        visit = DryingLogService.create_visit(ready_log)
        chamber = DryingLogService.list_chambers(ready_log)[0]
        room = DryingLogService.list_rooms(ready_log)[0]
        rp = DryingLogService.list_ref_points(ready_log)[0]

        result = DryingLogService.save_visit_data(
            ready_log,
            visit.id,
            atmospheric=[
                {'reading_type': 'outside', 'temp_f': 70, 'rh_percent': 50},
                {'reading_type': 'chamber_dehu_exhaust', 'chamber_id': chamber.id, 'dehu_number': 2,
                 'temp_f': 90, 'rh_percent': 20},
                {'reading_type': 'unaffected', 'temp_f': '', 'rh_percent': ''},
            ],
            moisture=[{'ref_point_id': rp.id, 'reading_value': 16}],
            equipment=[{'room_id': room.id, 'equipment_type': 'AM', 'quantity': 3}],
        )
        db.session.commit()

        gpps = [r['gpp'] for r in result['atmospheric']]
        assert 54.5 in gpps
        assert None in gpps
        assert result['moisture'][0]['meets_dry_standard'] is True
        assert result['equipment'][0]['equipment_type'] == 'air_mover'
        assert DryingLogService.dehu_counts(ready_log) == {chamber.id: 2}

    def test_save_replaces_sections_given(self, ready_log):
        visit = DryingLogService.create_visit(ready_log)
        room = DryingLogService.list_rooms(ready_log)[0]
        DryingLogService.save_visit_data(ready_log, visit.id, atmospheric=[
            {'reading_type': 'outside', 'temp_f': 70, 'rh_percent': 50},
        ], equipment=[{'room_id': room.id, 'equipment_type': 'DH'}])
        db.session.commit()

        result = DryingLogService.save_visit_data(ready_log, visit.id, atmospheric=[])
        db.session.commit()

        assert result['atmospheric'] == []
        # Equipment was not sent, so it is untouched
        assert len(result['equipment']) == 1

    def test_invalid_row_leaves_visit_unchanged(self, ready_log):
        visit = DryingLogService.create_visit(ready_log)
        DryingLogService.save_visit_data(ready_log, visit.id, atmospheric=[
            {'reading_type': 'outside', 'temp_f': 70, 'rh_percent': 50},
        ])
        db.session.commit()

        with pytest.raises(ValidationError):
            DryingLogService.save_visit_data(ready_log, visit.id, atmospheric=[
                {'reading_type': 'outside', 'temp_f': 60, 'rh_percent': 40},
                {'reading_type': 'chamber_intake'},
            ])

        composite = DryingLogService.get_visit_composite(ready_log, visit.id)
        assert [r['temp_f'] for r in composite['atmospheric']] == [70.0]

    def test_duplicate_moisture_rows_rejected(self, ready_log):
        visit = DryingLogService.create_visit(ready_log)
        rp = DryingLogService.list_ref_points(ready_log)[0]
        with pytest.raises(ValidationError):
            DryingLogService.save_visit_data(ready_log, visit.id, moisture=[
                {'ref_point_id': rp.id, 'reading_value': 10},
                {'ref_point_id': rp.id, 'reading_value': 11},
            ])

    def test_unknown_ref_point_rejected(self, ready_log):
        visit = DryingLogService.create_visit(ready_log)
        with pytest.raises(ValidationError):
            DryingLogService.save_visit_data(ready_log, visit.id, moisture=[
                {'ref_point_id': 'missing', 'reading_value': 10},
            ])

    def test_moisture_summary_compares_with_prior_visit(self, ready_log):
        rp = DryingLogService.list_ref_points(ready_log)[0]
        first = DryingLogService.create_visit(ready_log)
        DryingLogService.save_visit_data(ready_log, first.id, moisture=[{'ref_point_id': rp.id, 'reading_value': 18}])
        second = DryingLogService.create_visit(ready_log)
        DryingLogService.save_visit_data(ready_log, second.id, moisture=[{'ref_point_id': rp.id, 'reading_value': 16}])
        db.session.commit()

        first_rows = DryingLogService.moisture_summary(ready_log, first.id)
        second_rows = DryingLogService.moisture_summary(ready_log, second.id)

        assert first_rows[0]['delta'] == "--"
        assert first_rows[0]['meets_dry_standard'] is False
        assert second_rows[0]['delta'] == "↓2.0"
        assert second_rows[0]['meets_dry_standard'] is True

    def test_visit_from_another_log_is_not_found(self, ready_log):
        other = DryingLogService.create_log("JOB-300")
        visit = DryingLogService.create_visit(other)
        with pytest.raises(RecordNotFoundError):
            DryingLogService.get_visit(ready_log, visit.id)

    def test_demolish_and_delete_visit(self, ready_log):
        rp = DryingLogService.list_ref_points(ready_log)[0]
        visit = DryingLogService.create_visit(ready_log)
        DryingLogService.demolish_ref_point(ready_log, rp.id, visit.id)
        db.session.commit()
        assert rp.demolished_visit_id == visit.id

        DryingLogService.delete_visit(ready_log, visit.id)
        db.session.commit()

        assert rp.demolished_at is None
        assert DryingLogService.list_visits(ready_log) == []

    def test_demolish_requires_visit(self, ready_log):
        rp = DryingLogService.list_ref_points(ready_log)[0]
        with pytest.raises(ValidationError):
            DryingLogService.demolish_ref_point(ready_log, rp.id, None)

    def test_notes(self, ready_log):
        visit = DryingLogService.create_visit(ready_log)
        note = DryingLogService.add_note(ready_log, visit.id, "  Opened crawlspace  ")
        db.session.commit()
        assert note.content == "Opened crawlspace"

        DryingLogService.delete_note(ready_log, visit.id, note.id)
        db.session.commit()
        assert DryingLogService.get_visit_composite(ready_log, visit.id)['notes'] == []

        with pytest.raises(ValidationError):
            DryingLogService.add_note(ready_log, visit.id, "")
