"""
Service layer for drying log operations.
Reads and writes the record store through SQLAlchemy and delegates every
derived value (GPP, dry standard, resume step) to the pure engine.
Callers own the transaction: services add and flush, routes commit.
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional
from drylog.models import (
    db,
    DryingLog,
    DryingLogStatus,
    DryingChamber,
    DryingRoom,
    DryingRefPoint,
    DryingBaseline,
    DryingVisit,
    AtmosphericReading,
    MoistureReading,
    EquipmentPlacement,
    VisitNote,
)
from drylog.drying.engine import DryingEngine, SetupCompletenessEngine
from drylog.drying.psychrometrics import STANDARD_PRESSURE_PSIA, calculate_gpp, meets_dry_standard
from drylog.drying.vocabulary import ChamberColor, SetupStep
from drylog.logging_config import get_logger, OperationContext

logger = get_logger(__name__)


class DryingLogError(Exception):
    """Base class for errors the routes turn into JSON responses."""
    status_code = 400


class ValidationError(DryingLogError):
    status_code = 400


class DryingLogNotFoundError(DryingLogError):
    status_code = 404


class RecordNotFoundError(DryingLogError):
    status_code = 404


class DryingLogExistsError(DryingLogError):
    status_code = 409


class DryingLogLockedError(DryingLogError):
    status_code = 409


class SetupAlreadyCompleteError(DryingLogError):
    """Raised when the setup wizard is asked to reopen after the first visit."""
    status_code = 409


def _parse_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    if value is None or value == '':
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO 8601 datetime")
    # Stored as naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class DryingLogService:
    """Service for drying logs and their setup collections."""

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    @staticmethod
    def get_log(job_id: str) -> Optional[DryingLog]:
        return DryingLog.query.filter_by(job_id=str(job_id)).first()

    @staticmethod
    def require_log(job_id: str, writable: bool = False) -> DryingLog:
        """
        Get the drying log for a job or raise.

        Args:
            job_id: Job identifier
            writable: Refuse locked (completed) logs

        Raises:
            DryingLogNotFoundError: No log for this job
            DryingLogLockedError: writable requested on a locked log
        """
        log = DryingLogService.get_log(job_id)
        if log is None:
            raise DryingLogNotFoundError("No drying log for this job")
        if writable and log.locked:
            raise DryingLogLockedError("Drying log is complete and locked")
        return log

    @staticmethod
    def create_log(job_id: str, areas_text: Optional[str] = None) -> DryingLog:
        """
        Create a drying log with rooms pre-populated from the job's affected areas.

        Rooms start unassigned; chambers are created in the wizard.
        """
        if DryingLogService.get_log(job_id) is not None:
            raise DryingLogExistsError("Drying log already exists for this job")

        log = DryingLog(job_id=str(job_id), status=DryingLogStatus.ACTIVE, next_ref_number=1)
        db.session.add(log)
        db.session.flush()

        room_names = DryingEngine.parse_room_names(areas_text)
        for position, name in enumerate(room_names):
            db.session.add(DryingRoom(log_id=log.id, name=name, position=position))

        db.session.flush()
        logger.info("Drying log created", job_id=log.job_id, log_id=log.id, rooms=len(room_names))
        return log

    @staticmethod
    def update_log(log: DryingLog, data: Dict) -> DryingLog:
        """
        Update log flags. Setting status to 'complete' stamps and locks the log;
        setting it back to 'active' unlocks it.
        """
        if 'setup_complete' in data:
            log.setup_complete = bool(data['setup_complete'])

        if 'status' in data:
            try:
                status = DryingLogStatus(data['status'])
            except ValueError:
                raise ValidationError("status must be one of: active, complete")

            if status is DryingLogStatus.COMPLETE and log.status is not DryingLogStatus.COMPLETE:
                log.completed_at = datetime.utcnow()
                log.completed_by = data.get('completed_by')
                log.locked = True
            elif status is DryingLogStatus.ACTIVE:
                log.completed_at = None
                log.completed_by = None
                log.locked = False
            log.status = status

        log.updated_at = datetime.utcnow()
        return log

    # ------------------------------------------------------------------
    # Generic lookups
    # ------------------------------------------------------------------

    @staticmethod
    def _get_owned(model, log: DryingLog, record_id: str, label: str):
        record = model.query.filter_by(id=record_id, log_id=log.id).first()
        if record is None:
            raise RecordNotFoundError(f"{label} not found")
        return record

    @staticmethod
    def get_visit(log: DryingLog, visit_id: str) -> DryingVisit:
        return DryingLogService._get_owned(DryingVisit, log, visit_id, "Visit")

    # ------------------------------------------------------------------
    # Chambers
    # ------------------------------------------------------------------

    @staticmethod
    def list_chambers(log: DryingLog) -> List[DryingChamber]:
        return DryingChamber.query.filter_by(log_id=log.id).order_by(DryingChamber.position).all()

    @staticmethod
    def _validate_color(color: Optional[str]) -> str:
        if color not in ChamberColor.hexes():
            raise ValidationError(f"color must be one of: {', '.join(ChamberColor.hexes())}")
        return color

    @staticmethod
    def _validate_position(value) -> int:
        is_valid, position, error = DryingEngine.validate_position(value)
        if not is_valid:
            raise ValidationError(error)
        return position

    @staticmethod
    def create_chamber(log: DryingLog, name: Optional[str], color: Optional[str] = None,
                       floor_level: Optional[str] = None) -> DryingChamber:
        name = (name or '').strip()
        if not name:
            raise ValidationError("name is required")

        existing = DryingLogService.list_chambers(log)
        if color:
            color = DryingLogService._validate_color(color)
        else:
            color = DryingEngine.pick_chamber_color(c.color for c in existing)

        chamber = DryingChamber(
            log_id=log.id,
            name=name,
            color=color,
            floor_level=floor_level or 'main_level',
            position=len(existing),
        )
        db.session.add(chamber)
        db.session.flush()
        return chamber

    @staticmethod
    def update_chamber(log: DryingLog, chamber_id: str, data: Dict) -> DryingChamber:
        chamber = DryingLogService._get_owned(DryingChamber, log, chamber_id, "Chamber")

        if 'name' in data:
            name = (data.get('name') or '').strip()
            if not name:
                raise ValidationError("name cannot be empty")
            chamber.name = name
        if 'color' in data:
            chamber.color = DryingLogService._validate_color(data.get('color'))
        if 'floor_level' in data and data.get('floor_level'):
            chamber.floor_level = data['floor_level']
        if 'position' in data:
            chamber.position = DryingLogService._validate_position(data.get('position'))

        chamber.updated_at = datetime.utcnow()
        return chamber

    @staticmethod
    def assign_missing_colors(log: DryingLog) -> List[DryingChamber]:
        """Give every chamber without a color one from the palette. Returns the changed chambers."""
        chambers = DryingLogService.list_chambers(log)
        used = [c.color for c in chambers if c.color]
        changed = []
        for chamber in chambers:
            if not chamber.color:
                chamber.color = DryingEngine.pick_chamber_color(used)
                used.append(chamber.color)
                changed.append(chamber)
        return changed

    @staticmethod
    def delete_chamber(log: DryingLog, chamber_id: str) -> None:
        """Delete a chamber. Its rooms go back to unassigned."""
        chamber = DryingLogService._get_owned(DryingChamber, log, chamber_id, "Chamber")
        DryingRoom.query.filter_by(log_id=log.id, chamber_id=chamber.id).update(
            {DryingRoom.chamber_id: None}, synchronize_session="fetch"
        )
        db.session.delete(chamber)

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    @staticmethod
    def list_rooms(log: DryingLog) -> List[DryingRoom]:
        return DryingRoom.query.filter_by(log_id=log.id).order_by(DryingRoom.position).all()

    @staticmethod
    def _resolve_chamber_id(log: DryingLog, chamber_id: Optional[str]) -> Optional[str]:
        if not chamber_id:
            return None
        return DryingLogService._get_owned(DryingChamber, log, chamber_id, "Chamber").id

    @staticmethod
    def create_room(log: DryingLog, name: Optional[str], chamber_id: Optional[str] = None) -> DryingRoom:
        name = (name or '').strip()
        if not name:
            raise ValidationError("name is required")

        room = DryingRoom(
            log_id=log.id,
            name=name,
            chamber_id=DryingLogService._resolve_chamber_id(log, chamber_id),
            position=len(DryingLogService.list_rooms(log)),
        )
        db.session.add(room)
        db.session.flush()
        return room

    @staticmethod
    def update_room(log: DryingLog, room_id: str, data: Dict) -> DryingRoom:
        room = DryingLogService._get_owned(DryingRoom, log, room_id, "Room")

        if 'name' in data:
            name = (data.get('name') or '').strip()
            if not name:
                raise ValidationError("name cannot be empty")
            room.name = name
        if 'chamber_id' in data:
            room.chamber_id = DryingLogService._resolve_chamber_id(log, data.get('chamber_id'))
        if 'position' in data:
            room.position = DryingLogService._validate_position(data.get('position'))

        room.updated_at = datetime.utcnow()
        return room

    @staticmethod
    def delete_room(log: DryingLog, room_id: str) -> None:
        """Delete a room together with its reference points, their readings and its equipment."""
        room = DryingLogService._get_owned(DryingRoom, log, room_id, "Room")
        for rp in DryingRefPoint.query.filter_by(room_id=room.id).all():
            MoistureReading.query.filter_by(ref_point_id=rp.id).delete(synchronize_session="fetch")
            db.session.delete(rp)
        EquipmentPlacement.query.filter_by(room_id=room.id).delete(synchronize_session="fetch")
        db.session.delete(room)

    # ------------------------------------------------------------------
    # Reference points
    # ------------------------------------------------------------------

    @staticmethod
    def list_ref_points(log: DryingLog) -> List[DryingRefPoint]:
        return DryingRefPoint.query.filter_by(log_id=log.id).order_by(DryingRefPoint.ref_number).all()

    @staticmethod
    def add_ref_point(log: DryingLog, room_id: str, material_code: Optional[str],
                      label: Optional[str] = None) -> DryingRefPoint:
        """
        Add a reference point, taking the next ref_number from the log.

        The log row is locked for the read-increment so two writers cannot
        hand out the same number.
        """
        room = DryingLogService._get_owned(DryingRoom, log, room_id, "Room")
        is_valid, code, error = DryingEngine.validate_material_code(material_code)
        if not is_valid:
            raise ValidationError(error)

        locked_log = DryingLog.query.filter_by(id=log.id).with_for_update().one()
        ref_number = locked_log.next_ref_number
        locked_log.next_ref_number = ref_number + 1

        ref_point = DryingRefPoint(
            log_id=log.id,
            room_id=room.id,
            ref_number=ref_number,
            material_code=code,
            label=(label or '').strip(),
        )
        db.session.add(ref_point)
        db.session.flush()
        return ref_point

    @staticmethod
    def update_ref_point(log: DryingLog, ref_point_id: str, data: Dict) -> DryingRefPoint:
        ref_point = DryingLogService._get_owned(DryingRefPoint, log, ref_point_id, "Reference point")

        if 'material_code' in data:
            is_valid, code, error = DryingEngine.validate_material_code(data.get('material_code'))
            if not is_valid:
                raise ValidationError(error)
            ref_point.material_code = code
        if 'label' in data:
            ref_point.label = (data.get('label') or '').strip()
        return ref_point

    @staticmethod
    def delete_ref_point(log: DryingLog, ref_point_id: str) -> None:
        ref_point = DryingLogService._get_owned(DryingRefPoint, log, ref_point_id, "Reference point")
        MoistureReading.query.filter_by(ref_point_id=ref_point.id).delete(synchronize_session="fetch")
        db.session.delete(ref_point)

    @staticmethod
    def demolish_ref_point(log: DryingLog, ref_point_id: str, visit_id: Optional[str]) -> DryingRefPoint:
        """Mark a reference point as torn out on the given visit; readings stop there."""
        if not visit_id:
            raise ValidationError("visit_id is required")
        ref_point = DryingLogService._get_owned(DryingRefPoint, log, ref_point_id, "Reference point")
        visit = DryingLogService.get_visit(log, visit_id)

        ref_point.demolished_at = datetime.utcnow()
        ref_point.demolished_visit_id = visit.id
        return ref_point

    @staticmethod
    def undemolish_ref_point(log: DryingLog, ref_point_id: str) -> DryingRefPoint:
        ref_point = DryingLogService._get_owned(DryingRefPoint, log, ref_point_id, "Reference point")
        ref_point.demolished_at = None
        ref_point.demolished_visit_id = None
        return ref_point

    # ------------------------------------------------------------------
    # Baselines
    # ------------------------------------------------------------------

    @staticmethod
    def list_baselines(log: DryingLog) -> List[DryingBaseline]:
        return DryingBaseline.query.filter_by(log_id=log.id).order_by(DryingBaseline.material_code).all()

    @staticmethod
    def upsert_baseline(log: DryingLog, material_code: Optional[str], baseline_value) -> DryingBaseline:
        """Create or replace the baseline for a material code. One per code per log."""
        if not material_code:
            raise ValidationError("material_code is required")
        is_valid, code, error = DryingEngine.validate_material_code(material_code)
        if not is_valid:
            raise ValidationError(error)
        is_valid, value, error = DryingEngine.validate_baseline_value(baseline_value)
        if not is_valid:
            raise ValidationError(error)

        baseline = DryingBaseline.query.filter_by(log_id=log.id, material_code=code).first()
        if baseline is None:
            baseline = DryingBaseline(log_id=log.id, material_code=code, baseline_value=value)
            db.session.add(baseline)
        else:
            baseline.baseline_value = value
            baseline.updated_at = datetime.utcnow()

        db.session.flush()
        return baseline

    @staticmethod
    def ensure_default_baselines(log: DryingLog) -> List[DryingBaseline]:
        """Create default baselines for used material codes that have none. Returns the new rows."""
        missing = SetupCompletenessEngine.missing_baseline_codes(
            [rp.to_dict() for rp in DryingLogService.list_ref_points(log)],
            [b.to_dict() for b in DryingLogService.list_baselines(log)],
        )
        created = []
        for code in missing:
            baseline = DryingBaseline(
                log_id=log.id,
                material_code=code,
                baseline_value=DryingEngine.default_baseline_for(code),
            )
            db.session.add(baseline)
            created.append(baseline)

        db.session.flush()
        if created:
            logger.info("Default baselines added", log_id=log.id, material_codes=missing)
        return created

    # ------------------------------------------------------------------
    # Setup resolution
    # ------------------------------------------------------------------

    @staticmethod
    def list_visits(log: DryingLog) -> List[DryingVisit]:
        return DryingVisit.query.filter_by(log_id=log.id).order_by(DryingVisit.visit_number).all()

    @staticmethod
    def get_setup_collections(log: DryingLog) -> Dict[str, List[Dict]]:
        return {
            'chambers': [c.to_dict() for c in DryingLogService.list_chambers(log)],
            'rooms': [r.to_dict() for r in DryingLogService.list_rooms(log)],
            'ref_points': [rp.to_dict() for rp in DryingLogService.list_ref_points(log)],
            'baselines': [b.to_dict() for b in DryingLogService.list_baselines(log)],
        }

    @staticmethod
    def resolve_setup_step(log: DryingLog) -> Dict:
        """
        Work out where the setup wizard should open.

        Raises:
            SetupAlreadyCompleteError: A visit exists, so setup is closed
        """
        if DryingVisit.query.filter_by(log_id=log.id).first() is not None:
            raise SetupAlreadyCompleteError("Setup is complete once a visit has been recorded")

        collections = DryingLogService.get_setup_collections(log)
        step = SetupStep(SetupCompletenessEngine.detect_first_incomplete_step(
            collections['chambers'],
            collections['rooms'],
            collections['ref_points'],
            collections['baselines'],
        ))
        return {
            'step': int(step),
            'title': step.title,
            'missing_baselines': SetupCompletenessEngine.missing_baseline_codes(
                collections['ref_points'], collections['baselines']
            ),
        }

    # ------------------------------------------------------------------
    # Visits
    # ------------------------------------------------------------------

    @staticmethod
    def create_visit(log: DryingLog, visited_at: Optional[str] = None) -> DryingVisit:
        """Create the next visit, numbered one past the highest so far."""
        when = _parse_datetime(visited_at, 'visited_at') or datetime.utcnow()
        max_number = db.session.query(db.func.max(DryingVisit.visit_number)).filter(
            DryingVisit.log_id == log.id
        ).scalar()

        visit = DryingVisit(log_id=log.id, visit_number=(max_number or 0) + 1, visited_at=when)
        db.session.add(visit)
        db.session.flush()
        logger.info("Visit created", log_id=log.id, visit_number=visit.visit_number)
        return visit

    @staticmethod
    def delete_visit(log: DryingLog, visit_id: str) -> None:
        """Delete a visit with its readings. Points demolished on it are restored."""
        visit = DryingLogService.get_visit(log, visit_id)
        DryingRefPoint.query.filter_by(log_id=log.id, demolished_visit_id=visit.id).update(
            {DryingRefPoint.demolished_at: None, DryingRefPoint.demolished_visit_id: None},
            synchronize_session="fetch"
        )
        db.session.delete(visit)

    @staticmethod
    def get_visit_composite(log: DryingLog, visit_id: str) -> Dict:
        visit = DryingLogService.get_visit(log, visit_id)
        return {
            'visit': visit.to_dict(),
            'atmospheric': [r.to_dict() for r in visit.atmospheric_readings],
            'moisture': [r.to_dict() for r in visit.moisture_readings],
            'equipment': [e.to_dict() for e in visit.equipment],
            'notes': [n.to_dict() for n in visit.notes],
        }

    @staticmethod
    def _validate_rows(rows, validator, label: str) -> List[Dict]:
        if not isinstance(rows, list):
            raise ValidationError(f"{label} must be a list")
        normalized = []
        for index, row in enumerate(rows):
            if not isinstance(row, dict):
                raise ValidationError(f"{label}[{index}] must be an object")
            is_valid, value, error = validator(row)
            if not is_valid:
                raise ValidationError(f"{label}[{index}]: {error}")
            normalized.append(value)
        return normalized

    @staticmethod
    def save_visit_data(
        log: DryingLog,
        visit_id: str,
        atmospheric: Optional[list] = None,
        moisture: Optional[list] = None,
        equipment: Optional[list] = None,
        pressure_psia: float = STANDARD_PRESSURE_PSIA
    ) -> Dict:
        """
        Replace a visit's readings and equipment in one go.

        Each section given replaces that section entirely; sections left as
        None are untouched. Everything is validated before anything is
        deleted, so a bad row leaves the visit as it was.

        GPP is derived for every atmospheric row and the dry standard flag for
        every moisture row (against the baseline of the ref point's material).
        """
        visit = DryingLogService.get_visit(log, visit_id)

        atmospheric_rows = (DryingLogService._validate_rows(
            atmospheric, DryingEngine.validate_atmospheric_reading, 'atmospheric')
            if atmospheric is not None else None)
        moisture_rows = (DryingLogService._validate_rows(
            moisture, DryingEngine.validate_moisture_reading, 'moisture')
            if moisture is not None else None)
        equipment_rows = (DryingLogService._validate_rows(
            equipment, DryingEngine.validate_equipment, 'equipment')
            if equipment is not None else None)

        chamber_ids = {c.id for c in DryingLogService.list_chambers(log)}
        room_ids = {r.id for r in DryingLogService.list_rooms(log)}
        ref_points = {rp.id: rp for rp in DryingLogService.list_ref_points(log)}
        baselines = {b.material_code: b.baseline_value for b in DryingLogService.list_baselines(log)}

        for row in atmospheric_rows or []:
            if row['chamber_id'] is not None and row['chamber_id'] not in chamber_ids:
                raise ValidationError(f"Chamber {row['chamber_id']} not found")
        seen_ref_points = set()
        for row in moisture_rows or []:
            if row['ref_point_id'] not in ref_points:
                raise ValidationError(f"Reference point {row['ref_point_id']} not found")
            if row['ref_point_id'] in seen_ref_points:
                raise ValidationError(f"Reference point {row['ref_point_id']} has more than one reading")
            seen_ref_points.add(row['ref_point_id'])
        for row in equipment_rows or []:
            if row['room_id'] not in room_ids:
                raise ValidationError(f"Room {row['room_id']} not found")

        with OperationContext("visit_save", log_id=log.id, visit_id=visit.id):
            if atmospheric_rows is not None:
                AtmosphericReading.query.filter_by(visit_id=visit.id).delete(synchronize_session="fetch")
                for row in atmospheric_rows:
                    db.session.add(AtmosphericReading(
                        visit_id=visit.id,
                        gpp=calculate_gpp(row['temp_f'], row['rh_percent'], pressure_psia),
                        **row
                    ))

            if moisture_rows is not None:
                MoistureReading.query.filter_by(visit_id=visit.id).delete(synchronize_session="fetch")
                for row in moisture_rows:
                    material_code = ref_points[row['ref_point_id']].material_code
                    db.session.add(MoistureReading(
                        visit_id=visit.id,
                        ref_point_id=row['ref_point_id'],
                        reading_value=row['reading_value'],
                        meets_dry_standard=meets_dry_standard(row['reading_value'], baselines.get(material_code)),
                    ))

            if equipment_rows is not None:
                EquipmentPlacement.query.filter_by(visit_id=visit.id).delete(synchronize_session="fetch")
                for row in equipment_rows:
                    db.session.add(EquipmentPlacement(visit_id=visit.id, **row))

            visit.updated_at = datetime.utcnow()
            db.session.flush()
            db.session.expire(visit)

        return DryingLogService.get_visit_composite(log, visit.id)

    @staticmethod
    def moisture_summary(log: DryingLog, visit_id: str) -> List[Dict]:
        """Dry standard table for a visit with the change since the previous visit."""
        visit = DryingLogService.get_visit(log, visit_id)
        prior = DryingVisit.query.filter(
            DryingVisit.log_id == log.id,
            DryingVisit.visit_number < visit.visit_number,
        ).order_by(DryingVisit.visit_number.desc()).first()

        return DryingEngine.summarize_moisture(
            [rp.to_dict() for rp in DryingLogService.list_ref_points(log)],
            [b.to_dict() for b in DryingLogService.list_baselines(log)],
            [r.to_dict() for r in visit.moisture_readings],
            [r.to_dict() for r in prior.moisture_readings] if prior else [],
        )

    @staticmethod
    def dehu_counts(log: DryingLog) -> Dict[str, int]:
        readings = AtmosphericReading.query.join(DryingVisit).filter(DryingVisit.log_id == log.id).all()
        return DryingEngine.infer_dehu_counts(r.to_dict() for r in readings)

    # ------------------------------------------------------------------
    # Visit notes
    # ------------------------------------------------------------------

    @staticmethod
    def add_note(log: DryingLog, visit_id: str, content: Optional[str]) -> VisitNote:
        visit = DryingLogService.get_visit(log, visit_id)
        content = (content or '').strip()
        if not content:
            raise ValidationError("content is required")
        note = VisitNote(visit_id=visit.id, content=content)
        db.session.add(note)
        db.session.flush()
        return note

    @staticmethod
    def delete_note(log: DryingLog, visit_id: str, note_id: str) -> None:
        visit = DryingLogService.get_visit(log, visit_id)
        note = VisitNote.query.filter_by(id=note_id, visit_id=visit.id).first()
        if note is None:
            raise RecordNotFoundError("Note not found")
        db.session.delete(note)
