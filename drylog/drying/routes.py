from drylog.drying import drying_bp
from flask import current_app, jsonify, request
from drylog.drying.service import DryingLogService, DryingLogError, DryingLogExistsError
from drylog.drying.psychrometrics import calculate_gpp, format_gpp, meets_dry_standard
from drylog.drying.engine import DryingEngine
from drylog.drying.vocabulary import vocabulary_payload
from drylog.logging_config import get_logger
from drylog.models import db

logger = get_logger(__name__)


def _payload():
    return request.get_json(silent=True) or {}


def _domain_error(exc: DryingLogError):
    db.session.rollback()
    return jsonify({"error": str(exc)}), exc.status_code


def _server_error(message: str, exc: Exception):
    logger.error(message, error=str(exc), path=request.path)
    db.session.rollback()
    return jsonify({
        "error": message,
        "details": str(exc)
    }), 500


# ==============================================================================
# STATELESS CALCULATIONS
# ==============================================================================

@drying_bp.route("/drying/vocabulary")
def drying_vocabulary():
    """Return the material, surface, equipment, color, reading type and step tables"""
    return jsonify(vocabulary_payload()), 200


@drying_bp.route("/drying/gpp", methods=["POST"])
def drying_gpp():
    """Calculate GPP for a temperature / RH pair. Unavailable readings return gpp=null, not an error."""
    data = _payload()
    pressure = current_app.config.get("ATMOSPHERIC_PRESSURE_PSIA")
    gpp = calculate_gpp(
        DryingEngine.safe_float(data.get('temp_f')),
        DryingEngine.safe_float(data.get('rh_percent')),
        pressure,
    )
    return jsonify({"gpp": gpp, "display": format_gpp(gpp)}), 200


@drying_bp.route("/drying/dry-standard", methods=["POST"])
def drying_dry_standard():
    """Check a moisture reading against a baseline"""
    data = _payload()
    reading_value = DryingEngine.safe_float(data.get('reading_value'))
    baseline_value = DryingEngine.safe_float(data.get('baseline_value'))
    return jsonify({
        "reading_value": reading_value,
        "baseline_value": baseline_value,
        "meets_dry_standard": meets_dry_standard(reading_value, baseline_value),
    }), 200


# ==============================================================================
# DRYING LOG
# ==============================================================================

@drying_bp.route("/jobs/<job_id>/drying/log")
def get_drying_log(job_id):
    """Return the drying log for a job"""
    try:
        log = DryingLogService.require_log(job_id)
        return jsonify(log.to_dict()), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to get drying log", exc)


@drying_bp.route("/jobs/<job_id>/drying/log", methods=["POST"])
def create_drying_log(job_id):
    """Create the drying log for a job, with rooms pre-populated from areas_affected"""
    try:
        data = _payload()
        log = DryingLogService.create_log(job_id, data.get('areas_affected'))
        db.session.commit()
        return jsonify({
            "log": log.to_dict(),
            "chambers": [c.to_dict() for c in DryingLogService.list_chambers(log)],
            "rooms": [r.to_dict() for r in DryingLogService.list_rooms(log)],
        }), 201
    except DryingLogExistsError as exc:
        db.session.rollback()
        existing = DryingLogService.get_log(job_id)
        return jsonify({
            "error": str(exc),
            "log": existing.to_dict() if existing else None
        }), exc.status_code
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to create drying log", exc)


@drying_bp.route("/jobs/<job_id>/drying/log", methods=["PATCH"])
def update_drying_log(job_id):
    """Update setup_complete and/or status of a drying log"""
    try:
        log = DryingLogService.require_log(job_id)
        DryingLogService.update_log(log, _payload())
        db.session.commit()
        return jsonify(log.to_dict()), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to update drying log", exc)


@drying_bp.route("/jobs/<job_id>/drying/setup-step")
def get_setup_step(job_id):
    """Return the setup wizard step to resume at. 409 once a visit exists."""
    try:
        log = DryingLogService.require_log(job_id)
        step = DryingLogService.resolve_setup_step(log)
        # Chambers created before colors were mandatory get one on open.
        # Locked logs are left as stored.
        if not log.locked and DryingLogService.assign_missing_colors(log):
            db.session.commit()
        return jsonify(step), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to resolve setup step", exc)


@drying_bp.route("/jobs/<job_id>/drying/dehu-counts")
def get_dehu_counts(job_id):
    """Return the dehumidifier count per chamber inferred from recorded exhaust readings"""
    try:
        log = DryingLogService.require_log(job_id)
        return jsonify({"dehu_counts": DryingLogService.dehu_counts(log)}), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to get dehumidifier counts", exc)


# ==============================================================================
# CHAMBERS
# ==============================================================================

@drying_bp.route("/jobs/<job_id>/drying/chambers")
def list_chambers(job_id):
    try:
        log = DryingLogService.require_log(job_id)
        return jsonify([c.to_dict() for c in DryingLogService.list_chambers(log)]), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to get chambers", exc)


@drying_bp.route("/jobs/<job_id>/drying/chambers", methods=["POST"])
def create_chamber(job_id):
    """Create a chamber. A palette color is picked when none is given."""
    try:
        data = _payload()
        log = DryingLogService.require_log(job_id, writable=True)
        chamber = DryingLogService.create_chamber(log, data.get('name'), data.get('color'), data.get('floor_level'))
        db.session.commit()
        return jsonify(chamber.to_dict()), 201
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to create chamber", exc)


@drying_bp.route("/jobs/<job_id>/drying/chambers/<chamber_id>", methods=["PATCH"])
def update_chamber(job_id, chamber_id):
    try:
        log = DryingLogService.require_log(job_id, writable=True)
        chamber = DryingLogService.update_chamber(log, chamber_id, _payload())
        db.session.commit()
        return jsonify(chamber.to_dict()), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to update chamber", exc)


@drying_bp.route("/jobs/<job_id>/drying/chambers/<chamber_id>", methods=["DELETE"])
def delete_chamber(job_id, chamber_id):
    try:
        log = DryingLogService.require_log(job_id, writable=True)
        DryingLogService.delete_chamber(log, chamber_id)
        db.session.commit()
        return jsonify({"success": True}), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to delete chamber", exc)


# ==============================================================================
# ROOMS
# ==============================================================================

@drying_bp.route("/jobs/<job_id>/drying/rooms")
def list_rooms(job_id):
    try:
        log = DryingLogService.require_log(job_id)
        return jsonify([r.to_dict() for r in DryingLogService.list_rooms(log)]), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to get rooms", exc)


@drying_bp.route("/jobs/<job_id>/drying/rooms", methods=["POST"])
def create_room(job_id):
    try:
        data = _payload()
        log = DryingLogService.require_log(job_id, writable=True)
        room = DryingLogService.create_room(log, data.get('name'), data.get('chamber_id'))
        db.session.commit()
        return jsonify(room.to_dict()), 201
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to create room", exc)


@drying_bp.route("/jobs/<job_id>/drying/rooms/<room_id>", methods=["PATCH"])
def update_room(job_id, room_id):
    """Rename, reorder or (re)assign a room to a chamber. chamber_id=null unassigns."""
    try:
        log = DryingLogService.require_log(job_id, writable=True)
        room = DryingLogService.update_room(log, room_id, _payload())
        db.session.commit()
        return jsonify(room.to_dict()), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to update room", exc)


@drying_bp.route("/jobs/<job_id>/drying/rooms/<room_id>", methods=["DELETE"])
def delete_room(job_id, room_id):
    try:
        log = DryingLogService.require_log(job_id, writable=True)
        DryingLogService.delete_room(log, room_id)
        db.session.commit()
        return jsonify({"success": True}), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to delete room", exc)


# ==============================================================================
# REFERENCE POINTS
# ==============================================================================

@drying_bp.route("/jobs/<job_id>/drying/ref-points")
def list_ref_points(job_id):
    try:
        log = DryingLogService.require_log(job_id)
        return jsonify([rp.to_dict() for rp in DryingLogService.list_ref_points(log)]), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to get reference points", exc)


@drying_bp.route("/jobs/<job_id>/drying/ref-points", methods=["POST"])
def create_ref_point(job_id):
    try:
        data = _payload()
        log = DryingLogService.require_log(job_id, writable=True)
        ref_point = DryingLogService.add_ref_point(log, data.get('room_id'), data.get('material_code'), data.get('label'))
        db.session.commit()
        return jsonify(ref_point.to_dict()), 201
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to create reference point", exc)


@drying_bp.route("/jobs/<job_id>/drying/ref-points/<ref_point_id>", methods=["PATCH"])
def update_ref_point(job_id, ref_point_id):
    try:
        log = DryingLogService.require_log(job_id, writable=True)
        ref_point = DryingLogService.update_ref_point(log, ref_point_id, _payload())
        db.session.commit()
        return jsonify(ref_point.to_dict()), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to update reference point", exc)


@drying_bp.route("/jobs/<job_id>/drying/ref-points/<ref_point_id>", methods=["DELETE"])
def delete_ref_point(job_id, ref_point_id):
    try:
        log = DryingLogService.require_log(job_id, writable=True)
        DryingLogService.delete_ref_point(log, ref_point_id)
        db.session.commit()
        return jsonify({"success": True}), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to delete reference point", exc)


@drying_bp.route("/jobs/<job_id>/drying/ref-points/<ref_point_id>/demolish", methods=["POST"])
def demolish_ref_point(job_id, ref_point_id):
    """Mark a reference point as demolished on a visit. {"undo": true} restores it."""
    try:
        data = _payload()
        log = DryingLogService.require_log(job_id, writable=True)
        if data.get('undo'):
            ref_point = DryingLogService.undemolish_ref_point(log, ref_point_id)
        else:
            ref_point = DryingLogService.demolish_ref_point(log, ref_point_id, data.get('visit_id'))
        db.session.commit()
        return jsonify(ref_point.to_dict()), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to demolish reference point", exc)


# ==============================================================================
# BASELINES
# ==============================================================================

@drying_bp.route("/jobs/<job_id>/drying/baselines")
def list_baselines(job_id):
    try:
        log = DryingLogService.require_log(job_id)
        return jsonify([b.to_dict() for b in DryingLogService.list_baselines(log)]), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to get baselines", exc)


@drying_bp.route("/jobs/<job_id>/drying/baselines", methods=["PUT"])
def upsert_baseline(job_id):
    """Create or replace the baseline for a material code"""
    try:
        data = _payload()
        log = DryingLogService.require_log(job_id, writable=True)
        baseline = DryingLogService.upsert_baseline(log, data.get('material_code'), data.get('baseline_value'))
        db.session.commit()
        return jsonify(baseline.to_dict()), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to upsert baseline", exc)


@drying_bp.route("/jobs/<job_id>/drying/baselines/defaults", methods=["POST"])
def ensure_default_baselines(job_id):
    """Fill in default baselines for used material codes that have none"""
    try:
        log = DryingLogService.require_log(job_id, writable=True)
        created = DryingLogService.ensure_default_baselines(log)
        db.session.commit()
        return jsonify({
            "created": [b.to_dict() for b in created],
            "baselines": [b.to_dict() for b in DryingLogService.list_baselines(log)],
        }), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to add default baselines", exc)


# ==============================================================================
# VISITS
# ==============================================================================

@drying_bp.route("/jobs/<job_id>/drying/visits")
def list_visits(job_id):
    try:
        log = DryingLogService.require_log(job_id)
        return jsonify([v.to_dict() for v in DryingLogService.list_visits(log)]), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to get visits", exc)


@drying_bp.route("/jobs/<job_id>/drying/visits", methods=["POST"])
def create_visit(job_id):
    """Create the next visit (visit_number is assigned automatically)"""
    try:
        data = _payload()
        log = DryingLogService.require_log(job_id, writable=True)
        visit = DryingLogService.create_visit(log, data.get('visited_at'))
        db.session.commit()
        return jsonify(visit.to_dict()), 201
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to create visit", exc)


@drying_bp.route("/jobs/<job_id>/drying/visits/<visit_id>")
def get_visit(job_id, visit_id):
    """Return a visit with its atmospheric, moisture, equipment and note rows"""
    try:
        log = DryingLogService.require_log(job_id)
        return jsonify(DryingLogService.get_visit_composite(log, visit_id)), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to get visit data", exc)


@drying_bp.route("/jobs/<job_id>/drying/visits/<visit_id>", methods=["DELETE"])
def delete_visit(job_id, visit_id):
    try:
        log = DryingLogService.require_log(job_id, writable=True)
        DryingLogService.delete_visit(log, visit_id)
        db.session.commit()
        return jsonify({"success": True}), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to delete visit", exc)


@drying_bp.route("/jobs/<job_id>/drying/visits/<visit_id>/save", methods=["POST"])
def save_visit(job_id, visit_id):
    """Bulk save atmospheric readings, moisture readings and equipment for a visit"""
    try:
        data = _payload()
        log = DryingLogService.require_log(job_id, writable=True)
        result = DryingLogService.save_visit_data(
            log,
            visit_id,
            atmospheric=data.get('atmospheric'),
            moisture=data.get('moisture'),
            equipment=data.get('equipment'),
            pressure_psia=current_app.config.get("ATMOSPHERIC_PRESSURE_PSIA"),
        )
        db.session.commit()
        return jsonify({"success": True, **result}), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to save visit data", exc)


@drying_bp.route("/jobs/<job_id>/drying/visits/<visit_id>/moisture-summary")
def get_moisture_summary(job_id, visit_id):
    """Per reference point dry standard status with change since the previous visit"""
    try:
        log = DryingLogService.require_log(job_id)
        rows = DryingLogService.moisture_summary(log, visit_id)
        return jsonify({
            "rows": rows,
            "all_dry": bool(rows) and all(r['meets_dry_standard'] for r in rows if not r['demolished']),
        }), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to get moisture summary", exc)


@drying_bp.route("/jobs/<job_id>/drying/visits/<visit_id>/notes")
def list_visit_notes(job_id, visit_id):
    try:
        log = DryingLogService.require_log(job_id)
        visit = DryingLogService.get_visit(log, visit_id)
        return jsonify([n.to_dict() for n in visit.notes]), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to get visit notes", exc)


@drying_bp.route("/jobs/<job_id>/drying/visits/<visit_id>/notes", methods=["POST"])
def add_visit_note(job_id, visit_id):
    try:
        log = DryingLogService.require_log(job_id, writable=True)
        note = DryingLogService.add_note(log, visit_id, _payload().get('content'))
        db.session.commit()
        return jsonify(note.to_dict()), 201
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to add visit note", exc)


@drying_bp.route("/jobs/<job_id>/drying/visits/<visit_id>/notes/<note_id>", methods=["DELETE"])
def delete_visit_note(job_id, visit_id, note_id):
    try:
        log = DryingLogService.require_log(job_id, writable=True)
        DryingLogService.delete_note(log, visit_id, note_id)
        db.session.commit()
        return jsonify({"success": True}), 200
    except DryingLogError as exc:
        return _domain_error(exc)
    except Exception as exc:
        return _server_error("Failed to delete visit note", exc)
