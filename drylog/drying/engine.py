"""
Pure business logic engine for drying log operations.
Contains no database dependencies - works with plain data structures
(the dicts produced by the models' to_dict()).
"""
import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from drylog.drying.psychrometrics import format_delta, meets_dry_standard
from drylog.drying.vocabulary import (
    ChamberColor,
    EquipmentType,
    MaterialCode,
    ReadingType,
    SetupStep,
)


class SetupCompletenessEngine:
    """Decides where the setup wizard resumes from persisted setup state."""

    @staticmethod
    def missing_baseline_codes(ref_points: Iterable[Mapping], baselines: Iterable[Mapping]) -> List[str]:
        """
        Material codes used by reference points that have no baseline.

        Args:
            ref_points: Dicts with a 'material_code' key
            baselines: Dicts with a 'material_code' key

        Returns:
            Missing codes in order of first use, without duplicates
        """
        baseline_codes = {b.get('material_code') for b in baselines}
        missing = []
        for rp in ref_points:
            code = rp.get('material_code')
            if code not in baseline_codes and code not in missing:
                missing.append(code)
        return missing

    @staticmethod
    def detect_first_incomplete_step(
        chambers: Iterable[Mapping],
        rooms: Iterable[Mapping],
        ref_points: Iterable[Mapping],
        baselines: Iterable[Mapping]
    ) -> int:
        """
        Find the setup step the wizard should open at.

        Checks run in step order and the first failing check wins:
        - no rooms -> Rooms Review (0)
        - no chambers -> Create Chambers (1)
        - a room without a chamber -> Assign Rooms (2)
        - no reference points -> Reference Points (4)
        - a used material code without a baseline -> Baselines (5)
        - otherwise -> Equipment per Room (6)

        Dehumidifier counts (3) only live in the client and are never a
        target. Equipment, atmospheric and moisture steps (6-8) can always be
        re-entered, so 6 is the fallback for all of them.

        Callers must not open the wizard at all once a visit exists.

        Returns:
            int: Step index in [0, 8]
        """
        rooms = list(rooms)
        chambers = list(chambers)
        ref_points = list(ref_points)

        if not rooms:
            return SetupStep.ROOMS_REVIEW
        if not chambers:
            return SetupStep.CREATE_CHAMBERS
        if any(not room.get('chamber_id') for room in rooms):
            return SetupStep.ASSIGN_ROOMS
        if not ref_points:
            return SetupStep.REFERENCE_POINTS
        if SetupCompletenessEngine.missing_baseline_codes(ref_points, baselines):
            return SetupStep.BASELINES
        return SetupStep.EQUIPMENT


class DryingEngine:
    """Pure helpers for readings, equipment and setup defaults."""

    # Drywall has a well-known dry reading; everything else gets the fallback
    DEFAULT_BASELINES: Dict[str, float] = {
        MaterialCode.DRYWALL.code: 11.0,
    }
    FALLBACK_BASELINE = 8.0

    @staticmethod
    def safe_float(value) -> Optional[float]:
        """Convert a form value to float, handling None, blanks and junk."""
        if value is None or value == '' or isinstance(value, bool):
            return None
        try:
            number = float(value)
        except (ValueError, TypeError):
            return None
        return number if math.isfinite(number) else None

    @staticmethod
    def default_baseline_for(material_code: Optional[str]) -> float:
        return DryingEngine.DEFAULT_BASELINES.get(material_code, DryingEngine.FALLBACK_BASELINE)

    @staticmethod
    def pick_chamber_color(used_colors: Iterable[Optional[str]]) -> str:
        """First palette color not already used; the first color once all are taken."""
        used = {c for c in used_colors if c}
        for color in ChamberColor:
            if color.value not in used:
                return color.value
        return ChamberColor.PURPLE.value

    @staticmethod
    def parse_room_names(areas_text: Optional[str]) -> List[str]:
        """
        Split a free-text 'areas affected' field into room names.

        Args:
            areas_text: e.g. "Kitchen, Living Room; Hall"

        Returns:
            Trimmed, non-empty names in input order
        """
        if not areas_text:
            return []
        return [part.strip() for part in re.split(r'[,;\n]+', areas_text) if part.strip()]

    @staticmethod
    def infer_dehu_counts(atmospheric_readings: Iterable[Mapping]) -> Dict[Any, int]:
        """
        Number of dehumidifiers per chamber, inferred from recorded exhaust readings.

        Each dehumidifier gets its own exhaust reading numbered from 1, so
        the highest dehu_number seen for a chamber is its count.
        """
        counts: Dict[Any, int] = {}
        for reading in atmospheric_readings:
            if reading.get('reading_type') != ReadingType.CHAMBER_DEHU_EXHAUST.value:
                continue
            chamber_id = reading.get('chamber_id')
            dehu_number = reading.get('dehu_number')
            if chamber_id is None or not dehu_number:
                continue
            counts[chamber_id] = max(counts.get(chamber_id, 0), int(dehu_number))
        return counts

    @staticmethod
    def validate_baseline_value(value) -> Tuple[bool, Optional[float], Optional[str]]:
        """
        Validate a baseline moisture value.

        Returns:
            (is_valid, normalized_value, error_message)
        """
        if value is None or value == '':
            return False, None, "baseline_value is required"
        number = DryingEngine.safe_float(value)
        if number is None or not math.isfinite(number):
            return False, None, "baseline_value must be a number"
        if number < 0 or number > 100:
            return False, None, "baseline_value must be between 0 and 100"
        return True, number, None

    @staticmethod
    def validate_position(value) -> Tuple[bool, Optional[int], Optional[str]]:
        """Validate a display position. Blank means the top of the list (0)."""
        if value is None or value == '':
            return True, 0, None
        number = DryingEngine.safe_float(value)
        if number is None or number < 0 or number != int(number):
            return False, None, "position must be a non-negative integer"
        return True, int(number), None

    @staticmethod
    def validate_material_code(code: Optional[str]) -> Tuple[bool, Optional[str], Optional[str]]:
        """
        Validate a material code against the material table.

        Returns:
            (is_valid, normalized_code, error_message)
        """
        material = MaterialCode.from_code(code)
        if material is None:
            return False, None, f"material_code must be one of: {', '.join(MaterialCode.codes())}"
        return True, material.code, None

    @staticmethod
    def validate_atmospheric_reading(payload: Mapping) -> Tuple[bool, Optional[Dict], Optional[str]]:
        """
        Validate and normalize one atmospheric reading.

        Temperature and humidity may be blank (a partially entered form); GPP
        is simply unavailable for such rows.

        Returns:
            (is_valid, normalized_reading, error_message)
        """
        try:
            reading_type = ReadingType(payload.get('reading_type'))
        except ValueError:
            valid = ', '.join(r.value for r in ReadingType)
            return False, None, f"reading_type must be one of: {valid}"

        chamber_id = payload.get('chamber_id') or None
        dehu_number = None

        if reading_type.needs_chamber and chamber_id is None:
            return False, None, f"chamber_id is required for {reading_type.value} readings"
        if not reading_type.needs_chamber:
            chamber_id = None

        if reading_type is ReadingType.CHAMBER_DEHU_EXHAUST:
            raw_number = DryingEngine.safe_float(payload.get('dehu_number'))
            if raw_number is None or raw_number < 1 or raw_number != int(raw_number):
                return False, None, "dehu_number must be a positive integer"
            dehu_number = int(raw_number)

        normalized = {
            'reading_type': reading_type.value,
            'chamber_id': chamber_id,
            'dehu_number': dehu_number,
            'temp_f': DryingEngine.safe_float(payload.get('temp_f')),
            'rh_percent': DryingEngine.safe_float(payload.get('rh_percent')),
        }
        return True, normalized, None

    @staticmethod
    def validate_moisture_reading(payload: Mapping) -> Tuple[bool, Optional[Dict], Optional[str]]:
        """
        Validate one moisture content reading.

        Returns:
            (is_valid, normalized_reading, error_message)
        """
        ref_point_id = payload.get('ref_point_id')
        if not ref_point_id:
            return False, None, "ref_point_id is required"
        return True, {
            'ref_point_id': ref_point_id,
            'reading_value': DryingEngine.safe_float(payload.get('reading_value')),
        }, None

    @staticmethod
    def validate_equipment(payload: Mapping) -> Tuple[bool, Optional[Dict], Optional[str]]:
        """
        Validate one equipment placement row.

        Returns:
            (is_valid, normalized_row, error_message)
        """
        room_id = payload.get('room_id')
        if not room_id:
            return False, None, "room_id is required"

        equipment = EquipmentType.from_key(payload.get('equipment_type'))
        if equipment is None:
            valid = ', '.join(e.type_key for e in EquipmentType)
            return False, None, f"equipment_type must be one of: {valid}"

        quantity = payload.get('quantity')
        if quantity is None:
            quantity = 1
        quantity_number = DryingEngine.safe_float(quantity)
        if quantity_number is None or quantity_number < 1 or quantity_number != int(quantity_number):
            return False, None, "quantity must be a positive integer"

        return True, {
            'room_id': room_id,
            'equipment_type': equipment.type_key,
            'quantity': int(quantity_number),
        }, None

    @staticmethod
    def summarize_moisture(
        ref_points: Iterable[Mapping],
        baselines: Iterable[Mapping],
        readings: Iterable[Mapping],
        prior_readings: Iterable[Mapping] = ()
    ) -> List[Dict]:
        """
        Build the per-reference-point dry standard table for one visit.

        Args:
            ref_points: Reference point dicts ('id', 'ref_number', 'material_code', ...)
            baselines: Baseline dicts ('material_code', 'baseline_value')
            readings: This visit's moisture reading dicts ('ref_point_id', 'reading_value')
            prior_readings: The previous visit's moisture reading dicts

        Returns:
            One row per reference point, ordered by ref_number
        """
        baseline_by_code = {b.get('material_code'): b.get('baseline_value') for b in baselines}
        current_by_rp = {r.get('ref_point_id'): r.get('reading_value') for r in readings}
        prior_by_rp = {r.get('ref_point_id'): r.get('reading_value') for r in prior_readings}

        rows = []
        for rp in sorted(ref_points, key=lambda p: p.get('ref_number') or 0):
            baseline_value = baseline_by_code.get(rp.get('material_code'))
            reading_value = current_by_rp.get(rp.get('id'))
            rows.append({
                'ref_point_id': rp.get('id'),
                'ref_number': rp.get('ref_number'),
                'room_id': rp.get('room_id'),
                'material_code': rp.get('material_code'),
                'reading_value': reading_value,
                'baseline_value': baseline_value,
                'meets_dry_standard': meets_dry_standard(reading_value, baseline_value),
                'delta': format_delta(reading_value, prior_by_rp.get(rp.get('id'))),
                'demolished': bool(rp.get('demolished_at')),
            })
        return rows
