from flask_sqlalchemy import SQLAlchemy
from datetime import datetime
from enum import Enum
import uuid

db = SQLAlchemy()


def new_id():
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


class DryingLogStatus(Enum):
    ACTIVE = "active"
    COMPLETE = "complete"


class DryingLog(db.Model):
    """One drying log per job."""
    __tablename__ = "drying_logs"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    job_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    status = db.Column(db.Enum(DryingLogStatus), nullable=False, default=DryingLogStatus.ACTIVE)
    next_ref_number = db.Column(db.Integer, nullable=False, default=1)
    setup_complete = db.Column(db.Boolean, nullable=False, default=False)

    # Completion
    completed_at = db.Column(db.DateTime, nullable=True)
    completed_by = db.Column(db.String(128), nullable=True)
    locked = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    chambers = db.relationship("DryingChamber", backref="log", cascade="all, delete-orphan",
                               order_by="DryingChamber.position")
    rooms = db.relationship("DryingRoom", backref="log", cascade="all, delete-orphan",
                            order_by="DryingRoom.position")
    ref_points = db.relationship("DryingRefPoint", backref="log", cascade="all, delete-orphan",
                                 order_by="DryingRefPoint.ref_number")
    baselines = db.relationship("DryingBaseline", backref="log", cascade="all, delete-orphan")
    visits = db.relationship("DryingVisit", backref="log", cascade="all, delete-orphan",
                             order_by="DryingVisit.visit_number")

    def __repr__(self):
        return f"<DryingLog {self.id} - job {self.job_id} - {self.status.value}>"

    def to_dict(self):
        return {
            'id': self.id,
            'job_id': self.job_id,
            'status': self.status.value if self.status else None,
            'next_ref_number': self.next_ref_number,
            'setup_complete': bool(self.setup_complete),
            'completed_at': _iso(self.completed_at),
            'completed_by': self.completed_by,
            'locked': bool(self.locked),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class DryingChamber(db.Model):
    """Containment zone grouping rooms that share drying equipment."""
    __tablename__ = "drying_chambers"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    log_id = db.Column(db.String(36), db.ForeignKey("drying_logs.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    color = db.Column(db.String(16), nullable=False, default='')
    floor_level = db.Column(db.String(32), nullable=False, default='main_level')
    position = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<DryingChamber {self.name} ({self.color})>"

    def to_dict(self):
        return {
            'id': self.id,
            'log_id': self.log_id,
            'name': self.name,
            'color': self.color,
            'floor_level': self.floor_level,
            'position': self.position,
        }


class DryingRoom(db.Model):
    __tablename__ = "drying_rooms"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    log_id = db.Column(db.String(36), db.ForeignKey("drying_logs.id", ondelete="CASCADE"), nullable=False, index=True)
    # Null until the room is assigned to a chamber
    chamber_id = db.Column(db.String(36), db.ForeignKey("drying_chambers.id", ondelete="SET NULL"),
                           nullable=True, index=True)
    name = db.Column(db.String(128), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<DryingRoom {self.name}>"

    def to_dict(self):
        return {
            'id': self.id,
            'log_id': self.log_id,
            'chamber_id': self.chamber_id,
            'name': self.name,
            'position': self.position,
        }


class DryingRefPoint(db.Model):
    """Numbered spot in a room where moisture is measured on every visit."""
    __tablename__ = "drying_ref_points"
    __table_args__ = (db.UniqueConstraint("log_id", "ref_number", name="_log_ref_number_uc"),)

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    log_id = db.Column(db.String(36), db.ForeignKey("drying_logs.id", ondelete="CASCADE"), nullable=False, index=True)
    room_id = db.Column(db.String(36), db.ForeignKey("drying_rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    ref_number = db.Column(db.Integer, nullable=False)
    material_code = db.Column(db.String(8), nullable=False, default='')
    label = db.Column(db.String(256), nullable=False, default='')
    demolished_at = db.Column(db.DateTime, nullable=True)
    demolished_visit_id = db.Column(db.String(36), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<DryingRefPoint #{self.ref_number} {self.material_code}>"

    def to_dict(self):
        return {
            'id': self.id,
            'log_id': self.log_id,
            'room_id': self.room_id,
            'ref_number': self.ref_number,
            'material_code': self.material_code,
            'label': self.label,
            'demolished_at': _iso(self.demolished_at),
            'demolished_visit_id': self.demolished_visit_id,
        }


class DryingBaseline(db.Model):
    """Dry reference moisture value for one material type within a log."""
    __tablename__ = "drying_baselines"
    __table_args__ = (db.UniqueConstraint("log_id", "material_code", name="_log_material_uc"),)

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    log_id = db.Column(db.String(36), db.ForeignKey("drying_logs.id", ondelete="CASCADE"), nullable=False, index=True)
    material_code = db.Column(db.String(8), nullable=False)
    baseline_value = db.Column(db.Float, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'log_id': self.log_id,
            'material_code': self.material_code,
            'baseline_value': self.baseline_value,
        }


class DryingVisit(db.Model):
    """Timestamped site visit. The first visit closes initial setup."""
    __tablename__ = "drying_visits"
    __table_args__ = (db.UniqueConstraint("log_id", "visit_number", name="_log_visit_number_uc"),)

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    log_id = db.Column(db.String(36), db.ForeignKey("drying_logs.id", ondelete="CASCADE"), nullable=False, index=True)
    visit_number = db.Column(db.Integer, nullable=False)
    visited_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    atmospheric_readings = db.relationship("AtmosphericReading", backref="visit", cascade="all, delete-orphan")
    moisture_readings = db.relationship("MoistureReading", backref="visit", cascade="all, delete-orphan")
    equipment = db.relationship("EquipmentPlacement", backref="visit", cascade="all, delete-orphan")
    notes = db.relationship("VisitNote", backref="visit", cascade="all, delete-orphan",
                            order_by="VisitNote.created_at")

    def __repr__(self):
        return f"<DryingVisit #{self.visit_number}>"

    def to_dict(self):
        return {
            'id': self.id,
            'log_id': self.log_id,
            'visit_number': self.visit_number,
            'visited_at': _iso(self.visited_at),
        }


class AtmosphericReading(db.Model):
    __tablename__ = "drying_atmospheric_readings"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    visit_id = db.Column(db.String(36), db.ForeignKey("drying_visits.id", ondelete="CASCADE"), nullable=False, index=True)
    reading_type = db.Column(db.String(32), nullable=False)  # see ReadingType
    chamber_id = db.Column(db.String(36), db.ForeignKey("drying_chambers.id", ondelete="SET NULL"), nullable=True)
    dehu_number = db.Column(db.Integer, nullable=True)
    temp_f = db.Column(db.Float, nullable=True)
    rh_percent = db.Column(db.Float, nullable=True)
    gpp = db.Column(db.Float, nullable=True)  # derived at save time
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'visit_id': self.visit_id,
            'reading_type': self.reading_type,
            'chamber_id': self.chamber_id,
            'dehu_number': self.dehu_number,
            'temp_f': self.temp_f,
            'rh_percent': self.rh_percent,
            'gpp': self.gpp,
        }


class MoistureReading(db.Model):
    __tablename__ = "drying_moisture_readings"
    __table_args__ = (db.UniqueConstraint("visit_id", "ref_point_id", name="_visit_ref_point_uc"),)

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    visit_id = db.Column(db.String(36), db.ForeignKey("drying_visits.id", ondelete="CASCADE"), nullable=False, index=True)
    ref_point_id = db.Column(db.String(36), db.ForeignKey("drying_ref_points.id", ondelete="CASCADE"),
                             nullable=False, index=True)
    reading_value = db.Column(db.Float, nullable=True)
    meets_dry_standard = db.Column(db.Boolean, nullable=False, default=False)  # derived at save time
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'visit_id': self.visit_id,
            'ref_point_id': self.ref_point_id,
            'reading_value': self.reading_value,
            'meets_dry_standard': bool(self.meets_dry_standard),
        }


class EquipmentPlacement(db.Model):
    """Equipment snapshot for one room on one visit."""
    __tablename__ = "drying_equipment"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    visit_id = db.Column(db.String(36), db.ForeignKey("drying_visits.id", ondelete="CASCADE"), nullable=False, index=True)
    room_id = db.Column(db.String(36), db.ForeignKey("drying_rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    equipment_type = db.Column(db.String(32), nullable=False)  # see EquipmentType
    quantity = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'visit_id': self.visit_id,
            'room_id': self.room_id,
            'equipment_type': self.equipment_type,
            'quantity': self.quantity,
        }


class VisitNote(db.Model):
    __tablename__ = "drying_visit_notes"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    visit_id = db.Column(db.String(36), db.ForeignKey("drying_visits.id", ondelete="CASCADE"), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False, default='')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'visit_id': self.visit_id,
            'content': self.content,
            'created_at': _iso(self.created_at),
        }
