"""
Drying Log Module
Flask Blueprint for water-damage drying logs.

This module provides routes for the drying setup wizard (chambers, rooms,
reference points, baselines), site visits with atmospheric and moisture
readings, and the stateless psychrometric calculations behind them.
"""
from flask import Blueprint

drying_bp = Blueprint("drying", __name__)

from drylog.drying import routes
