"""
REST API blueprints for FlightBrief.
"""

from flightbrief.api.flights import flights_bp
from flightbrief.api.metrics import metrics_bp

__all__ = ['flights_bp', 'metrics_bp']
