"""
Data ingestion module for FlightBrief.

Handles calling the FlightAware AeroAPI and turning its responses into
TrackedRecords.
"""

from flightbrief.ingestion.flightaware_client import FlightAwareClient

__all__ = ['FlightAwareClient']
