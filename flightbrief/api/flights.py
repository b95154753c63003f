"""
Flight data API endpoints.

Provides endpoints for:
- GET /api/v1/flight/<ident> - Current flight record (cached)
- GET /api/v1/flight/<ident>/summary - Latest generated summary

This layer validates the ident format before anything reaches the
cache; the cache itself treats identifiers as opaque.
"""

import logging
import math
import re
import time

from flask import Blueprint, current_app, jsonify

from flightbrief.errors import NotFound, RateLimited, UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)

flights_bp = Blueprint('flights', __name__, url_prefix='/api/v1/flight')

# 2-3 letters followed by 1-4 digits (e.g. UAL123, AA1)
FLIGHT_IDENT_PATTERN = re.compile(r'^[A-Za-z]{2,3}\d{1,4}$')


def _invalid_ident(ident: str):
    logger.warning(f'Rejected flight ident: {ident!r}')
    return jsonify({
        'error': 'Invalid flight identifier format',
        'message': 'Flight ident must be 2-3 letters followed by 1-4 digits (e.g., UAL123)',
    }), 400


@flights_bp.route('/<ident>', methods=['GET'])
def get_flight(ident: str):
    """Get the current record for a flight, from cache when possible."""
    if not FLIGHT_IDENT_PATTERN.match(ident):
        return _invalid_ident(ident)

    start_time = time.perf_counter()
    ident = ident.upper()
    services = current_app.config['SERVICES']

    try:
        record = services.flight_cache.get_or_fetch(ident)
    except NotFound as e:
        logger.info(f'Flight not found: {ident}')
        return jsonify({'error': 'Not Found', 'message': str(e), 'ident': ident}), 404
    except RateLimited as e:
        response = jsonify({'error': 'Too Many Requests', 'message': str(e), 'ident': ident})
        response.status_code = 429
        if e.retry_after is not None:
            response.headers['Retry-After'] = str(math.ceil(e.retry_after))
        return response
    except UpstreamTimeout as e:
        return jsonify({'error': 'Gateway Timeout', 'message': str(e), 'ident': ident}), 504
    except UpstreamError as e:
        return jsonify({'error': 'Bad Gateway', 'message': str(e), 'ident': ident}), 502

    result = record.to_dict()
    result['query_time_ms'] = round((time.perf_counter() - start_time) * 1000, 2)
    return jsonify(result)


@flights_bp.route('/<ident>/summary', methods=['GET'])
def get_summary(ident: str):
    """Get the most recent summary generated for a flight number."""
    if not FLIGHT_IDENT_PATTERN.match(ident):
        return _invalid_ident(ident)

    ident = ident.upper()
    services = current_app.config['SERVICES']

    summary = services.summary_store.latest_for_ident(ident)
    if summary is None:
        logger.info(f'Summary not found for ident: {ident}')
        return jsonify({'error': 'Flight summary not found', 'ident': ident}), 404

    return jsonify(summary.to_dict())
