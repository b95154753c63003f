"""
Metrics API endpoints.

Provides endpoints for:
- GET /api/metrics/status - Quota usage, cache, event channel and worker status
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

metrics_bp = Blueprint('metrics', __name__, url_prefix='/api/metrics')


@metrics_bp.route('/status', methods=['GET'])
def get_system_status():
    """
    Get system health and status information.

    Returns:
    - Quota usage per provider
    - Cache statistics
    - Event channel and summarizer worker statistics
    - Database connectivity
    """
    start_time = time.perf_counter()
    services = current_app.config['SERVICES']

    db_ok = True
    try:
        with services.summary_store.session_factory() as session:
            session.execute(text('SELECT 1'))
    except SQLAlchemyError as e:
        db_ok = False
        logger.error(f'Database health check failed: {e}')

    workers = services.workers.stats if services.workers else {'running': False}
    channel_stats = getattr(services.channel, 'stats', {})

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'status': 'healthy' if (db_ok and workers.get('running')) else 'degraded',
        'database': {'connected': db_ok},
        'quota': {
            'flightaware': services.flight_limiter.stats,
            'openai': services.summary_limiter.stats,
        },
        'cache': services.flight_cache.stats,
        'events': channel_stats,
        'summarizer': workers,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })
