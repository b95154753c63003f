"""
FlightBrief Flask Application.

Main entry point for the web application. Initializes:
- Database schema
- Quota limiters for both providers
- Flight cache, event channel and summarizer workers
- API routes

Usage:
    python -m flightbrief.app

Or with gunicorn:
    gunicorn 'flightbrief.app:create_app()'
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from flask import Flask
from flask_cors import CORS

from flightbrief.api import flights_bp, metrics_bp
from flightbrief.cache import CacheOrchestrator, MemoryCacheStore
from flightbrief.config import AppConfig, config
from flightbrief.events import QueueEventChannel
from flightbrief.ingestion import FlightAwareClient
from flightbrief.models import build_engine, build_session_factory, init_db
from flightbrief.quota import MemoryQuotaStore, QuotaLimiter
from flightbrief.services import (
    BackoffPolicy,
    OpenAIClient,
    RetryingSummarizer,
    SummarizerWorkerPool,
    SummaryStore,
)

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the API layer talks to."""
    flight_cache: CacheOrchestrator
    summary_store: SummaryStore
    flight_limiter: QuotaLimiter
    summary_limiter: QuotaLimiter
    channel: QueueEventChannel
    workers: Optional[SummarizerWorkerPool] = None


def build_services(cfg: AppConfig = config) -> Services:
    """Wire the pipeline from configuration."""
    engine = build_engine(cfg.database.url, echo=cfg.debug)
    init_db(engine)
    summary_store = SummaryStore(build_session_factory(engine))

    # One counter store, one namespace per provider
    quota_store = MemoryQuotaStore()
    flight_limiter = QuotaLimiter.from_config('flightaware', cfg.flightaware_quota, store=quota_store)
    summary_limiter = QuotaLimiter.from_config('openai', cfg.openai_quota, store=quota_store)

    channel = QueueEventChannel(
        maxsize=cfg.events.queue_size,
        max_deliveries=cfg.events.max_deliveries,
    )

    flight_cache = CacheOrchestrator(
        client=FlightAwareClient.from_config(cfg),
        limiter=flight_limiter,
        channel=channel,
        store=MemoryCacheStore(max_entries=cfg.cache.max_entries),
        ttl_seconds=cfg.cache.ttl_seconds,
    )

    summarizer = RetryingSummarizer(
        client=OpenAIClient.from_config(cfg),
        limiter=summary_limiter,
        store=summary_store,
        backoff=BackoffPolicy.from_config(cfg.retry),
    )
    workers = SummarizerWorkerPool(channel, summarizer, workers=cfg.events.workers)

    return Services(
        flight_cache=flight_cache,
        summary_store=summary_store,
        flight_limiter=flight_limiter,
        summary_limiter=summary_limiter,
        channel=channel,
        workers=workers,
    )


def create_app(start_workers: bool = True, services: Optional[Services] = None) -> Flask:
    """
    Application factory for Flask.

    Args:
        start_workers: Whether to start the background summarizer threads.
                       Set to False for testing.
        services: Pre-built services (tests); built from config if None.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)
    app.config['SECRET_KEY'] = config.secret_key

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    if services is None:
        logger.info('Initializing services...')
        services = build_services(config)
    app.config['SERVICES'] = services

    app.register_blueprint(flights_bp)
    app.register_blueprint(metrics_bp)

    if not config.openai.is_configured:
        logger.warning('OPENAI_API_KEY not set - summaries will not be generated')

    if start_workers and services.workers is not None:
        services.workers.start()

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok'}

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_development_server():
    """Run the development server."""
    app = create_app()

    port = int(os.environ.get('PORT', 5000))
    logger.info(f'Starting FlightBrief on http://localhost:{port}')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=config.debug,
        use_reloader=False,  # Reloader would start a second set of workers
    )


if __name__ == '__main__':
    run_development_server()
