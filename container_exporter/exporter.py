"""
Main Container Stats Exporter application.

This module implements the HTTP server and the background collection thread
that expose container and filesystem statistics in Prometheus format.
"""

import argparse
import logging
import signal
import sys
import threading
import time
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, Response
from prometheus_client import CONTENT_TYPE_LATEST

from container_exporter import __version__
from container_exporter.config import ExporterConfig, load_config
from container_exporter.docker_client import DockerStatsCollector
from container_exporter.errors import FatalError
from container_exporter.metrics import MetricsRegistry
from container_exporter.reconciler import Reconciler

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# /health reports a stall once no cycle has completed for this many intervals
STALL_INTERVALS = 3
MIN_STALL_SECONDS = 60.0


def setup_logging(log_level: str = 'INFO'):
    """Configure root logging to stdout."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # Docker SDK request logging is noisy at INFO
    logging.getLogger('urllib3').setLevel(logging.WARNING)


class ContainerMetricsExporter:
    """Main exporter class that collects and exposes container metrics."""

    def __init__(self, config: ExporterConfig, collector: Optional[DockerStatsCollector] = None,
                 registry: Optional[MetricsRegistry] = None):
        """
        Initialize the exporter.

        Args:
            config: Exporter configuration
            collector: Optional pre-built Docker collector; created on start() if None
            registry: Optional metrics registry; a fresh one is created if None
        """
        self.config = config
        self.collector = collector
        self.registry = registry or MetricsRegistry(schema=config.label_schema)
        self.reconciler: Optional[Reconciler] = None
        self.collection_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        # Flask app for HTTP server
        self.app = Flask(__name__)
        self._setup_routes()

    def _setup_routes(self):
        """Setup Flask routes."""

        @self.app.route('/metrics')
        def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(self.registry.export(), mimetype=CONTENT_TYPE_LATEST)

        @self.app.route('/health')
        def health():
            """Health check endpoint."""
            if self.collector is None:
                return {'status': 'initializing'}, 503
            if not self.collector.ping():
                return {'status': 'unhealthy', 'docker': 'disconnected'}, 503
            body = {'status': 'healthy', 'docker': 'connected'}
            if self.reconciler is not None:
                body['cycles'] = self.reconciler.cycle_count
                body['last_cycle_at'] = self.reconciler.last_cycle_at
                if self._collection_stalled():
                    body['status'] = 'stalled'
                    return body, 503
            return body, 200

        @self.app.route('/')
        def root():
            """Root endpoint with information."""
            return {
                'name': 'Container Stats Exporter',
                'version': __version__,
                'base_path': self.config.base_path,
                'label_schema': self.config.label_schema,
                'endpoints': {
                    '/metrics': 'Prometheus metrics',
                    '/health': 'Health check'
                }
            }

    def _collection_stalled(self) -> bool:
        """True when the last completed cycle is older than the stall threshold."""
        last_cycle_at = self.reconciler.last_cycle_at
        if last_cycle_at is None:
            return False
        threshold = max(STALL_INTERVALS * self.config.poll_interval, MIN_STALL_SECONDS)
        return time.time() - last_cycle_at > threshold

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        self.stop()
        sys.exit(0)

    def start_collection(self):
        """
        Connect to Docker and start the collection thread.

        Raises:
            ClientInitError: if the Docker client cannot be created
        """
        if self.collector is None:
            self.collector = DockerStatsCollector(
                socket_path=self.config.socket_path,
                timeout=self.config.api_timeout
            )

        self.reconciler = Reconciler(
            self.collector,
            self.registry,
            base_path=self.config.base_path,
            schema=self.config.label_schema,
            track_info=self.config.track_info,
            interval=self.config.poll_interval,
        )

        self._stop_event.clear()
        self.collection_thread = threading.Thread(
            target=self.reconciler.run_forever,
            args=(self._stop_event,),
            daemon=True
        )
        self.collection_thread.start()
        logger.info("Metrics collection thread started")

    def start(self):
        """Start collection and serve HTTP until shutdown."""
        logger.info("Starting Container Stats Exporter...")
        logger.info(f"Poll interval: {self.config.poll_interval} seconds")
        logger.info(f"Base path: {self.config.base_path}")
        logger.info(f"HTTP port: {self.config.port}")

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.start_collection()

        logger.info(f"Starting HTTP server on port {self.config.port}...")
        self.app.run(host=self.config.host, port=self.config.port, threaded=True)

    def stop(self):
        """Stop the exporter."""
        logger.info("Stopping Container Stats Exporter...")
        self._stop_event.set()

        if self.collection_thread:
            self.collection_thread.join(timeout=5)
            self.collection_thread = None

        if self.collector:
            self.collector.close()

        logger.info("Exporter stopped")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export Docker container and filesystem statistics for Prometheus"
    )
    parser.add_argument(
        'basepath',
        nargs='?',
        default=None,
        help="Directory whose subdirectories are sampled for capacity (default: /)"
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point."""
    load_dotenv()
    args = parse_args(argv)

    try:
        config = load_config(args.basepath)
    except FatalError as e:
        setup_logging()
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    setup_logging(config.log_level)
    logger.info(f"Container Stats Exporter v{__version__}")
    logger.info(
        f"Configuration: poll_interval={config.poll_interval}s, port={config.port}, "
        f"label_schema={config.label_schema}, track_info={config.track_info}"
    )

    exporter = ContainerMetricsExporter(config)

    try:
        exporter.start()
    except FatalError as e:
        logger.error(f"Failed to start exporter: {e}")
        logger.error("Make sure the Docker socket is mounted and accessible")
        exporter.stop()
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
        exporter.stop()
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        exporter.stop()
        sys.exit(1)


if __name__ == '__main__':
    main()
