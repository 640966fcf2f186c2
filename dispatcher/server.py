"""
HTTP API server for the order dispatcher.

This module provides a Flask-based REST API that submits orders, manages
the bot pool, and exposes the dispatcher state for display.
"""

from flask import Flask, request, jsonify
from datetime import datetime
from typing import Dict, Any, Optional
import logging

from .types import Job, Worker, DispatchPolicy, RemovalPolicy, PolicyViolation
from .clock import ThreadingClock
from .dispatcher import Dispatcher


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='[%(asctime)s] %(levelname)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def job_to_dict(job: Job) -> Dict[str, Any]:
    return {
        'job_id': job.job_id,
        'priority': job.priority.value,
        'status': job.status.value,
        'submitted_at': job.submitted_at,
        'assigned_worker_id': job.assigned_worker_id,
        'completed_at': job.completed_at
    }


def worker_to_dict(worker: Worker) -> Dict[str, Any]:
    return {
        'worker_id': worker.worker_id,
        'status': worker.status.value,
        'current_job_id': worker.current_job_id
    }


def create_app(
    config: Dict[str, Any] = None,
    dispatcher: Optional[Dispatcher] = None
) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config: Optional configuration dictionary
        dispatcher: Optional dispatcher to serve; built on a
            ThreadingClock from the configuration when omitted

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)

    # Default configuration
    app.config.update({
        'TESTING': False,
        'PROCESSING_DURATION': 10.0,
        'REMOVAL_POLICY': 'requeue',
        'INITIAL_WORKERS': 0,
    })

    # Apply custom config
    if config:
        app.config.update(config)

    if dispatcher is None:
        policy = DispatchPolicy(
            processing_duration=app.config['PROCESSING_DURATION'],
            removal=RemovalPolicy(app.config['REMOVAL_POLICY'])
        )
        dispatcher = Dispatcher(ThreadingClock(), policy)
        for _ in range(app.config['INITIAL_WORKERS']):
            dispatcher.add_worker()

    app.extensions['dispatcher'] = dispatcher

    @app.route('/health', methods=['GET'])
    def health():
        """Health check endpoint."""
        return jsonify({
            'status': 'healthy',
            'service': 'order-dispatcher',
            'version': '0.1.0',
            'timestamp': datetime.utcnow().isoformat()
        })

    @app.route('/orders', methods=['POST'])
    def submit_order():
        """
        Submit an order.

        Request body:
        {
            "priority": "high"
        }

        Response:
        {
            "job_id": "VIP-1",
            "status": "assigned"
        }
        """
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            logger.error(f"Invalid order data: {data!r}")
            return jsonify({'error': 'Invalid order data: expected a JSON object'}), 400

        try:
            job_id = dispatcher.submit_job(data.get('priority', 'normal'))
        except ValueError as e:
            logger.error(f"Invalid order data: {e}")
            return jsonify({'error': f'Invalid order data: {e}'}), 400

        job = dispatcher.get_job(job_id)
        return jsonify({'job_id': job_id, 'status': job.status.value}), 201

    @app.route('/orders', methods=['GET'])
    def list_orders():
        """List orders grouped by lifecycle state."""
        return jsonify({
            'pending': [job_to_dict(j) for j in dispatcher.list_pending()],
            'processing': [job_to_dict(j) for j in dispatcher.list_processing()],
            'completed': [job_to_dict(j) for j in dispatcher.list_completed()]
        })

    @app.route('/orders/<job_id>', methods=['GET'])
    def get_order(job_id):
        """Get a single order."""
        job = dispatcher.get_job(job_id)
        if job is None:
            return jsonify({'error': f'Unknown order {job_id}'}), 404
        return jsonify(job_to_dict(job))

    @app.route('/bots', methods=['POST'])
    def add_bot():
        """Add a bot to the pool."""
        worker_id = dispatcher.add_worker()
        return jsonify({'worker_id': worker_id}), 201

    @app.route('/bots', methods=['DELETE'])
    def remove_bot():
        """
        Remove the newest bot.

        Responds with "worker_id": null when the pool is already empty,
        and 409 when the removal policy refuses the request.
        """
        try:
            worker_id = dispatcher.remove_worker()
        except PolicyViolation as e:
            logger.warning(f"Bot removal refused: {e}")
            return jsonify({'error': str(e)}), 409
        return jsonify({'worker_id': worker_id})

    @app.route('/bots', methods=['GET'])
    def list_bots():
        """List active bots."""
        return jsonify({
            'bots': [worker_to_dict(w) for w in dispatcher.list_workers()]
        })

    @app.route('/state', methods=['GET'])
    def get_state():
        """Full snapshot for display."""
        return jsonify({
            'pending': [job_to_dict(j) for j in dispatcher.list_pending()],
            'processing': [job_to_dict(j) for j in dispatcher.list_processing()],
            'completed': [job_to_dict(j) for j in dispatcher.list_completed()],
            'bots': [worker_to_dict(w) for w in dispatcher.list_workers()],
            'metrics': dispatcher.metrics()
        })

    @app.route('/policy', methods=['GET'])
    def get_policy():
        """Get current dispatch policy."""
        policy = dispatcher.policy
        return jsonify({
            'processing_duration': policy.processing_duration,
            'removal': policy.removal.value,
            'prefixes': {
                'normal': policy.normal_prefix,
                'high': policy.high_prefix
            }
        })

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 errors."""
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        logger.error(f"Internal server error: {error}")
        return jsonify({'error': 'Internal server error'}), 500

    return app


def run_server(host: str = '0.0.0.0', port: int = 8001, debug: bool = False):
    """
    Run the dispatcher HTTP server.

    Args:
        host: Host to bind to
        port: Port to listen on
        debug: Enable debug mode
    """
    logger.info("=" * 50)
    logger.info("  Order Dispatcher Server (Python)")
    logger.info("=" * 50)
    logger.info("")
    logger.info(f"Starting server on {host}:{port}")
    logger.info("")
    logger.info("Endpoints:")
    logger.info(f"  POST   {host}:{port}/orders - Submit an order")
    logger.info(f"  GET    {host}:{port}/orders - List orders")
    logger.info(f"  POST   {host}:{port}/bots   - Add a bot")
    logger.info(f"  DELETE {host}:{port}/bots   - Remove a bot")
    logger.info(f"  GET    {host}:{port}/state  - Full state")
    logger.info(f"  GET    {host}:{port}/health - Health check")
    logger.info(f"  GET    {host}:{port}/policy - Get policy")
    logger.info("")

    app = create_app()
    app.run(host=host, port=port, debug=debug, use_reloader=False)


if __name__ == '__main__':
    run_server()
