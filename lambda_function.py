"""AWS Lambda handler for the event dashboard sync."""
import json
import logging
import time
from typing import Dict, Any

from clients.ticketing_gateway import TicketingGateway
from clients.woocommerce_client import WooCommerceClient
from clients.wordpress_client import WordPressClient
from processor.errors import ConfigurationError
from processor.event_processor import EventProcessor
from processor.order_reconciler import OrderReconciler
from storage.cache_store import CacheStore
from sync.auto_sync import RecurringSync
from sync.config import SyncConfig
from sync.orchestrator import BUSY_MESSAGE, SyncOrchestrator
from sync.scheduler import SyncScheduler


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def build_orchestrator(config: SyncConfig) -> SyncOrchestrator:
    """Wire the API clients, cache store and sync components for one deployment."""
    wp_client = WordPressClient(
        config.wp_base_url,
        config.wp_username,
        config.wp_app_password,
        timeout=config.timeout_seconds
    )
    # WooCommerce authenticates with the consumer key pair instead of the app password
    wc_client = WordPressClient(
        config.wp_base_url,
        config.wc_consumer_key,
        config.wc_consumer_secret,
        timeout=config.timeout_seconds
    )

    store = CacheStore(table_name=config.table_name, default_capacity=config.default_capacity)
    return SyncOrchestrator(
        store=store,
        gateway=TicketingGateway(wp_client),
        reconciler=OrderReconciler(store, WooCommerceClient(wc_client)),
        scheduler=SyncScheduler(config.timezone),
        processor=EventProcessor(config.timezone),
        relevant_days_back=config.relevant_days_back
    )


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for the event dashboard sync.

    Args:
        event: EventBridge event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode (200 synced, 409 busy, 500 failed)
        and a JSON body with message and statistics
    """
    start_time = time.time()

    try:
        config = SyncConfig.from_env()
    except ConfigurationError as e:
        setup_logging()
        logging.getLogger(__name__).error(f"Invalid configuration: {str(e)}")
        return _response(500, {
            'message': 'Invalid configuration',
            'error': str(e),
            'error_type': type(e).__name__
        })

    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    logger.info(
        "Lambda execution started",
        extra={
            'table_name': config.table_name,
            'relevant_days_back': config.relevant_days_back,
            'timeout_seconds': config.timeout_seconds
        }
    )

    try:
        orchestrator = build_orchestrator(config)
        outcome = orchestrator.run_sync()
    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'message': 'Sync failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })

    duration = time.time() - start_time
    statistics = dict(outcome.statistics)
    statistics['duration_seconds'] = round(duration, 2)

    if outcome.success:
        status_code = 200
    elif outcome.message == BUSY_MESSAGE:
        status_code = 409
    else:
        status_code = 500

    logger.info(
        f"Lambda execution finished with status {status_code}",
        extra=statistics
    )

    return _response(status_code, {
        'message': outcome.message,
        'mode': outcome.mode.value if outcome.mode else None,
        'statistics': statistics
    })


def main() -> None:
    """Run the sync in-process on a recurring timer until interrupted."""
    config = SyncConfig.from_env()
    setup_logging(config.log_level)

    timer = RecurringSync(build_orchestrator(config), interval_seconds=config.sync_interval_seconds)
    timer.start()
    try:
        while timer.running:
            time.sleep(1)
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Interrupted, stopping recurring sync")
    finally:
        timer.stop()


if __name__ == '__main__':
    main()
