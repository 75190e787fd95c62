"""Runtime configuration read from environment variables."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from processor.errors import ConfigurationError


@dataclass
class SyncConfig:
    """Settings for one sync deployment."""
    table_name: str
    log_level: str
    timeout_seconds: int
    wp_base_url: str
    wp_username: str
    wp_app_password: str
    wc_consumer_key: str
    wc_consumer_secret: str
    timezone: str = 'Europe/Bucharest'
    default_capacity: int = 36
    relevant_days_back: int = 90
    sync_interval_seconds: int = 300

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'SyncConfig':
        """
        Build the configuration from environment variables.

        Raises:
            ConfigurationError: If ticketing or WooCommerce credentials are missing,
                or a numeric setting is not an integer
        """
        env = os.environ if environ is None else environ

        missing = [
            name for name in (
                'WP_BASE_URL',
                'WP_USERNAME',
                'WP_APP_PASSWORD',
                'WC_CONSUMER_KEY',
                'WC_CONSUMER_SECRET',
            )
            if not env.get(name)
        ]
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

        try:
            return cls(
                table_name=env.get('TABLE_NAME', 'event-dashboard-cache'),
                log_level=env.get('LOG_LEVEL', 'INFO'),
                timeout_seconds=int(env.get('TIMEOUT_SECONDS', '30')),
                wp_base_url=env['WP_BASE_URL'],
                wp_username=env['WP_USERNAME'],
                wp_app_password=env['WP_APP_PASSWORD'],
                wc_consumer_key=env['WC_CONSUMER_KEY'],
                wc_consumer_secret=env['WC_CONSUMER_SECRET'],
                timezone=env.get('SYNC_TIMEZONE', 'Europe/Bucharest'),
                default_capacity=int(env.get('DEFAULT_CAPACITY', '36')),
                relevant_days_back=int(env.get('RELEVANT_DAYS_BACK', '90')),
                sync_interval_seconds=int(env.get('SYNC_INTERVAL_SECONDS', '300'))
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric configuration value: {e}") from e
