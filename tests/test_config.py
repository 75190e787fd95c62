"""Unit tests for SyncConfig."""
import pytest

from processor.errors import ConfigurationError
from sync.config import SyncConfig

REQUIRED = {
    'WP_BASE_URL': 'https://shop.example.com',
    'WP_USERNAME': 'admin',
    'WP_APP_PASSWORD': 'app-pass',
    'WC_CONSUMER_KEY': 'ck_key',
    'WC_CONSUMER_SECRET': 'cs_secret',
}


def test_defaults():
    """Test optional settings fall back to their defaults."""
    config = SyncConfig.from_env(REQUIRED)

    assert config.table_name == 'event-dashboard-cache'
    assert config.log_level == 'INFO'
    assert config.timeout_seconds == 30
    assert config.timezone == 'Europe/Bucharest'
    assert config.default_capacity == 36
    assert config.relevant_days_back == 90
    assert config.sync_interval_seconds == 300


def test_overrides():
    """Test optional settings are read from the environment."""
    env = dict(REQUIRED, TABLE_NAME='custom', RELEVANT_DAYS_BACK='30', SYNC_TIMEZONE='UTC')

    config = SyncConfig.from_env(env)

    assert config.table_name == 'custom'
    assert config.relevant_days_back == 30
    assert config.timezone == 'UTC'


def test_missing_credentials():
    """Test every missing credential is named in the error."""
    env = dict(REQUIRED)
    del env['WC_CONSUMER_SECRET']
    env['WP_APP_PASSWORD'] = ''

    with pytest.raises(ConfigurationError) as exc_info:
        SyncConfig.from_env(env)

    assert 'WP_APP_PASSWORD' in str(exc_info.value)
    assert 'WC_CONSUMER_SECRET' in str(exc_info.value)


def test_invalid_number():
    """Test non-numeric values are reported as configuration errors."""
    with pytest.raises(ConfigurationError):
        SyncConfig.from_env(dict(REQUIRED, TIMEOUT_SECONDS='soon'))
