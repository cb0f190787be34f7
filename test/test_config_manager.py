"""
Unit tests for ConfigManager.
"""

import os
from pathlib import Path

import pytest

from tunebox.config_manager import CONFIG_GROUPS, CONFIG_SCHEMA, ConfigManager


@pytest.fixture
def config_manager(temp_db):
    """Create a ConfigManager instance for testing."""
    return ConfigManager(temp_db)


def test_get_default(config_manager):
    """Test getting default configuration values."""
    assert config_manager.get('unknown_artist') == 'Unknown Artist'
    assert config_manager.get('max_upload_mb') == '50'
    assert config_manager.get('default_volume') == '0.7'


def test_set_and_get(config_manager):
    """Test setting and getting configuration values."""
    config_manager.set('unknown_artist', 'Anonymous')
    assert config_manager.get('unknown_artist') == 'Anonymous'

    config_manager.set('test_key', 'test_value')
    assert config_manager.get('test_key') == 'test_value'


def test_get_int(config_manager):
    """Test getting integer configuration values."""
    assert config_manager.get_int('max_upload_mb') == 50

    config_manager.set('test_int', '42')
    assert config_manager.get_int('test_int', default=0) == 42

    # Test with default
    assert config_manager.get_int('nonexistent', default=10) == 10

    # Test with invalid value
    config_manager.set('invalid_int', 'not_a_number')
    assert config_manager.get_int('invalid_int', default=0) == 0


def test_get_float(config_manager):
    """Test getting float configuration values."""
    assert config_manager.get_float('default_volume') == 0.7

    # Test with default
    assert config_manager.get_float('nonexistent', default=1.0) == 1.0

    # Test with invalid value
    config_manager.set('invalid_float', 'not_a_number')
    assert config_manager.get_float('invalid_float', default=0.0) == 0.0


def test_get_bool(config_manager):
    """Test getting boolean configuration values."""
    config_manager.set('test_bool', 'true')
    assert config_manager.get_bool('test_bool') is True

    config_manager.set('test_bool', '0')
    assert config_manager.get_bool('test_bool') is False

    # Test with default
    assert config_manager.get_bool('nonexistent', default=True) is True


def test_get_list(config_manager):
    """Comma-separated values are split and trimmed."""
    assert '.mp3' in config_manager.get_list('allowed_extensions')

    config_manager.set('allowed_extensions', ' .mp3 , .ogg,, ')
    assert config_manager.get_list('allowed_extensions') == ['.mp3', '.ogg']
    assert config_manager.get_list('nonexistent') == []


def test_upload_directory_is_created(config_manager, upload_dir):
    target = os.path.join(upload_dir, 'nested', 'uploads')
    config_manager.set('upload_directory', target)

    path = config_manager.get_upload_directory()
    assert path == Path(target)
    assert path.is_dir()


def test_get_all(config_manager):
    """Test getting all configuration values."""
    config_manager.set('unknown_artist', 'Nobody')
    config_manager.set('custom_key', 'custom_value')

    all_config = config_manager.get_all()

    # Should include defaults
    assert 'upload_directory' in all_config
    assert 'allowed_extensions' in all_config

    # Should include custom values
    assert all_config['unknown_artist'] == 'Nobody'
    assert all_config['custom_key'] == 'custom_value'


def test_full_config(config_manager):
    """Schema keys all belong to a defined group."""
    full = config_manager.get_full_config()

    assert set(full) == {'values', 'schema', 'groups'}
    assert set(full['schema']) == set(CONFIG_SCHEMA)
    for key_def in full['schema'].values():
        assert key_def['group'] in CONFIG_GROUPS


def test_config_persistence(temp_db):
    """Test that configuration persists across ConfigManager instances."""
    cm1 = ConfigManager(temp_db)
    cm1.set('max_upload_mb', '10')

    # Create new ConfigManager with same database
    cm2 = ConfigManager(temp_db)
    assert cm2.get_int('max_upload_mb') == 10
