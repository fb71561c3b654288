"""
Tests for Configuration
=======================
"""

import json
from pathlib import Path

import pytest

from prosecheck.config import ProseCheckConfig, apply_options, load_config, parse_duration
from prosecheck.config_logging import ConfigurationError


@pytest.fixture
def config_file(tmp_path):
    def _write(data):
        path = tmp_path / "prosecheck.json"
        path.write_text(json.dumps(data), encoding='utf-8')
        return path
    return _write


class TestParseDuration:
    """Tests for parse_duration."""

    @pytest.mark.parametrize("value,expected", [
        (0.5, 0.5),
        (2, 2.0),
        ("300ms", 0.3),
        ("1.5s", 1.5),
        ("2m", 120.0),
        ("2min", 120.0),
        ("1s 500ms", 1.5),
        ("0.25", 0.25),
    ])
    def test_valid(self, value, expected):
        assert parse_duration(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", [None, False, ""])
    def test_disabled(self, value):
        assert parse_duration(value) is None

    @pytest.mark.parametrize("value", ["soon", "5 parsecs", -1, True])
    def test_invalid(self, value):
        with pytest.raises(ConfigurationError):
            parse_duration(value)


class TestApplyOptions:
    """Tests for apply_options."""

    def test_camel_case_keys(self):
        config = ProseCheckConfig()
        unknown = apply_options(config, {'chunkSize': '500', 'jarLocation': '/opt/lt.jar',
                                         'onChange': '200ms'})
        assert unknown == []
        assert config.chunk_size == 500
        assert config.jar_location == '/opt/lt.jar'
        assert config.on_change == pytest.approx(0.2)

    def test_unknown_keys_reported(self):
        config = ProseCheckConfig()
        assert apply_options(config, {'colour': 'blue', 'host': 'lt'}) == ['colour']
        assert config.host == 'lt'

    def test_word_lists(self):
        config = ProseCheckConfig()
        apply_options(config, {'dictionary': {'en': ['Typst', 'LanguageTool']},
                               'disabledChecks': {'de-DE': 'RULE_A, RULE_B'}})
        assert config.dictionary == {'en': ['Typst', 'LanguageTool']}
        assert config.disabled_checks == {'de-DE': ['RULE_A', 'RULE_B']}

    def test_invalid_value(self):
        with pytest.raises(ConfigurationError) as exc_info:
            apply_options(ProseCheckConfig(), {'chunk_size': 'large'})
        assert exc_info.value.code == 'CONFIG_ERROR'

    def test_word_lists_must_be_objects(self):
        with pytest.raises(ConfigurationError):
            apply_options(ProseCheckConfig(), {'dictionary': ['Typst']})


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self, tmp_path):
        config = load_config(options={}, environ={}, cwd=tmp_path)
        assert config.chunk_size == 1000
        assert config.on_change is None
        assert config.spellcheck is True

    def test_precedence(self, config_file, tmp_path):
        """Options beat environment, which beats the file."""
        path = config_file({'host': 'filehost', 'port': 8010, 'chunkSize': 400})
        environ = {'PROSECHECK_HOST': 'envhost', 'PROSECHECK_PORT': '8020'}
        config = load_config(path, options={'host': 'opthost'}, environ=environ, cwd=tmp_path)
        assert config.host == 'opthost'
        assert config.port == 8020
        assert config.chunk_size == 400

    def test_file_found_in_cwd(self, config_file, tmp_path):
        config_file({'languages': ['de-CH']})
        config = load_config(environ={}, cwd=tmp_path)
        assert config.languages == ['de-CH']
        assert config.default_language_tag() == 'de-CH'

    def test_invalid_env_ignored(self, tmp_path):
        config = load_config(environ={'PROSECHECK_CHUNK_SIZE': 'lots'}, cwd=tmp_path)
        assert config.chunk_size == 1000

    def test_broken_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding='utf-8')
        with pytest.raises(ConfigurationError):
            load_config(path, environ={}, cwd=tmp_path)

    def test_relative_paths_made_absolute(self, tmp_path):
        config = load_config(options={'main': 'doc/main.typ', 'jar_location': 'lt.jar'},
                             environ={}, cwd=tmp_path)
        assert config.main == str((tmp_path / 'doc' / 'main.typ').resolve())
        assert Path(config.jar_location).is_absolute()

    def test_validation(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(options={'chunk_size': 100, 'lookback': 100}, environ={}, cwd=tmp_path)
        with pytest.raises(ConfigurationError):
            load_config(options={'log_format': 'xml'}, environ={}, cwd=tmp_path)


class TestProseCheckConfig:
    """Tests for ProseCheckConfig helpers."""

    def test_backend_config_remote(self):
        backend = ProseCheckConfig(host='localhost', port=8081, request_timeout=5).backend_config()
        assert backend.kind == 'remote'
        assert backend.port == 8081
        assert backend.request_timeout == 5

    def test_backend_config_missing(self):
        with pytest.raises(ConfigurationError):
            ProseCheckConfig().backend_config()

    def test_copy_is_independent(self):
        config = ProseCheckConfig(dictionary={'en': ['Typst']})
        copy = config.copy()
        copy.dictionary['en'].append('Other')
        assert config.dictionary == {'en': ['Typst']}
        assert copy == ProseCheckConfig(dictionary={'en': ['Typst', 'Other']})


class TestDotNotation:
    """Tests for ProseCheckConfig.get and ProseCheckConfig.set."""

    def test_get_and_set(self):
        config = ProseCheckConfig()
        config.set('chunk_size', '500')
        config.set('dictionary.de', 'Typst, Markup')
        config.set('rules.citation', 'drop')
        assert config.get('chunk_size') == 500
        assert config.get('dictionary.de') == ['Typst', 'Markup']
        assert config.get('rules') == {'citation': 'drop'}
        assert config.get('dictionary.fr', 'none') == 'none'
        assert config.get('copy', 'none') == 'none'

    def test_sub_key_keeps_siblings(self):
        config = ProseCheckConfig(dictionary={'en': ['Typst']})
        config.set('dictionary.de', ['Satz'])
        assert config.dictionary == {'en': ['Typst'], 'de': ['Satz']}

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError):
            ProseCheckConfig().set('colour', 'blue')

    def test_scalar_has_no_sub_keys(self):
        with pytest.raises(ConfigurationError):
            ProseCheckConfig().set('chunk_size.max', 5)
