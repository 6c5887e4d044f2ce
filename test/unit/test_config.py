#!/usr/bin/env python3
"""
Unit tests for configuration management
"""

import unittest
import sys
import os
import json
import tempfile
import shutil
from pathlib import Path
from unittest.mock import patch

import yaml

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../src'))

from terragrunt_scaffold.config import ConfigManager, ToolConfig, DEFAULT_CONFIG_TEMPLATE
from terragrunt_scaffold.errors import ConfigurationError


class TestConfigManager(unittest.TestCase):
    """Test the ConfigManager class"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.manager = ConfigManager()
        self.env = patch.dict(os.environ, {}, clear=True)
        self.env.start()

    def tearDown(self):
        self.env.stop()
        shutil.rmtree(self.temp_dir)

    def write_config(self, name, content):
        path = Path(self.temp_dir) / name
        path.write_text(content)
        return str(path)

    def test_defaults(self):
        with patch.object(ConfigManager, 'DEFAULT_LOCATIONS', []):
            config = self.manager.load_config()

        self.assertIsInstance(config, ToolConfig)
        self.assertTrue(config.release_lookup.enabled)
        self.assertEqual(config.release_lookup.token_env, 'GITHUB_OAUTH_TOKEN')
        self.assertEqual(config.formatting.command, ['terragrunt', 'hclfmt'])
        self.assertEqual(config.template.missing_key, 'invalid')
        self.assertEqual(config.scaffold.default_template_dir, '.scaffold')

    def test_default_template_is_valid(self):
        config_file = self.write_config('config.yaml', DEFAULT_CONFIG_TEMPLATE)

        config = self.manager.load_config(config_file=config_file)

        self.assertEqual(config.fetch.timeout, 300)
        self.assertIn(f"file:{config_file}", self.manager.get_config_summary()['sources'])

    def test_yaml_file_is_merged(self):
        config_file = self.write_config('config.yaml', yaml.dump({
            'scaffold': {'variables': {'SourceUrlType': 'git-ssh'}},
            'formatting': {'enabled': False},
        }))

        config = self.manager.load_config(config_file=config_file)

        self.assertEqual(config.scaffold.variables, {'SourceUrlType': 'git-ssh'})
        self.assertFalse(config.formatting.enabled)
        self.assertEqual(config.formatting.timeout, 120)

    def test_json_file(self):
        config_file = self.write_config('config.json', json.dumps({'fetch': {'git_command': '/usr/bin/git'}}))

        config = self.manager.load_config(config_file=config_file)

        self.assertEqual(config.fetch.git_command, '/usr/bin/git')

    def test_environment_overrides_file(self):
        config_file = self.write_config('config.yaml', 'logging:\n  level: ERROR\n')
        os.environ['TG_SCAFFOLD_LOG_LEVEL'] = 'debug'
        os.environ['TG_SCAFFOLD_NO_FORMAT'] = 'true'

        config = self.manager.load_config(config_file=config_file)

        self.assertEqual(config.logging.level, 'DEBUG')
        self.assertFalse(config.formatting.enabled)

    def test_cli_overrides_environment(self):
        os.environ['TG_SCAFFOLD_LOG_LEVEL'] = 'ERROR'

        with patch.object(ConfigManager, 'DEFAULT_LOCATIONS', []):
            config = self.manager.load_config(cli_args={
                'verbose': True,
                'no_release_lookup': True,
                'no_format': True,
            })

        self.assertEqual(config.logging.level, 'DEBUG')
        self.assertFalse(config.release_lookup.enabled)
        self.assertFalse(config.formatting.enabled)

    def test_missing_key_policy_comes_from_file(self):
        config_file = self.write_config('config.yaml', 'template:\n  missing_key: error\n')

        config = self.manager.load_config(config_file=config_file, cli_args={'missing_key': 'invalid'})

        self.assertEqual(config.template.missing_key, 'error')
        self.assertNotIn('cli_args', self.manager.get_config_summary()['sources'])

    def test_unknown_key_is_rejected(self):
        config_file = self.write_config('config.yaml', 'discovery:\n  regions: [us-east-1]\n')

        with self.assertRaises(ConfigurationError):
            self.manager.load_config(config_file=config_file)

    def test_invalid_value_is_rejected(self):
        config_file = self.write_config('config.yaml', 'template:\n  missing_key: zero\n')

        with self.assertRaises(ConfigurationError):
            self.manager.load_config(config_file=config_file)

    def test_missing_file(self):
        with self.assertRaises(ConfigurationError):
            self.manager.load_config(config_file=os.path.join(self.temp_dir, 'missing.yaml'))

    def test_unsupported_format(self):
        config_file = self.write_config('config.toml', 'a = 1')

        with self.assertRaises(ConfigurationError):
            self.manager.load_config(config_file=config_file)

    def test_release_token(self):
        with patch.object(ConfigManager, 'DEFAULT_LOCATIONS', []):
            self.manager.load_config()
        self.assertIsNone(self.manager.get_release_token())

        os.environ['GITHUB_OAUTH_TOKEN'] = 'secret'
        self.assertEqual(self.manager.get_release_token(), 'secret')


if __name__ == '__main__':
    unittest.main()
