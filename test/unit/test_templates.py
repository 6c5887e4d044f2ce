#!/usr/bin/env python3
"""
Unit tests for template rendering and scaffold variables
"""

import unittest
import sys
import os
import tempfile
import shutil
from pathlib import Path

# Add src and fixtures directories to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../src'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../fixtures'))

from terragrunt_scaffold.errors import RenderError, VariableParseError
from terragrunt_scaffold.inputs import InputDescriptor
from terragrunt_scaffold.templates import (
    TemplateEngine,
    assemble_context,
    comment_lines,
    parse_vars,
    write_default_template,
)
from sample_modules import CUSTOM_TEMPLATE, CUSTOM_TEMPLATE_CONFIG, write_module


class TestParseVars(unittest.TestCase):
    """Test user variable parsing"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_pairs_are_parsed_as_yaml(self):
        variables = parse_vars(['Name=web', 'Count=3', 'Enabled=true', 'Url=a=b', 'Empty='])

        self.assertEqual(variables, {
            'Name': 'web',
            'Count': 3,
            'Enabled': True,
            'Url': 'a=b',
            'Empty': ''
        })

    def test_pairs_override_files(self):
        var_file = Path(self.temp_dir) / 'vars.yml'
        var_file.write_text('Name: from-file\nRegion: eu-west-1\n')

        variables = parse_vars(['Name=from-cli'], [str(var_file)])

        self.assertEqual(variables, {'Name': 'from-cli', 'Region': 'eu-west-1'})

    def test_invalid_pair(self):
        with self.assertRaises(VariableParseError):
            parse_vars(['novalue'])
        with self.assertRaises(VariableParseError):
            parse_vars(['=value'])

    def test_missing_file(self):
        with self.assertRaises(VariableParseError):
            parse_vars([], [os.path.join(self.temp_dir, 'missing.yml')])

    def test_file_must_be_mapping(self):
        var_file = Path(self.temp_dir) / 'list.yml'
        var_file.write_text('- a\n- b\n')

        with self.assertRaises(VariableParseError):
            parse_vars([], [str(var_file)])


class TestAssembleContext(unittest.TestCase):
    """Test scaffold context assembly"""

    def test_system_variables_win(self):
        required = [InputDescriptor('a', 'd', 'string')]
        optional = [InputDescriptor('b', 'd', 'string', '"x"')]

        context = assemble_context({'sourceUrl': 'user', 'Other': 1}, required, optional, 'git::https://h/o/r')

        self.assertEqual(context['sourceUrl'], 'git::https://h/o/r')
        self.assertEqual(context['parsedRequiredInputs'], required)
        self.assertEqual(context['parsedOptionalInputs'], optional)
        self.assertEqual(context['Other'], 1)

    def test_user_variables_are_not_mutated(self):
        user_vars = {'Other': 1}
        assemble_context(user_vars, [], [], 'src')
        self.assertEqual(user_vars, {'Other': 1})


class TestCommentLines(unittest.TestCase):

    def test_multiline(self):
        self.assertEqual(comment_lines('first\nsecond'), 'first\n  # second')


class TestTemplateEngine(unittest.TestCase):
    """Test the TemplateEngine class"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.template_dir = os.path.join(self.temp_dir, 'template')
        self.output_dir = os.path.join(self.temp_dir, 'output')

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_default_template(self):
        write_default_template(self.template_dir)
        engine = TemplateEngine()
        context = assemble_context(
            {},
            [InputDescriptor('instance_count', 'No description for instance_count', 'number')],
            [InputDescriptor('region', 'AWS region\nused for all resources', 'string', '"us-east-1"')],
            'git::https://github.com/org/repo//modules/x?ref=v1.2.3'
        )

        files = engine.render(self.template_dir, self.output_dir, context)

        self.assertEqual([path.name for path in files], ['terragrunt.hcl'])
        content = files[0].read_text()
        self.assertIn('source = "git::https://github.com/org/repo//modules/x?ref=v1.2.3"', content)
        self.assertIn('  instance_count = null  # TODO: fill in value', content)
        self.assertIn('  # region = "us-east-1"', content)
        self.assertIn('  # Description: AWS region\n  # used for all resources', content)
        self.assertIn('  # Type: number', content)
        self.assertFalse((Path(self.output_dir) / 'scaffold.yml').exists())

    def test_template_defaults_and_overrides(self):
        write_module(self.template_dir, {
            'scaffold.yml': CUSTOM_TEMPLATE_CONFIG,
            'terragrunt.hcl': CUSTOM_TEMPLATE,
        })
        engine = TemplateEngine()

        default_output = engine.render(self.template_dir, self.output_dir,
                                       assemble_context({}, [InputDescriptor('a', 'd', 't')], [], 'src'))
        self.assertTrue(default_output[0].read_text().startswith('# dev\n'))
        self.assertIn('# required: a', default_output[0].read_text())

        override_output = engine.render(self.template_dir, self.output_dir,
                                        assemble_context({'Environment': 'prod'}, [], [], 'src'))
        self.assertTrue(override_output[0].read_text().startswith('# prod\n'))

    def test_paths_are_rendered(self):
        write_module(self.template_dir, {
            'scaffold.yml': 'variables: []\n',
            '{{ Environment }}/terragrunt.hcl': 'env = "{{ Environment }}"\n',
        })

        files = TemplateEngine().render(self.template_dir, self.output_dir, {'Environment': 'stage'})

        self.assertEqual(files, [Path(self.output_dir) / 'stage' / 'terragrunt.hcl'])
        self.assertEqual(files[0].read_text(), 'env = "stage"\n')

    def test_missing_key_policies(self):
        write_module(self.template_dir, {
            'scaffold.yml': 'variables: []\n',
            'out.txt': 'value={{ Missing }}\n',
        })

        files = TemplateEngine(missing_key_policy='invalid').render(self.template_dir, self.output_dir, {})
        self.assertEqual(files[0].read_text(), 'value=\n')

        with self.assertRaises(RenderError):
            TemplateEngine(missing_key_policy='error').render(self.template_dir, self.output_dir, {})

    def test_missing_config_policies(self):
        write_module(self.template_dir, {'out.txt': 'static\n'})

        with self.assertRaises(RenderError):
            TemplateEngine(missing_config_policy='exit').render(self.template_dir, self.output_dir, {})

        files = TemplateEngine(missing_config_policy='ignore').render(self.template_dir, self.output_dir, {})
        self.assertEqual(files[0].read_text(), 'static\n')

    def test_syntax_error(self):
        write_module(self.template_dir, {'scaffold.yml': '', 'bad.txt': '{% for x in %}'})

        with self.assertRaises(RenderError):
            TemplateEngine().render(self.template_dir, self.output_dir, {})

    def test_binary_files_are_copied(self):
        write_module(self.template_dir, {'scaffold.yml': ''})
        (Path(self.template_dir) / 'logo.bin').write_bytes(b'\xff\xfe\x00\x01')

        files = TemplateEngine().render(self.template_dir, self.output_dir, {})

        self.assertEqual(files[0].read_bytes(), b'\xff\xfe\x00\x01')

    def test_missing_template_folder(self):
        with self.assertRaises(RenderError):
            TemplateEngine().render(os.path.join(self.temp_dir, 'missing'), self.output_dir, {})

    def test_unknown_policy(self):
        with self.assertRaises(ValueError):
            TemplateEngine(missing_key_policy='zero')


if __name__ == '__main__':
    unittest.main()
