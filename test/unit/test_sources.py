#!/usr/bin/env python3
"""
Unit tests for source locator resolution
"""

import unittest
import sys
import os
import tempfile
import shutil
from unittest.mock import Mock

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../src'))

from terragrunt_scaffold.errors import LocatorError, ReleaseLookupError
from terragrunt_scaffold.sources import (
    SOURCE_URL_TYPE_HTTPS,
    SOURCE_URL_TYPE_SSH,
    SOURCE_URL_TYPE_UNDETERMINED,
    SourceResolver,
    describe_locator,
    normalize_locator,
    parse_git_url,
    repository_coordinates,
    rewrite_source_url,
    split_subdir,
)


class TestSplitSubdir(unittest.TestCase):
    """Test splitting of // subdirectories"""

    def test_url_with_subdir(self):
        self.assertEqual(split_subdir('https://github.com/org/repo//modules/x'),
                         ('https://github.com/org/repo', 'modules/x'))

    def test_query_moves_back_to_source(self):
        self.assertEqual(split_subdir('https://github.com/org/repo//modules/x?ref=v1'),
                         ('https://github.com/org/repo?ref=v1', 'modules/x'))

    def test_no_subdir(self):
        self.assertEqual(split_subdir('https://github.com/org/repo'), ('https://github.com/org/repo', ''))


class TestNormalizeLocator(unittest.TestCase):
    """Test locator normalization"""

    def test_forced_git_getter_round_trips(self):
        raw = 'git::https://github.com/org/repo//modules/x'
        locator = normalize_locator(raw)

        self.assertEqual(locator.getter, 'git')
        self.assertEqual(locator.host, 'github.com')
        self.assertEqual(locator.path, '/org/repo')
        self.assertEqual(locator.subdir, 'modules/x')
        self.assertEqual(locator.ref, '')
        self.assertEqual(str(locator), raw)

    def test_ref_is_read_from_query(self):
        locator = normalize_locator('git::https://github.com/org/repo.git?ref=v1.0.0')
        self.assertEqual(locator.ref, 'v1.0.0')

    def test_github_shorthand(self):
        locator = normalize_locator('github.com/org/repo/modules/x')
        self.assertEqual(str(locator), 'git::https://github.com/org/repo.git//modules/x')

    def test_scp_like_address(self):
        locator = normalize_locator('git@github.com:org/repo.git//modules/x?ref=v2')

        self.assertEqual(locator.scheme, 'ssh')
        self.assertEqual(locator.host, 'git@github.com')
        self.assertEqual(locator.hostname, 'github.com')
        self.assertEqual(locator.subdir, 'modules/x')
        self.assertEqual(locator.ref, 'v2')
        self.assertTrue(locator.is_git)

    def test_local_path(self):
        temp_dir = tempfile.mkdtemp()
        try:
            locator = normalize_locator('./modules/vpc', working_dir=temp_dir)
            self.assertTrue(locator.is_local)
            self.assertEqual(locator.path, os.path.join(os.path.abspath(temp_dir), 'modules', 'vpc'))
        finally:
            shutil.rmtree(temp_dir)

    def test_empty_locator(self):
        with self.assertRaises(LocatorError):
            normalize_locator('  ')

    def test_invalid_shorthand(self):
        with self.assertRaises(LocatorError):
            normalize_locator('github.com/org')

    def test_missing_host(self):
        with self.assertRaises(LocatorError):
            normalize_locator('https:///org/repo')

    def test_with_ref_keeps_other_parameters(self):
        locator = normalize_locator('git::https://github.com/org/repo//x?depth=1')
        self.assertEqual(str(locator.with_ref('v3')), 'git::https://github.com/org/repo//x?depth=1&ref=v3')


class TestRepositoryCoordinates(unittest.TestCase):
    """Test owner and repository extraction"""

    def test_coordinates(self):
        locator = normalize_locator('git::https://github.com/org/repo.git//modules/x')
        self.assertEqual(repository_coordinates(locator), ('github.com', 'org', 'repo'))

    def test_short_path(self):
        locator = normalize_locator('https://example.com/only')
        with self.assertRaises(ReleaseLookupError):
            repository_coordinates(locator)


class TestParseGitUrl(unittest.TestCase):
    """Test the git:: rewrite grammar"""

    def test_https(self):
        parts = parse_git_url('git::https://github.com/org/repo//modules/x?ref=v1')
        self.assertEqual(parts.scheme, 'https')
        self.assertEqual(parts.host, 'github.com')
        self.assertEqual(parts.path, '/org/repo//modules/x?ref=v1')
        self.assertEqual(parts.url_type, SOURCE_URL_TYPE_HTTPS)

    def test_ssh(self):
        parts = parse_git_url('git::ssh://git@github.com/org/repo')
        self.assertEqual(parts.url_type, SOURCE_URL_TYPE_SSH)

    def test_other_scheme(self):
        parts = parse_git_url('git::http://example.com/org/repo')
        self.assertEqual(parts.url_type, SOURCE_URL_TYPE_UNDETERMINED)

    def test_no_match(self):
        self.assertIsNone(parse_git_url('https://github.com/org/repo'))
        self.assertIsNone(parse_git_url('git::https://github.com'))


class TestRewriteSourceUrl(unittest.TestCase):
    """Test the HTTPS to SSH rewrite"""

    URL = 'git::https://github.com/org/repo//modules/x?ref=v1.2.3'

    def test_rewrite_to_ssh(self):
        self.assertEqual(rewrite_source_url(self.URL, {'SourceUrlType': 'git-ssh'}),
                         'git@github.com:org/repo//modules/x?ref=v1.2.3')

    def test_custom_ssh_user(self):
        variables = {'SourceUrlType': 'git-ssh', 'SourceGitSshUser': 'deploy'}
        self.assertEqual(rewrite_source_url(self.URL, variables),
                         'deploy@github.com:org/repo//modules/x?ref=v1.2.3')

    def test_https_is_default(self):
        self.assertEqual(rewrite_source_url(self.URL, {}), self.URL)
        self.assertEqual(rewrite_source_url(self.URL, {'SourceUrlType': 'git-https'}), self.URL)

    def test_ssh_locator_is_unchanged(self):
        url = 'git::ssh://git@github.com/org/repo'
        self.assertEqual(rewrite_source_url(url, {'SourceUrlType': 'git-ssh'}), url)

    def test_unmatched_locator_is_unchanged(self):
        with self.assertLogs('terragrunt_scaffold.sources', level='WARNING'):
            result = rewrite_source_url('file:///tmp/module', {'SourceUrlType': 'git-ssh'})
        self.assertEqual(result, 'file:///tmp/module')


class TestDescribeLocator(unittest.TestCase):

    def test_components(self):
        description = describe_locator('git::https://github.com/org/repo?ref=v1')
        self.assertEqual(description['getter'], 'git')
        self.assertEqual(description['scheme'], 'https')
        self.assertEqual(description['host'], 'github.com')
        self.assertEqual(description['query'], 'ref=v1')


class TestSourceResolver(unittest.TestCase):
    """Test the SourceResolver class"""

    def setUp(self):
        self.lookup = Mock()
        self.lookup.latest_tag.return_value = 'v1.2.3'

    def test_unversioned_locator_is_pinned(self):
        resolver = SourceResolver(release_lookup=self.lookup, credential='token')

        result = resolver.resolve('git::https://github.com/org/repo//modules/x')

        self.assertEqual(result, 'git::https://github.com/org/repo//modules/x?ref=v1.2.3')
        self.lookup.latest_tag.assert_called_once_with('github.com', 'org', 'repo', 'token')

    def test_pinned_and_rewritten(self):
        resolver = SourceResolver(release_lookup=self.lookup)

        result = resolver.resolve('git::https://github.com/org/repo//modules/x',
                                  {'SourceUrlType': 'git-ssh'})

        self.assertEqual(result, 'git@github.com:org/repo//modules/x?ref=v1.2.3')

    def test_existing_ref_is_kept(self):
        resolver = SourceResolver(release_lookup=self.lookup)

        result = resolver.resolve('git::https://github.com/org/repo//modules/x?ref=v0.9.0')

        self.assertEqual(result, 'git::https://github.com/org/repo//modules/x?ref=v0.9.0')
        self.lookup.latest_tag.assert_not_called()

    def test_lookup_failure_is_not_fatal(self):
        self.lookup.latest_tag.side_effect = ReleaseLookupError('rate limited')
        resolver = SourceResolver(release_lookup=self.lookup)

        with self.assertLogs('terragrunt_scaffold.sources', level='WARNING'):
            result = resolver.resolve('git::https://github.com/org/repo')

        self.assertEqual(result, 'git::https://github.com/org/repo')

    def test_local_sources_skip_lookup(self):
        temp_dir = tempfile.mkdtemp()
        try:
            resolver = SourceResolver(release_lookup=self.lookup, working_dir=temp_dir)
            locator = resolver.resolve_locator('./module')
            self.assertTrue(locator.is_local)
            self.lookup.latest_tag.assert_not_called()
        finally:
            shutil.rmtree(temp_dir)

    def test_without_lookup(self):
        resolver = SourceResolver()
        self.assertEqual(resolver.resolve('git::https://github.com/org/repo'), 'git::https://github.com/org/repo')

    def test_invalid_locator(self):
        with self.assertRaises(LocatorError):
            SourceResolver(release_lookup=self.lookup).resolve('')


if __name__ == '__main__':
    unittest.main()
