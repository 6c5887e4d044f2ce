#!/usr/bin/env python3
"""
Source Location Resolver

This module normalizes module and template locators into a canonical,
fetchable form, pins unversioned locators to the latest release tag of their
repository, and rewrites HTTPS git locators into SSH form on request.

Locator detection follows the conventions Terraform uses for module sources:
forced getters ("git::"), "//" subdirectories, GitHub/GitLab/Bitbucket
shorthands, scp-like SSH addresses and local paths.
"""

import os
import re
import logging
from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, replace
from urllib.parse import parse_qsl, urlencode, urlsplit

from .errors import LocatorError, ReleaseLookupError

logger = logging.getLogger(__name__)

SOURCE_URL_TYPE_HTTPS = "git-https"
SOURCE_URL_TYPE_SSH = "git-ssh"
SOURCE_URL_TYPE_UNDETERMINED = ""
DEFAULT_GIT_SSH_USER = "git"

SOURCE_URL_TYPE_VAR = "SourceUrlType"
GIT_SSH_USER_VAR = "SourceGitSshUser"
REF_PARAM = "ref"

_FORCED_GETTER = re.compile(r'^([A-Za-z0-9]+)::(.+)$')
_URL_SCHEME = re.compile(r'^[A-Za-z][A-Za-z0-9+.-]*://')
_SCP_LIKE = re.compile(r'^([A-Za-z0-9._-]+)@([A-Za-z0-9.-]+):/?(.+)$')
_GIT_URL = re.compile(r'^git::([^:]+)://([^/]+)(/.*)$')

_SHORTHAND_HOSTS = ('github.com', 'gitlab.com', 'bitbucket.org')
_REMOTE_SCHEMES = ('http', 'https', 'ssh', 'git', 's3', 'gcs')


@dataclass(frozen=True)
class SourceLocator:
    """Normalized description of a fetchable location"""
    raw: str
    getter: str
    scheme: str
    host: str
    path: str
    subdir: str = ""
    query: str = ""

    @property
    def ref(self) -> str:
        for key, value in parse_qsl(self.query, keep_blank_values=True):
            if key == REF_PARAM:
                return value
        return ""

    @property
    def hostname(self) -> str:
        """Host without user info or port"""
        return self.host.rsplit('@', 1)[-1].split(':', 1)[0]

    @property
    def is_local(self) -> bool:
        return self.scheme == 'file'

    @property
    def is_git(self) -> bool:
        return self.getter == 'git' or self.scheme in ('ssh', 'git')

    def query_params(self) -> List[Tuple[str, str]]:
        return parse_qsl(self.query, keep_blank_values=True)

    def root(self) -> 'SourceLocator':
        """Repository locator without subdirectory or query"""
        return replace(self, subdir="", query="")

    def with_ref(self, ref: str) -> 'SourceLocator':
        params = self.query_params() + [(REF_PARAM, ref)]
        params.sort(key=lambda item: item[0])
        return replace(self, query=urlencode(params))

    def __str__(self) -> str:
        url = f"{self.scheme}://{self.host}{self.path}"
        if self.subdir:
            url += f"//{self.subdir}"
        if self.query:
            url += f"?{self.query}"
        if self.getter:
            url = f"{self.getter}::{url}"
        return url


@dataclass(frozen=True)
class GitUrlParts:
    """Components matched by the git:: rewrite grammar"""
    scheme: str
    host: str
    path: str

    @property
    def url_type(self) -> str:
        if self.scheme == 'https':
            return SOURCE_URL_TYPE_HTTPS
        if self.scheme == 'ssh':
            return SOURCE_URL_TYPE_SSH
        return SOURCE_URL_TYPE_UNDETERMINED


def split_subdir(source: str) -> Tuple[str, str]:
    """
    Split a "//" subdirectory off a source string

    Query parameters found after the subdirectory are moved back onto the
    source. The "://" of a URL scheme is never treated as a separator.
    """
    stop = source.find('?')
    if stop < 0:
        stop = len(source)

    offset = 0
    scheme_index = source.find('://', 0, stop)
    if scheme_index > -1:
        offset = scheme_index + 3

    index = source.find('//', offset, stop)
    if index < 0:
        return source, ""

    subdir = source[index + 2:]
    source = source[:index]
    query_index = subdir.find('?')
    if query_index > -1:
        source += subdir[query_index:]
        subdir = subdir[:query_index]
    return source, subdir


def _detect(source: str, working_dir: str) -> Tuple[str, str, str]:
    """Return (getter, url, extra subdir) for a source without forced getter"""
    if _URL_SCHEME.match(source):
        return "", source, ""

    repo_part, separator, query = source.partition('?')
    suffix = f"?{query}" if separator else ""

    for shorthand in _SHORTHAND_HOSTS:
        if repo_part.startswith(f"{shorthand}/"):
            parts = repo_part.split('/')
            if len(parts) < 3 or not parts[1] or not parts[2]:
                raise LocatorError(f"{shorthand} URLs should be {shorthand}/owner/repository: {source}")
            repository = parts[2] if parts[2].endswith('.git') else f"{parts[2]}.git"
            extra = '/'.join(parts[3:])
            return "git", f"https://{shorthand}/{parts[1]}/{repository}{suffix}", extra

    match = _SCP_LIKE.match(repo_part)
    if match:
        user, host, path = match.groups()
        return "git", f"ssh://{user}@{host}/{path}{suffix}", ""

    base = working_dir or os.getcwd()
    local_path = os.path.abspath(os.path.join(base, os.path.expanduser(repo_part)))
    return "", f"file://{local_path}{suffix}", ""


def normalize_locator(raw: str, working_dir: Optional[str] = None) -> SourceLocator:
    """
    Normalize a module or template locator

    Args:
        raw: Locator as given by the user
        working_dir: Base directory for relative local paths

    Returns:
        SourceLocator in canonical form

    Raises:
        LocatorError: if the locator cannot be interpreted
    """
    source = (raw or "").strip()
    if not source:
        raise LocatorError("Source locator is empty")

    getter = ""
    match = _FORCED_GETTER.match(source)
    if match:
        getter, source = match.group(1), match.group(2)

    source, subdir = split_subdir(source)
    detected_getter, url, extra_subdir = _detect(source, working_dir)
    getter = getter or detected_getter
    if extra_subdir:
        subdir = f"{extra_subdir}/{subdir}" if subdir else extra_subdir

    try:
        parts = urlsplit(url)
        _ = parts.port  # raises ValueError for a malformed port
    except ValueError as e:
        raise LocatorError(f"Invalid source locator {raw}: {str(e)}") from e

    if parts.scheme in _REMOTE_SCHEMES and not parts.netloc:
        raise LocatorError(f"Source locator {raw} has no host")
    if parts.scheme == 'file' and not parts.path:
        raise LocatorError(f"Source locator {raw} has no path")

    return SourceLocator(
        raw=raw,
        getter=getter,
        scheme=parts.scheme,
        host=parts.netloc,
        path=parts.path,
        subdir=subdir,
        query=parts.query,
    )


def repository_coordinates(locator: SourceLocator) -> Tuple[str, str, str]:
    """
    Return (host, owner, repository) of a repository locator

    Raises:
        ReleaseLookupError: if the path does not name an owner and repository
    """
    path_parts = locator.root().path.split('/')
    if len(path_parts) < 3 or not path_parts[1] or not path_parts[2]:
        raise ReleaseLookupError(f"Invalid repository URL {locator.root()}")
    repository = path_parts[2]
    if repository.endswith('.git'):
        repository = repository[:-len('.git')]
    return locator.hostname, path_parts[1], repository


def parse_git_url(locator: str) -> Optional[GitUrlParts]:
    """Match a locator against git::<scheme>://<host><path>"""
    match = _GIT_URL.match(locator)
    if not match:
        return None
    return GitUrlParts(scheme=match.group(1), host=match.group(2), path=match.group(3))


def rewrite_source_url(locator: str, variables: Dict[str, Any]) -> str:
    """
    Rewrite an HTTPS git locator into SSH form when requested

    The rewrite happens only when the SourceUrlType variable asks for
    git-ssh and the locator uses the https scheme.
    """
    parts = parse_git_url(locator)
    if parts is None:
        logger.warning(f"Failed to parse module url {locator}")
        return locator

    url_type = str(variables.get(SOURCE_URL_TYPE_VAR, SOURCE_URL_TYPE_HTTPS))
    if parts.url_type == SOURCE_URL_TYPE_HTTPS and url_type == SOURCE_URL_TYPE_SSH:
        git_user = str(variables.get(GIT_SSH_USER_VAR, DEFAULT_GIT_SSH_USER))
        path = parts.path[1:] if parts.path.startswith('/') else parts.path
        return f"{git_user}@{parts.host}:{path}"

    return locator


def describe_locator(locator: str) -> Dict[str, str]:
    """Break a locator into URL components for diagnostics"""
    getter = ""
    match = _FORCED_GETTER.match(locator)
    if match:
        getter, locator = match.group(1), match.group(2)
    parts = urlsplit(locator)
    return {
        'getter': getter,
        'scheme': parts.scheme,
        'host': parts.netloc,
        'path': parts.path,
        'query': parts.query,
    }


class SourceResolver:
    """
    Resolves the final source locator of a module

    Unversioned locators are pinned to the latest release of their
    repository when a release lookup is available.
    """

    def __init__(self, release_lookup=None, credential: Optional[str] = None,
                 working_dir: Optional[str] = None):
        """
        Initialize the resolver

        Args:
            release_lookup: Object with latest_tag(host, owner, repo, credential)
            credential: Bearer token passed to the release lookup
            working_dir: Base directory for relative local paths
        """
        self.release_lookup = release_lookup
        self.credential = credential
        self.working_dir = working_dir

    def resolve_locator(self, raw_locator: str) -> SourceLocator:
        """Normalize a locator and pin it to a release if it has no ref"""
        locator = normalize_locator(raw_locator, self.working_dir)
        if locator.ref:
            logger.debug(f"Source {locator} already pinned to {locator.ref}")
            return locator
        return self._pin_latest_release(locator)

    def resolve(self, raw_locator: str, variables: Optional[Dict[str, Any]] = None) -> str:
        """
        Resolve the final locator string

        Args:
            raw_locator: Locator as given by the user
            variables: User variables controlling the SSH rewrite

        Returns:
            Locator used for fetching and exposed to templates as sourceUrl

        Raises:
            LocatorError: if the locator cannot be normalized
        """
        locator = self.resolve_locator(raw_locator)
        return rewrite_source_url(str(locator), variables or {})

    def _pin_latest_release(self, locator: SourceLocator) -> SourceLocator:
        if self.release_lookup is None or locator.is_local:
            return locator

        try:
            host, owner, repository = repository_coordinates(locator)
            tag = self.release_lookup.latest_tag(host, owner, repository, self.credential)
        except ReleaseLookupError as e:
            logger.warning(f"Could not determine latest release for {locator.root()}: {str(e)}")
            return locator

        if not tag:
            return locator
        logger.info(f"Pinning {locator.root()} to latest release {tag}")
        return locator.with_ref(tag)
