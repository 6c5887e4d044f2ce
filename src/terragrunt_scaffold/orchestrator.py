#!/usr/bin/env python3
"""
Scaffold Orchestrator

This module coordinates a complete scaffold run: variable parsing, source
resolution, fetching, input extraction, template rendering and formatting.
"""

import time
import shutil
import logging
import tempfile
from dataclasses import dataclass, field
from typing import List, Optional
from pathlib import Path

from .config import ToolConfig
from .errors import ScaffoldError
from .fetcher import SourceFetcher
from .formatter import HclFormatter
from .inputs import InputDescriptor, VariableExtractor, classify_inputs
from .releases import GitHubReleaseLookup
from .sources import SourceResolver, describe_locator, normalize_locator
from .templates import TemplateEngine, assemble_context, parse_vars, write_default_template

logger = logging.getLogger(__name__)


@dataclass
class ScaffoldResult:
    """Outcome of a scaffold run"""
    output_dir: str
    source_url: str
    required: List[InputDescriptor] = field(default_factory=list)
    optional: List[InputDescriptor] = field(default_factory=list)
    files: List[str] = field(default_factory=list)
    formatted: bool = False


class ScaffoldOrchestrator:
    """
    Main scaffold controller

    Collaborators default to the implementations configured by the tool
    configuration and can be replaced individually.
    """

    def __init__(self, config: Optional[ToolConfig] = None,
                 fetcher: Optional[SourceFetcher] = None,
                 release_lookup=None,
                 template_engine: Optional[TemplateEngine] = None,
                 formatter: Optional[HclFormatter] = None,
                 credential: Optional[str] = None,
                 extractor: Optional[VariableExtractor] = None):
        """
        Initialize the orchestrator

        Args:
            config: Tool configuration object
            fetcher: Source fetcher
            release_lookup: Object with latest_tag(host, owner, repo, credential)
            template_engine: Template renderer
            formatter: Output formatter
            credential: Token passed to the release lookup
            extractor: Input variable extractor
        """
        self.config = config or ToolConfig()
        self.credential = credential

        self.fetcher = fetcher or SourceFetcher(
            git_command=self.config.fetch.git_command,
            timeout=self.config.fetch.timeout
        )

        if release_lookup is None and self.config.release_lookup.enabled:
            release_lookup = GitHubReleaseLookup(
                api_url=self.config.release_lookup.api_url,
                timeout=self.config.release_lookup.timeout
            )
        self.release_lookup = release_lookup if self.config.release_lookup.enabled else None

        self.template_engine = template_engine or TemplateEngine(
            missing_key_policy=self.config.template.missing_key,
            missing_config_policy=self.config.template.missing_config
        )

        self.formatter = formatter or HclFormatter(
            command=self.config.formatting.command,
            timeout=self.config.formatting.timeout
        )

        self.extractor = extractor or VariableExtractor()

    def run(self, module_url: str, template_url: Optional[str] = None,
            output_dir: str = ".", variables: Optional[List[str]] = None,
            var_files: Optional[List[str]] = None) -> ScaffoldResult:
        """
        Run the complete scaffold process

        Args:
            module_url: Locator of the module to scaffold
            template_url: Optional locator of a template folder
            output_dir: Directory receiving the rendered files
            variables: KEY=VALUE variable assignments
            var_files: YAML files with variables

        Returns:
            ScaffoldResult describing the generated scaffold

        Raises:
            ScaffoldError: if any fatal stage fails
        """
        logger.info(f"Starting scaffold of {module_url}")
        start_time = time.time()
        work_dir = tempfile.mkdtemp(prefix="tg-scaffold-")

        try:
            # Phase 1: Variables
            logger.info("Phase 1: Parsing variables")
            user_vars = dict(self.config.scaffold.variables)
            user_vars.update(parse_vars(variables, list(self.config.scaffold.var_files) + list(var_files or [])))

            # Phase 2: Source resolution
            logger.info("Phase 2: Resolving module source")
            resolver = SourceResolver(
                release_lookup=self.release_lookup,
                credential=self.credential
            )
            source_url = resolver.resolve(module_url, user_vars)
            logger.info(f"Resolved module source: {source_url}")
            logger.debug(f"Source components: {describe_locator(source_url)}")

            # Phase 3: Fetching
            logger.info("Phase 3: Fetching module")
            module_dir = self.fetcher.fetch(source_url, str(Path(work_dir) / "module"))

            template_dir = self._prepare_template(template_url, module_dir, Path(work_dir))

            # Phase 4: Input extraction
            logger.info("Phase 4: Extracting module inputs")
            descriptors = self.extractor.extract(str(module_dir))
            required, optional = classify_inputs(descriptors)
            logger.info(f"Found {len(required)} required and {len(optional)} optional inputs")

            # Phase 5: Rendering
            logger.info("Phase 5: Rendering templates")
            context = assemble_context(user_vars, required, optional, source_url)
            Path(output_dir).mkdir(parents=True, exist_ok=True)
            files = self.template_engine.render(str(template_dir), output_dir, context)

            # Phase 6: Formatting
            formatted = False
            if self.config.formatting.enabled:
                logger.info("Phase 6: Formatting output")
                formatted = self.formatter.format(output_dir)

            logger.info(f"Scaffold completed successfully in {time.time() - start_time:.2f} seconds")
            return ScaffoldResult(
                output_dir=output_dir,
                source_url=source_url,
                required=required,
                optional=optional,
                files=[str(path) for path in files],
                formatted=formatted
            )

        except ScaffoldError as e:
            logger.error(f"Scaffold failed during {e.stage}: {str(e)}")
            raise
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

    def _prepare_template(self, template_url: Optional[str], module_dir: Path, work_dir: Path) -> Path:
        """Select the template folder for this run"""
        if template_url:
            logger.info(f"Fetching template folder {template_url}")
            normalized = str(normalize_locator(template_url))
            return self.fetcher.fetch(normalized, str(work_dir / "template"))

        module_templates = module_dir / self.config.scaffold.default_template_dir
        if module_templates.is_dir():
            logger.info(f"Using template folder shipped with the module: {module_templates.name}")
            return module_templates

        logger.info("Module ships no templates, using the default Terragrunt template")
        return write_default_template(str(work_dir / "default-template"))
