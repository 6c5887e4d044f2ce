#!/usr/bin/env python3
"""
Scaffold Templates

This module renders scaffold template folders with Jinja2, provides the
default Terragrunt template used when a module ships none, and assembles the
variable map handed to the templates.
"""

import os
import logging
from typing import Any, Dict, List, Optional
from pathlib import Path

import yaml
from jinja2 import Environment, StrictUndefined, Undefined, TemplateError

from .errors import RenderError, VariableParseError
from .inputs import InputDescriptor
from .sources import DEFAULT_GIT_SSH_USER, SOURCE_URL_TYPE_HTTPS

logger = logging.getLogger(__name__)

TEMPLATE_CONFIG_FILE = "scaffold.yml"
DEFAULT_OUTPUT_FILE = "terragrunt.hcl"

MISSING_KEY_POLICIES = ("invalid", "error")
MISSING_CONFIG_POLICIES = ("exit", "ignore")

DEFAULT_TEMPLATE_CONFIG = f"""
variables:
  - name: SourceUrlType
    description: Source URL type, git-https or git-ssh
    default: {SOURCE_URL_TYPE_HTTPS}
  - name: SourceGitSshUser
    description: Default git SSH user
    default: {DEFAULT_GIT_SSH_USER}
"""

DEFAULT_TERRAGRUNT_TEMPLATE = """# This is a Terragrunt module generated by tg-scaffold.
terraform {
  source = "{{ sourceUrl }}"
}

inputs = {
  # --------------------------------------------------------------------------------------------------------------------
  # Required input variables
  # --------------------------------------------------------------------------------------------------------------------
{% for input in parsedRequiredInputs %}

  # Description: {{ input.description | comment }}
  # Type: {{ input.type | comment }}
  {{ input.name }} = null  # TODO: fill in value
{% endfor %}

  # --------------------------------------------------------------------------------------------------------------------
  # Optional input variables
  # Uncomment the ones you wish to set
  # --------------------------------------------------------------------------------------------------------------------
{% for input in parsedOptionalInputs %}

  # Description: {{ input.description | comment }}
  # Type: {{ input.type | comment }}
  # {{ input.name }} = {{ input.default_value }}
{% endfor %}
}
"""


def comment_lines(value: Any, prefix: str = "  # ") -> str:
    """Continue a multi-line value as HCL comment lines"""
    return str(value).replace("\n", f"\n{prefix}")


def write_default_template(template_dir: str) -> Path:
    """Write the default Terragrunt template folder"""
    path = Path(template_dir)
    path.mkdir(parents=True, exist_ok=True)
    (path / DEFAULT_OUTPUT_FILE).write_text(DEFAULT_TERRAGRUNT_TEMPLATE, encoding='utf-8')
    (path / TEMPLATE_CONFIG_FILE).write_text(DEFAULT_TEMPLATE_CONFIG, encoding='utf-8')
    return path


def parse_vars(var_pairs: Optional[List[str]] = None,
               var_files: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Load user variables from YAML files and KEY=VALUE pairs

    Files are merged in order, then pairs are applied, so later entries win.
    Pair values are parsed as YAML.

    Raises:
        VariableParseError: if a file or pair is malformed
    """
    variables: Dict[str, Any] = {}

    for var_file in var_files or []:
        try:
            with open(var_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise VariableParseError(f"Failed to load variable file {var_file}: {str(e)}") from e
        if data is None:
            continue
        if not isinstance(data, dict):
            raise VariableParseError(f"Variable file {var_file} must contain a mapping")
        variables.update(data)

    for pair in var_pairs or []:
        key, separator, raw_value = pair.partition('=')
        key = key.strip()
        if not separator or not key:
            raise VariableParseError(f"Invalid variable '{pair}', expected KEY=VALUE")
        try:
            value = yaml.safe_load(raw_value) if raw_value else ""
        except yaml.YAMLError:
            value = raw_value
        variables[key] = "" if value is None else value

    return variables


def assemble_context(user_vars: Dict[str, Any],
                     required: List[InputDescriptor],
                     optional: List[InputDescriptor],
                     source_url: str) -> Dict[str, Any]:
    """Merge user variables with the system-assigned scaffold variables"""
    context = dict(user_vars)
    context['sourceUrl'] = source_url
    context['parsedRequiredInputs'] = list(required)
    context['parsedOptionalInputs'] = list(optional)
    return context


class TemplateEngine:
    """
    Renders a template folder into an output folder

    Every file of the template folder is rendered with Jinja2, including its
    relative path, except the folder's scaffold.yml which declares template
    variables and their defaults.
    """

    def __init__(self, missing_key_policy: str = "invalid", missing_config_policy: str = "exit"):
        if missing_key_policy not in MISSING_KEY_POLICIES:
            raise ValueError(f"Unknown missing key policy: {missing_key_policy}")
        if missing_config_policy not in MISSING_CONFIG_POLICIES:
            raise ValueError(f"Unknown missing config policy: {missing_config_policy}")

        self.missing_key_policy = missing_key_policy
        self.missing_config_policy = missing_config_policy
        self.environment = Environment(
            undefined=StrictUndefined if missing_key_policy == "error" else Undefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
        )
        self.environment.filters['comment'] = comment_lines

    def load_template_defaults(self, template_folder: Path) -> Dict[str, Any]:
        """Read variable defaults from the template folder's scaffold.yml"""
        config_path = template_folder / TEMPLATE_CONFIG_FILE
        if not config_path.exists():
            if self.missing_config_policy == "exit":
                raise RenderError(f"Template folder {template_folder} has no {TEMPLATE_CONFIG_FILE}")
            logger.warning(f"No {TEMPLATE_CONFIG_FILE} in {template_folder}, continuing without defaults")
            return {}

        try:
            config = yaml.safe_load(config_path.read_text(encoding='utf-8')) or {}
        except (OSError, yaml.YAMLError) as e:
            raise RenderError(f"Failed to load {config_path}: {str(e)}") from e
        if not isinstance(config, dict):
            raise RenderError(f"{config_path} must contain a mapping")

        defaults = {}
        for variable in config.get('variables') or []:
            if isinstance(variable, dict) and variable.get('name') and 'default' in variable:
                defaults[variable['name']] = variable['default']
        return defaults

    def render(self, template_folder: str, output_folder: str,
               variables: Dict[str, Any]) -> List[Path]:
        """
        Render all template files

        Args:
            template_folder: Folder containing the templates
            output_folder: Folder receiving the rendered files
            variables: Variable map available to every template

        Returns:
            Paths of the rendered files

        Raises:
            RenderError: if any template cannot be rendered or written
        """
        template_path = Path(template_folder)
        output_path = Path(output_folder)
        if not template_path.is_dir():
            raise RenderError(f"Template folder does not exist: {template_folder}")

        context = self.load_template_defaults(template_path)
        context.update(variables)

        rendered: List[Path] = []
        for root, dirs, files in os.walk(template_path):
            dirs.sort()
            for file_name in sorted(files):
                source = Path(root) / file_name
                relative = source.relative_to(template_path)
                if relative.as_posix() == TEMPLATE_CONFIG_FILE:
                    continue
                target = output_path / self._render_text(relative.as_posix(), context, str(relative))
                self._render_file(source, target, context)
                rendered.append(target)

        logger.info(f"Rendered {len(rendered)} files into {output_path}")
        return rendered

    def _render_text(self, text: str, context: Dict[str, Any], name: str) -> str:
        try:
            return self.environment.from_string(text).render(context)
        except TemplateError as e:
            raise RenderError(f"Failed to render template {name}: {str(e)}") from e

    def _render_file(self, source: Path, target: Path, context: Dict[str, Any]):
        try:
            content = source.read_text(encoding='utf-8')
        except UnicodeDecodeError:
            logger.debug(f"Copying binary template file {source} unchanged")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(source.read_bytes())
            return
        except OSError as e:
            raise RenderError(f"Failed to read template {source}: {str(e)}") from e

        output = self._render_text(content, context, str(source))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(output, encoding='utf-8')
        except OSError as e:
            raise RenderError(f"Failed to write {target}: {str(e)}") from e
