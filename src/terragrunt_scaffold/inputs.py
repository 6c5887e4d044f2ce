#!/usr/bin/env python3
"""
Module Input Discovery

This module walks a Terraform module, extracts every declared input variable
and classifies the inputs into required ones (no default) and optional ones
(with a default). Problems with individual files or attributes are logged
and skipped so that one broken declaration never aborts the scan.
"""

import os
import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass
from pathlib import Path

from .declarations import Block, DeclarationParser, resolve_block_attribute
from .errors import (
    DeclarationParseError,
    DefaultValueSerializationError,
    EvaluationError,
    ExtractionError,
)

logger = logging.getLogger(__name__)

DECLARATION_FILE_EXTENSION = '.tf'


@dataclass(frozen=True)
class InputDescriptor:
    """Information about one declared module input"""
    name: str
    description: str
    type: str
    default_value: str = ""
    source_file: str = ""

    @property
    def is_required(self) -> bool:
        return self.default_value == ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'description': self.description,
            'type': self.type,
            'default_value': self.default_value,
            'required': self.is_required,
            'source_file': self.source_file,
        }


def canonical_json(value: Any) -> str:
    """Serialize a value to compact JSON with sorted object keys"""
    return json.dumps(value, sort_keys=True, separators=(',', ':'), ensure_ascii=False, allow_nan=False)


def list_declaration_files(root_directory: str) -> List[str]:
    """
    Recursively list declaration files in lexical walk order

    Raises:
        ExtractionError: if the root or any subdirectory cannot be listed
    """
    files: List[str] = []

    def walk(directory: str):
        try:
            entries = sorted(os.scandir(directory), key=lambda entry: entry.name)
        except OSError as e:
            raise ExtractionError(f"Failed to list directory {directory}: {str(e)}") from e

        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                walk(entry.path)
            elif os.path.splitext(entry.name)[1] == DECLARATION_FILE_EXTENSION:
                files.append(entry.path)

    if not os.path.isdir(root_directory):
        raise ExtractionError(f"Module directory does not exist: {root_directory}")
    walk(root_directory)
    return files


class VariableExtractor:
    """
    Extracts input variable declarations from a module directory

    This class reads every declaration file in a module, locates its
    variable blocks and resolves their description, type and default.
    """

    def __init__(self, parser: Optional[DeclarationParser] = None):
        self.parser = parser or DeclarationParser()

    def extract(self, root_directory: str) -> List[InputDescriptor]:
        """
        Extract input descriptors from all declaration files

        Args:
            root_directory: Module directory to scan

        Returns:
            Descriptors in file walk order, then block order within a file

        Raises:
            ExtractionError: if the directory cannot be listed or a default
                value cannot be serialized
        """
        logger.info(f"Extracting module inputs from {root_directory}")

        descriptors: List[InputDescriptor] = []
        for file_path in list_declaration_files(root_directory):
            try:
                content = Path(file_path).read_text(encoding='utf-8')
            except (OSError, UnicodeDecodeError) as e:
                logger.error(f"Error reading file {file_path}: {str(e)}")
                continue

            try:
                declaration = self.parser.parse(content, file_path)
            except DeclarationParseError as e:
                logger.warning(f"Failed to parse HCL in file {file_path}: {str(e)}")
                continue

            for block in declaration.variables:
                if not block.labels or not block.labels[0]:
                    continue
                descriptors.append(self._describe_variable(block, file_path))

        logger.info(f"Found {len(descriptors)} input variables")
        return descriptors

    def _describe_variable(self, block: Block, file_path: str) -> InputDescriptor:
        name = block.labels[0]

        description = self._read_attribute(block, 'description', file_path)
        type_value = self._read_attribute(block, 'type', file_path)
        default = self._read_attribute(block, 'default', file_path)

        default_text = ""
        if default is not None:
            try:
                default_text = canonical_json(default.value)
            except (TypeError, ValueError) as e:
                raise DefaultValueSerializationError(
                    f"Failed to serialize default value of {name} in {file_path}: {str(e)}"
                ) from e

        return InputDescriptor(
            name=name,
            description=self._display_text(description, f"No description for {name}"),
            type=self._display_text(type_value, f"No type for {name}"),
            default_value=default_text,
            source_file=file_path,
        )

    def _read_attribute(self, block: Block, attribute: str, file_path: str):
        try:
            return resolve_block_attribute(block, attribute)
        except EvaluationError as e:
            logger.warning(f"Failed to read {attribute} for {block.labels[0]} in {file_path}: {str(e)}")
            return None

    @staticmethod
    def _display_text(resolved, placeholder: str) -> str:
        if resolved is None:
            return placeholder
        if isinstance(resolved.value, str):
            return resolved.value
        try:
            return canonical_json(resolved.value)
        except (TypeError, ValueError):
            return placeholder


def classify_inputs(descriptors: List[InputDescriptor]) -> Tuple[List[InputDescriptor], List[InputDescriptor]]:
    """Split descriptors into required and optional inputs, keeping their order"""
    required = [descriptor for descriptor in descriptors if descriptor.is_required]
    optional = [descriptor for descriptor in descriptors if not descriptor.is_required]
    return required, optional
