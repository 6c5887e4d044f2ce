#!/usr/bin/env python3
"""
Error Types

Exceptions raised by the scaffold pipeline. Subclasses of ScaffoldError are
fatal and carry the name of the pipeline stage that failed; the remaining
exceptions describe recoverable, per-item conditions that callers log and
skip.
"""


class ScaffoldError(Exception):
    """Fatal error that aborts a scaffold run"""

    stage = "scaffold"

    def __init__(self, message: str, stage: str = None):
        super().__init__(message)
        if stage:
            self.stage = stage

    def __str__(self):
        return f"[{self.stage}] {super().__str__()}"


class ConfigurationError(ScaffoldError):
    stage = "config"


class VariableParseError(ScaffoldError):
    stage = "variables"


class LocatorError(ScaffoldError):
    stage = "resolve"


class FetchError(ScaffoldError):
    stage = "fetch"


class ExtractionError(ScaffoldError):
    stage = "extract"


class DefaultValueSerializationError(ExtractionError):
    """A resolved default value could not be converted to JSON text"""


class RenderError(ScaffoldError):
    stage = "render"


class FormatError(ScaffoldError):
    stage = "format"


# Recoverable conditions

class EvaluationError(Exception):
    """An expression cannot be evaluated without external bindings"""


class DeclarationParseError(Exception):
    """A declaration file could not be parsed into a block tree"""


class ReleaseLookupError(Exception):
    """The latest release of a repository could not be determined"""
