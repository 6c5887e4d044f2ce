"""
Terragrunt Scaffold Tool

Generates Terragrunt configurations for Terraform modules by extracting the
module's input variables and rendering them through a template folder.
"""

__version__ = "1.0.0"

from .errors import ScaffoldError
from .inputs import InputDescriptor, VariableExtractor, classify_inputs
from .sources import SourceResolver
from .templates import TemplateEngine
from .orchestrator import ScaffoldOrchestrator, ScaffoldResult

__all__ = [
    "ScaffoldError",
    "InputDescriptor",
    "VariableExtractor",
    "classify_inputs",
    "SourceResolver",
    "TemplateEngine",
    "ScaffoldOrchestrator",
    "ScaffoldResult"
]
