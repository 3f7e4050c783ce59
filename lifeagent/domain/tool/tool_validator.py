from typing import Any, Callable, Dict, List, NamedTuple, Tuple

from jsonschema import Draft202012Validator, validators
from jsonschema.protocols import Validator
from langchain_core.tools import BaseTool

from lifeagent.domain.tool.types import ToolMetadata

_BASE_TYPES = Draft202012Validator.TYPE_CHECKER
_BOOLEAN_STRINGS = {"true", "false", "yes", "no", "on", "off", "1", "0"}


def _accepts_string(json_type: str, parse: Callable[[str], Any]):
    # Tools coerce their arguments with pydantic in lax mode, so LLM output
    # such as {"task_id": "3"} is valid as long as the string parses
    def check(checker, instance) -> bool:
        if _BASE_TYPES.is_type(instance, json_type):
            return True
        if not isinstance(instance, str):
            return False
        try:
            parse(instance.strip())
        except ValueError:
            return False
        return True
    return check


def _parse_boolean(text: str) -> bool:
    if text.lower() not in _BOOLEAN_STRINGS:
        raise ValueError(text)
    return True


LaxArgumentsValidator = validators.extend(
    Draft202012Validator,
    type_checker=_BASE_TYPES.redefine_many({
        "integer": _accepts_string("integer", int),
        "number": _accepts_string("number", float),
        "boolean": _accepts_string("boolean", _parse_boolean),
    }),
)


class ValidationResult(NamedTuple):
    is_valid: bool
    errors: List[str]


class ToolParameterValidator:
    """Checks tool arguments before execution"""

    def __init__(self):
        self._validators: Dict[str, Tuple[BaseTool, Validator]] = {}

    def _validator_for(self, tool: BaseTool) -> Validator:
        cached = self._validators.get(tool.name)
        if cached is not None and cached[0] is tool:
            return cached[1]
        validator = LaxArgumentsValidator(tool.get_input_schema().model_json_schema())
        self._validators[tool.name] = (tool, validator)
        return validator

    def validate_tool_call(
        self,
        tool: BaseTool,
        metadata: ToolMetadata,
        parameters: Dict[str, Any]
    ) -> ValidationResult:
        if not metadata.enabled:
            return ValidationResult(False, [f"Tool '{tool.name}' is disabled"])
        if not isinstance(parameters, dict):
            return ValidationResult(False, ["Arguments must be an object"])

        errors = []
        for error in sorted(self._validator_for(tool).iter_errors(parameters), key=lambda e: [str(p) for p in e.path]):
            location = ".".join(str(p) for p in error.path)
            errors.append(f"{location}: {error.message}" if location else error.message)
        return ValidationResult(not errors, errors)
