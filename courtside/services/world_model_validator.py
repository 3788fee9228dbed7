"""
Validator for world model output.

Strict validate-then-default pipeline:
1. Start from the locally computed fallback result
2. Validate each field of the generative output in isolation
3. Keep a field only if it validates; otherwise keep the fallback's field

Numeric fields are clamped by the schemas themselves, so every accepted
value is already in range. The merged result is always schema-valid.
"""
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ValidationResult:
    """Result of merging generative output over a fallback."""
    def __init__(
        self,
        value: BaseModel,
        accepted_fields: List[str] = None,
        errors: List[str] = None
    ):
        self.value = value
        self.accepted_fields = accepted_fields or []
        self.errors = errors or []

    @property
    def is_clean(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted_fields": self.accepted_fields,
            "errors": self.errors,
        }


def _lookup(raw: Dict[str, Any], name: str, alias: Optional[str]):
    if alias and alias in raw:
        return True, raw[alias]
    if name in raw:
        return True, raw[name]
    return False, None


def merge_with_fallback(
    model_cls: Type[ModelT],
    raw: Optional[Dict[str, Any]],
    fallback: ModelT
) -> ValidationResult:
    """
    Validate raw generative output field by field against model_cls.

    Args:
        model_cls: Canonical result schema
        raw: Parsed JSON object from the model (None if unavailable)
        fallback: Result of the local deterministic computation

    Returns:
        ValidationResult whose value is a complete model_cls instance
    """
    merged = fallback.model_dump()
    if not raw:
        return ValidationResult(value=fallback, errors=["no output"])

    accepted = []
    errors = []
    for name, field in model_cls.model_fields.items():
        present, value = _lookup(raw, name, field.alias)
        if not present:
            if field.is_required():
                errors.append(f"{field.alias or name}: missing")
            continue
        try:
            candidate = model_cls.model_validate({**merged, name: value})
        except ValidationError as e:
            messages = "; ".join(err.get("msg", "invalid") for err in e.errors())
            errors.append(f"{field.alias or name}: {messages}")
            continue
        merged[name] = candidate.model_dump()[name]
        accepted.append(name)

    if errors:
        logger.warning(f"{model_cls.__name__}: replaced invalid fields with fallback values: {errors}")

    return ValidationResult(
        value=model_cls.model_validate(merged),
        accepted_fields=accepted,
        errors=errors,
    )
