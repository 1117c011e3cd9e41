"""
Validation pipeline run by sessions before a batch is committed.
"""

from __future__ import annotations

from typing import Dict, List

from ..core.document import BaseDocument, Document
from ..core.fields import EmbeddedField, Field, KeyField, ListField
from .errors import ValidationError


def validate_instance(instance: BaseDocument) -> None:
    errors: Dict[str, List[str]] = {}
    _collect_errors(instance, errors, prefix="")
    if errors:
        key = instance.id if isinstance(instance, Document) else None  # type: ignore[attr-defined]
        raise ValidationError(errors, key=key)


def _collect_errors(instance: BaseDocument, errors: Dict[str, List[str]], *, prefix: str) -> None:
    for field in instance._meta.get_fields():
        field_name = field.require_name()
        value = getattr(instance, field_name, None)
        label = f"{prefix}{field_name}"
        try:
            _validate_field(field, value, label)
        except ValidationError as exc:
            _merge_errors(errors, exc.errors)
        except Exception as exc:
            _add_error(errors, label, str(exc))
        else:
            _validate_nested(field, value, errors, label)

    # Document-level clean hook
    clean_method = getattr(instance, "clean", None)
    if callable(clean_method):
        try:
            clean_method()
        except ValidationError as exc:
            _merge_errors(errors, exc.errors)
        except Exception as exc:
            _add_error(errors, f"{prefix}__all__" if prefix else "__all__", str(exc))


def _validate_field(field: Field, value, label: str) -> None:
    if value is None:
        if isinstance(field, KeyField):
            return
        if not field.nullable:
            raise ValidationError({label: ["This field cannot be null."]})
        return

    try:
        field.run_validators(value)
    except Exception as exc:
        raise ValidationError({label: [str(exc)]}) from exc


def _validate_nested(field: Field, value, errors: Dict[str, List[str]], label: str) -> None:
    if value is None:
        return
    if isinstance(field, EmbeddedField):
        _collect_errors(value, errors, prefix=f"{label}.")
    elif isinstance(field, ListField) and field.embedded_class is not None:
        for index, item in enumerate(value):
            if item is not None:
                _collect_errors(item, errors, prefix=f"{label}[{index}].")


def _add_error(errors: Dict[str, List[str]], field: str, message: str) -> None:
    errors.setdefault(field, []).append(message)


def _merge_errors(target: Dict[str, List[str]], source: Dict[str, List[str]]) -> None:
    for field, messages in source.items():
        target.setdefault(field, []).extend(messages)
