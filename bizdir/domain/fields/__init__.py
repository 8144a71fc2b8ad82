"""This module holds the per-field rules for business record changes."""
from .registry import FIELD_REGISTRY, FieldDescriptor, FieldKind, get_field
from .schemas import ValidationContext
from .validation import SubmissionResult, ValidationEngine, ValidationResult, validate
