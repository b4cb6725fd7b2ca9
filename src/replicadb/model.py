"""
Model metadata and field values handed to the SQL assembler.
"""
import re
from dataclasses import dataclass
from typing import Any

from replicadb.exceptions import ValidationError

__all__ = [
    'ModelMeta',
    'Scalar',
    'Delta',
    'OPERATORS',
    'as_field_value',
    'check_identifier',
]

OPERATORS = frozenset({'+', '-', '*', '/'})

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def check_identifier(name: str) -> str:
    """Return `name` if it is a plain column name, else raise ValidationError."""
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ValidationError(f'Invalid column name: {name!r}')
    return name


@dataclass(frozen=True)
class ModelMeta:
    """Where an entity type lives and how its rows are identified.

    `primary_key` is a single column name or a comma-joined list of columns
    for a composite key, e.g. 'user_id,group_id'.
    """
    table: str
    primary_key: str = 'id'
    database: str = 'default'

    @property
    def primary_keys(self) -> tuple[str, ...]:
        return tuple(key.strip() for key in self.primary_key.split(','))

    @property
    def is_composite(self) -> bool:
        return ',' in self.primary_key


@dataclass(frozen=True)
class Scalar:
    """Set a column to a value."""
    value: Any


@dataclass(frozen=True)
class Delta:
    """Apply an operator with an operand to a column's current value."""
    operator: str
    operand: Any

    def __post_init__(self):
        if self.operator not in OPERATORS:
            raise ValidationError(f'Unsupported operator {self.operator!r}, '
                                  f'expected one of {sorted(OPERATORS)}')
        if self.operand is None:
            raise ValidationError('Delta operand cannot be None')


def as_field_value(value: Any) -> Scalar | Delta:
    """Normalize a raw field value.

    A two element tuple or list is read as an (operator, operand) pair, any
    other value as a scalar.

    >>> as_field_value(('+', 5))
    Delta(operator='+', operand=5)
    >>> as_field_value(5)
    Scalar(value=5)
    """
    if isinstance(value, (Scalar, Delta)):
        return value
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return Delta(*value)
    return Scalar(value)
