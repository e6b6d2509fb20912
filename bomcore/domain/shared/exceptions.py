"""
Domain Exceptions.

Every failure of the BOM engine is a DomainException carrying a stable
`code` and a `details` dict, so task results and logs can report it
without parsing the message.
"""

from typing import Optional, Any, Dict, List


class DomainException(Exception):
    """Base exception for all domain errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "DOMAIN_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}


class EntityNotFoundException(DomainException):
    """Raised when a BOM, item or component lookup comes back empty."""

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(
            message=f"{entity_type} '{entity_id}' does not exist",
            code="ENTITY_NOT_FOUND",
            details={"entity_type": entity_type, "entity_id": str(entity_id)}
        )


class ValidationException(DomainException):
    """Raised when validation fails."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={"field": field, "value": str(value) if value is not None else None}
        )
        self.field = field


class StructuralException(DomainException):
    """
    Raised when a BOM structure is, or would become, invalid.

    Blocks the mutation that triggered it.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message=message, code=code or "STRUCTURAL_ERROR", details=details)


class DuplicateComponentException(StructuralException):
    """Raised when a component already exists at the same BOM level."""

    def __init__(self, bom_id: Any, component_id: Any, level: int):
        super().__init__(
            message=f"Component '{component_id}' already exists at level {level} of BOM '{bom_id}'",
            code="DUPLICATE_BOM_ITEM",
            details={
                "bom_id": str(bom_id),
                "component_id": str(component_id),
                "level": level,
            }
        )


class CircularReferenceException(StructuralException):
    """Raised when a circular reference is detected in BOM structure."""

    def __init__(self, product_ids: list, message: Optional[str] = None):
        super().__init__(
            message=message or "Circular reference detected in BOM structure",
            code="CIRCULAR_REFERENCE",
            details={"product_ids": [str(id) for id in product_ids]}
        )


class IncomparableStructureException(StructuralException):
    """
    Raised when two BOM trees cannot be aligned for comparison.

    Distinct from an empty comparison result: identical trees yield no
    differences, incomparable ones raise this.
    """

    def __init__(self, side: str, collisions: Dict[str, List[str]]):
        described = "; ".join(
            f"{key} <- items {', '.join(item_ids)}"
            for key, item_ids in collisions.items()
        )
        super().__init__(
            message=f"Structural key collision in {side} BOM: {described}",
            code="INCOMPARABLE_STRUCTURE",
            details={"side": side, "collisions": collisions}
        )


class BusinessRuleViolationException(DomainException):
    """Raised when a use case precondition fails (inactive BOM, item with children)."""

    def __init__(self, rule: str, message: str):
        self.rule = rule
        super().__init__(
            message=message,
            code="BUSINESS_RULE_VIOLATION",
            details={"rule": rule}
        )
