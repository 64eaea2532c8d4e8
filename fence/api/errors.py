"""
Exception taxonomy shared by the catalog, builder, linter, and gate.

Loader and builder errors are raised on the first violation. The linter and
gate do not raise for probe defects; they attach `kind` names from this module
to the violations they collect instead.
"""

from __future__ import annotations

from typing import Optional


class FenceError(Exception):
    """Base class for every harness error."""

    kind = "FenceError"


class SchemaError(FenceError):
    """Malformed or incompatible catalog/event shape."""

    kind = "SchemaError"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class SchemaVersionMismatch(SchemaError):
    kind = "SchemaVersionMismatch"


class MissingField(SchemaError):
    kind = "MissingField"


class DuplicateId(SchemaError):
    kind = "DuplicateId"


class UnknownCategory(SchemaError):
    kind = "UnknownCategory"


class UnknownLayer(SchemaError):
    kind = "UnknownLayer"


class InvalidEnum(SchemaError):
    kind = "InvalidEnum"


class InvalidValue(SchemaError):
    kind = "InvalidValue"


class ConflictingPayloadSource(SchemaError):
    kind = "ConflictingPayloadSource"


class MissingPayload(SchemaError):
    kind = "MissingPayload"


class PayloadTooLarge(SchemaError):
    kind = "PayloadTooLarge"


class DuplicateFlag(SchemaError):
    kind = "DuplicateFlag"


class UnknownCapability(FenceError, LookupError):
    kind = "UnknownCapability"

    def __init__(self, capability_id: str, field: Optional[str] = None, catalog_key: Optional[str] = None):
        where = f" in catalog {catalog_key}" if catalog_key else ""
        super().__init__(f"unknown capability id '{capability_id}'{where}")
        self.capability_id = capability_id
        self.field = field


class ContractViolation(FenceError):
    """A static or dynamic probe contract rule was broken."""

    kind = "ContractViolation"


class IdentityMismatch(ContractViolation):
    kind = "IdentityMismatch"


class ResourceError(FenceError):
    """Shadow-root lifecycle failure, missing helper, or missing default."""

    kind = "ResourceError"


class MissingDefaultsManifest(ResourceError):
    kind = "MissingDefaultsManifest"


class ProbeTimeoutError(FenceError, TimeoutError):
    kind = "TimeoutError"

    def __init__(self, probe: str, timeout_s: float):
        super().__init__(f"{probe} exceeded {timeout_s:g}s execution budget")
        self.probe = probe
        self.timeout_s = timeout_s
