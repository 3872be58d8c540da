"""
Custom exceptions for the Lineage Classic drop database.

Provides specific error types for store misuse, harvest failures and
unsupported browser environments so callers can decide which failures
are fatal.
"""


class LineageDataError(Exception):
    pass


class StoreError(LineageDataError):
    pass


class ReadOnlyStoreError(StoreError):
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Cannot {operation}: store is opened read-only")


class StoreNotInitializedError(StoreError):
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Cannot {operation}: store is not open. Construct a new Store first.")


class ExtractionError(LineageDataError):
    pass


class HarvestError(LineageDataError):
    pass


class UnsupportedEnvironmentError(HarvestError):
    def __init__(self, system: str, machine: str, reason: str = "no browser launch path"):
        self.system = system
        self.machine = machine
        super().__init__(f"Unsupported harvest environment {system}/{machine}: {reason}")
