"""Exception types for kbtest-core.

This module defines the exception hierarchy used throughout the kbtest tools.
All kbtest exceptions inherit from KbtestError, allowing consumers to catch all
framework-specific errors with a single except clause.

Exception hierarchy:
    KbtestError (base)
    +-- ConfigError: Invalid configuration files or values
    +-- StateError: Fixture lifecycle misuse
    +-- FixtureSetupError: Test database could not be prepared
    +-- TruncationError: Test database could not be reset between tests
    +-- CoverageArtifactError: Coverage artifact is malformed

File removal failures during teardown are deliberately absent: they are
logged and recorded, never raised.
"""


class KbtestError(Exception):
    """Base exception for all kbtest errors."""


class ConfigError(KbtestError):
    """Raised when a configuration file or value is invalid."""


class StateError(KbtestError):
    """Raised for invalid lifecycle state transitions.

    For example, truncating before the fixture is connected, or setting up a
    fixture that has already been set up.
    """


class FixtureSetupError(KbtestError):
    """Raised when the per-worker test database cannot be opened.

    This is fatal for the worker: no test may run against a broken fixture.
    """

    def __init__(self, worker_id: str, message: str) -> None:
        self.worker_id = worker_id
        super().__init__(f"worker {worker_id}: {message}")


class TruncationError(KbtestError):
    """Raised when the test database cannot be cleared before a test.

    Subsequent tests would observe stale rows, so the current test must fail.
    """

    def __init__(self, worker_id: str, message: str) -> None:
        self.worker_id = worker_id
        super().__init__(f"worker {worker_id}: {message}")


class CoverageArtifactError(KbtestError):
    """Raised when a coverage artifact exists but cannot be parsed.

    A missing artifact is not an error; it means the suite has not run yet.
    """

    def __init__(self, path: object, message: str) -> None:
        self.path = path
        super().__init__(f"{path}: {message}")
