class UpkeepError(Exception):
    """Base class for failures local to a single evaluation cycle."""


class ActuatorFailure(UpkeepError):
    """The maintenance or notification action did not succeed."""


class ProbeFailure(UpkeepError):
    """The idle state of the user session could not be determined."""


class StoreFailure(UpkeepError):
    """Reading or committing maintenance state failed."""


class DeadlineExceeded(UpkeepError):
    """A deadline-bound run did not finish in time."""
