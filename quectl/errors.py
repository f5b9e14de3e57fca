class QueError(Exception):
    """Base class for every error raised by quectl."""


class JobNotFound(QueError, LookupError):
    pass


class InvalidWorkerConfiguration(QueError, ValueError):
    pass


class InvalidJobTransition(QueError, ValueError):
    pass


class UnknownWorker(QueError, KeyError):
    def __str__(self):
        # KeyError repr()s its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class StoreError(QueError, RuntimeError):
    pass
