"""Top level LMC exceptions"""


class LmcError(Exception):
    """Base for all LMC errors"""


class UserResolvableError(LmcError):
    """An error which the user can probably solve"""

    def __init__(self, msg, suggested_fix=""):
        self.msg = msg
        self.suggested_fix = suggested_fix

    def __str__(self):
        if type(self) == UserResolvableError:
            return f"{self.msg}\n\n{self.suggested_fix}".strip()
        else:
            return f"{self.__doc__}: {self.msg}\n\n{self.suggested_fix}".strip()


class UnexpectedError(LmcError):
    """An error which is unexpected and with no obvious solution"""

    def __init__(self, msg):
        self.msg = msg

    def __str__(self):
        if type(self) == UnexpectedError:
            return self.msg
        else:
            return f"{self.__doc__}:\n{self.msg}"


## Validation


class ValidationError(UserResolvableError):
    """Invalid input"""


class InvalidName(ValidationError):
    """Invalid artifact name"""

    def __init__(self, name):
        self.name = name
        super().__init__(
            repr(name), "Use letters, digits, dash or underscore (and nothing else)."
        )


class InvalidAddress(ValidationError):
    """Invalid mailbox address"""

    def __init__(self, address):
        self.address = address
        super().__init__(str(address), "Mailbox addresses must be in the range 0-99.")


class InvalidSpeed(ValidationError):
    """Invalid execution speed"""

    def __init__(self, speed):
        self.speed = speed
        super().__init__(str(speed), "Provide a speed greater than zero (cycles/s).")


## Lookup and data


class NotFound(UserResolvableError):
    """Not found"""

    def __init__(self, reference, suggested_fix=""):
        self.reference = reference
        super().__init__(str(reference), suggested_fix)


class VersionError(UserResolvableError):
    """Unsupported format version"""

    def __init__(self, version, supported):
        self.version = version
        self.supported = supported
        super().__init__(
            f"version {version} (this tool supports up to {supported})",
            "Update lmc-cli to import this file.",
        )


class MalformedData(UserResolvableError):
    """Malformed data"""


class IOFailure(UnexpectedError):
    """File IO failed"""

    def __init__(self, path, cause):
        self.path = path
        self.cause = cause
        super().__init__(f"{path}: {cause}")
