"""Module containing custom exceptions."""


class PHRPError(Exception):
    """Base error class for the peptide hit engine."""

    _error_code = ""
    _msg = ""
    _detail_msg = ""
    _user_msg = ""

    @property
    def error_code(self):
        return self._error_code

    @property
    def msg(self):
        return self._msg

    @property
    def detail_msg(self):
        return self._detail_msg

    @property
    def user_msg(self):
        return self._user_msg

    def __init__(self, msg: str = ""):
        self._user_msg = msg

        super().__init__(self._msg)

    def __str__(self):
        text = f"{self._error_code}: {self._msg}"
        if self._user_msg:
            text += f"\n'{self._user_msg}'"
        if self._detail_msg:
            text += f"\n{self._detail_msg}"
        return text


class BusinessError(PHRPError):
    """Error raised while processing input records.

    A 'business' error is caused by the data being processed, not by a malfunction of the engine.
    It never aborts a run; the affected record is skipped or reported.
    """


class UserError(PHRPError):
    """Error caused by incompatible user input such as configuration or definition files."""


class ConfigurationError(UserError):
    """Raise when the configuration or the modification catalog cannot be loaded."""

    _error_code = "CONFIGURATION_ERROR"
    _msg = "Invalid configuration, can't continue."

    def __init__(self, msg: str, detail_msg: str = ""):
        super().__init__(msg)
        self._detail_msg = detail_msg


class MalformedRecordError(BusinessError):
    """Raise when a raw hit is missing a required field or a field cannot be parsed."""

    _error_code = "MALFORMED_RECORD"
    _msg = "Invalid search result line, skipping."

    def __init__(self, msg: str, line_number: int = 0):
        super().__init__(msg)
        self.line_number = line_number


class ModificationResolutionError(BusinessError):
    """Raise when a modification cannot be attached to a residue."""

    _error_code = "MODIFICATION_RESOLUTION"
    _msg = "Unable to attach modification."

    def __init__(self, msg: str, result_id: int = 0):
        super().__init__(msg)
        self.result_id = result_id
