"""Exception hierarchy for the provisioning stack."""


class ProvisionerError(Exception):
    """Base class for all provisioning errors."""


class TransportError(ProvisionerError):
    """Radio link failure: adapter unavailable, not connected, GATT error."""


class CommandError(ProvisionerError):
    """A command sent over the CommandChannel did not succeed."""


class ChannelBusy(CommandError):
    def __init__(self, pending_command: str):
        super().__init__(f"Command already in progress: {pending_command}")
        self.pending_command = pending_command


class ChannelClosed(CommandError):
    def __init__(self):
        super().__init__("Command channel has been shut down")


class CommandTimeout(CommandError, TimeoutError):
    def __init__(self, command: str, duration: float):
        super().__init__(f"Command '{command}' timed out after {duration:g}s")
        self.command = command
        self.duration = duration


class InvalidResponse(CommandError):
    def __init__(self, raw_text: str):
        super().__init__("Invalid JSON response")
        self.raw_text = raw_text


class DeviceError(CommandError):
    """The device answered with an error envelope."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransportWriteFailed(CommandError):
    def __init__(self, cause: BaseException):
        super().__init__(f"Failed to write command: {cause}")
        self.cause = cause
