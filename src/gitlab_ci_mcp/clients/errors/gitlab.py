ExtraInfoType = dict[str, str | None]


class ClientError(Exception):
    """An error from the GitLab CI client."""

    def __init__(self, message: str, extra_info: ExtraInfoType | None = None):
        msg = message
        if extra_info:
            msg += " (" + ", ".join([f"{key}: {value}" for key, value in extra_info.items() if value is not None]) + ")"
        super().__init__(msg)


class RequestError(ClientError):
    """A request to the GitLab proxy could not be completed."""

    def __init__(self, action: str, message: str | None = None, extra_info: ExtraInfoType | None = None):
        if not extra_info:
            extra_info = {}
        super().__init__(message="A request error occured.", extra_info={"action": action, "message": message, **extra_info})


class ResourceNotFoundError(RequestError):
    """A resource the caller asked for explicitly does not exist."""

    def __init__(self, action: str, resource: str | None = None, extra_info: ExtraInfoType | None = None):
        if not extra_info:
            extra_info = {}
        super().__init__(
            action=action,
            message="The resource could not be found.",
            extra_info={"resource": resource, **extra_info},
        )


class DecodeError(ClientError):
    """A successful response could not be decoded into the expected record."""

    def __init__(self, action: str, message: str | None = None):
        super().__init__(message="The response could not be decoded.", extra_info={"action": action, "message": message})
