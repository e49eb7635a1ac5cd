class ConfigError(Exception):
    """Base class for every proxy configuration problem."""


class InvalidConfigShape(ConfigError):
    pass


class InvalidTarget(ConfigError):
    pass


class RouteCompileFailure(ConfigError):
    def __init__(self, route: str, cause: ConfigError) -> None:
        super().__init__(f"failed to configure proxy route {route}: {cause}")
        self.route = route
        self.cause = cause
