class RouterError(RuntimeError):
    """
    Base for every fatal mitmrouter failure.

    The message is a short snake_case code (e.g. "hostapd_not_found"), the same
    register the engine logs use. main() maps the class to a process exit code.
    """

    exit_code = 1


class UsageError(RouterError):
    exit_code = 2


class PreconditionError(RouterError):
    exit_code = 3


class ResolutionError(RouterError):
    exit_code = 4


class MethodError(RouterError):
    exit_code = 5


class ConfigurationError(RouterError):
    exit_code = 6


class StartupError(RouterError):
    exit_code = 7
