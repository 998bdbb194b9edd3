import json
from os import environ

import yaml
from dotenv import find_dotenv
from pydantic import ValidationError

from reminder_bot.helpers.config_models.root import RootModel

_ENV_JSON = "CONFIG_JSON"
_ENV_FILE = "CONFIG_FILE"
_DEFAULT_FILE = "config.yaml"


def load_config() -> RootModel:
    """
    Load the configuration.

    Sources, first found wins:
    1. JSON document in the `CONFIG_JSON` env, used by containers and tests
    2. YAML file named by the `CONFIG_FILE` env, defaults to `config.yaml`, searched from the working directory up to the root

    Nested fields can still be overridden by env, like `NOTIFICATION__LINE__ACCESS_TOKEN`.
    """
    if _ENV_JSON in environ:
        # Init kwargs are merged with the env, so nested env overrides still apply
        config = RootModel(**json.loads(environ[_ENV_JSON]))
        print(f'Config loaded from env "{_ENV_JSON}"')  # noqa: T201
        return config

    file_name = environ.get(_ENV_FILE, _DEFAULT_FILE)
    print(f'Cannot find env "{_ENV_JSON}", trying to load from file "{file_name}"')  # noqa: T201
    path = find_dotenv(filename=file_name, usecwd=True)
    if not path:
        raise ValueError(f'Cannot find config file "{file_name}"')

    with open(
        encoding="utf-8",
        file=path,
    ) as f:
        config = RootModel(**(yaml.safe_load(f) or {}))
    print(f'Config loaded from file "{path}"')  # noqa: T201
    return config


def _format_errors(e: ValidationError) -> str:
    lines = ["Config values are not valid:"]
    for i, error in enumerate(e.errors()):
        location = ".".join(str(loc) for loc in error["loc"]) or "root"
        lines.append(f"{i + 1}. At {location}: {error['msg']} (input value: {error['input']})")
    return "\n".join(lines)


try:
    CONFIG = load_config()
except ValidationError as e:
    raise ValueError(_format_errors(e)) from e
