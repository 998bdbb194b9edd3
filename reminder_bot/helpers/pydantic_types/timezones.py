from datetime import tzinfo
from functools import lru_cache
from typing import Any

from pydantic import GetCoreSchemaHandler
from pydantic_core import PydanticCustomError, core_schema
from pytz import UnknownTimeZoneError, timezone


class TimeZone(str):
    """
    IANA time zone name, like `Asia/Taipei`.

    Validated against the pytz database, wall-clock times of the users are interpreted in this zone.
    """

    @classmethod
    def __get_pydantic_core_schema__(
        cls,
        source: type[Any],  # noqa: ARG003
        handler: GetCoreSchemaHandler,  # noqa: ARG003
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(
            cls._validate,
            core_schema.str_schema(strip_whitespace=True),
        )

    @classmethod
    def _validate(cls, value: str) -> "TimeZone":
        try:
            timezone(value)
        except UnknownTimeZoneError as e:
            raise PydanticCustomError(
                "time_zone",
                "Unknown time zone {value}",
                {"value": value},
            ) from e
        return cls(value)

    @lru_cache()  # Cache results in memory as func is executed many times on the same content
    def tz(self) -> tzinfo:
        """
        Return the pytz time zone object.
        """
        return timezone(self)
