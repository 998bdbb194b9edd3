from enum import Enum

from pydantic import BaseModel


class ReadinessEnum(str, Enum):
    FAIL = "fail"
    """Component cannot serve requests."""
    OK = "ok"
    """Component is ready."""


class ReadinessCheckModel(BaseModel):
    id: str
    """Component name, like `store` or `notifier`."""
    status: ReadinessEnum


class ReadinessModel(BaseModel):
    checks: list[ReadinessCheckModel]
    status: ReadinessEnum

    @classmethod
    def from_checks(cls, checks: dict[str, ReadinessEnum]) -> "ReadinessModel":
        """
        Aggregate the component checks, the service is ready only if all of them are.
        """
        return cls(
            checks=[
                ReadinessCheckModel(id=name, status=status)
                for name, status in sorted(checks.items())
            ],
            status=(
                ReadinessEnum.OK
                if all(status == ReadinessEnum.OK for status in checks.values())
                else ReadinessEnum.FAIL
            ),
        )
