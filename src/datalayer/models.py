"""Pydantic models describing the required shape of global data."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from datalayer.errors import DataValidationError


class PageData(BaseModel):
    """The ``page`` namespace. Type and name are mandatory."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(min_length=1)
    name: str = Field(min_length=1)


class SiteData(BaseModel):
    """The ``site`` namespace."""

    model_config = ConfigDict(extra="allow")

    id: str | int


class GlobalDataModel(BaseModel):
    """Minimum contract every initialized datalayer satisfies.

    Extra namespaces (``attribution``, ``product``, ...) pass through
    untouched. ``user`` must be present but may be empty.
    """

    model_config = ConfigDict(extra="allow")

    page: PageData
    site: SiteData
    user: dict[str, Any]


def validate_global_data(
    data: dict[str, Any],
    model: type[BaseModel] | None = None,
) -> None:
    """Validate merged global data against ``model``.

    The data itself is never replaced by the model's output; validation
    only decides whether initialization may continue.

    Raises:
        DataValidationError: With one message per failing field.
    """
    model = model or GlobalDataModel
    try:
        model.model_validate(data)
    except ValidationError as e:
        messages = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise DataValidationError(
            "Supplied global data is invalid or missing: " + "; ".join(messages),
            messages,
        ) from e
