"""Shared annotated types for schemas."""

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator

from recoveryline.utils.time_helpers import ensure_utc

UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
