from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Fields are optional so a missing value reaches the service and comes back
# in the {success, error} envelope instead of a framework 422.


class IssueOtpIn(BaseModel):
    to: Optional[str] = None


class VerifyOtpIn(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    email: Optional[str] = None
    otp: Optional[str] = None


class ResetPasswordIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    email: Optional[str] = None
    otp: Optional[str] = None
    new_password: Optional[str] = Field(default=None, alias="newPassword")


class ResultOut(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
